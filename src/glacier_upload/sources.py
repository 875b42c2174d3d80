"""Byte sources accepted by the uploaders.

Every source exposes one capability, ``chunks(chunk_size)``, which yields the
source's bytes in order. Rewindable sources can be iterated more than once,
which lets an uploader hash the data in one pass and stream it in a second
without holding it in memory.
"""

import os
from abc import ABC, abstractmethod
from typing import BinaryIO, Callable, Iterator

from .errors import ValidationError

DEFAULT_CHUNK_SIZE = 1024 * 1024


class ByteSource(ABC):
    """Base class for the closed set of byte sources."""

    rewindable: bool = True

    @property
    @abstractmethod
    def size(self) -> int | None:
        """Total length in bytes, or None when unknown until read."""

    @abstractmethod
    def chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield the source's bytes in order."""

    def read_all(self) -> bytes:
        return b"".join(self.chunks())


class InMemorySource(ByteSource):
    """Bytes already held in memory."""

    def __init__(self, data: bytes | bytearray | memoryview):
        self._data = memoryview(data)

    @property
    def size(self) -> int:
        return self._data.nbytes

    def chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        for start in range(0, self._data.nbytes, chunk_size):
            yield bytes(self._data[start : start + chunk_size])

    def read_all(self) -> bytes:
        return bytes(self._data)


class FileSource(ByteSource):
    """A window of a seekable binary file handle.

    The handle is not owned: callers open and close it. Each call to chunks()
    seeks to the window start, so one handle must not be shared between
    threads.
    """

    def __init__(self, handle: BinaryIO, offset: int = 0, length: int | None = None):
        if offset < 0:
            raise ValidationError(f"Offset cannot be negative: {offset}")
        if not handle.seekable():
            raise ValidationError(
                "File handle is not seekable; wrap one-shot streams in PullStreamSource"
            )
        self._handle = handle
        self._offset = offset
        if length is None:
            position = handle.tell()
            end = handle.seek(0, os.SEEK_END)
            handle.seek(position)
            length = max(end - offset, 0)
        if length < 0:
            raise ValidationError(f"Length cannot be negative: {length}")
        self._length = length

    @property
    def size(self) -> int:
        return self._length

    @property
    def offset(self) -> int:
        return self._offset

    def chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        self._handle.seek(self._offset)
        remaining = self._length
        while remaining > 0:
            chunk = self._handle.read(min(chunk_size, remaining))
            if not chunk:
                raise ValidationError(
                    f"File ended {remaining} bytes before the expected window end"
                )
            remaining -= len(chunk)
            yield chunk


class PullStreamSource(ByteSource):
    """A one-shot producer that returns the next chunk, or b"" / None at the end."""

    rewindable = False

    def __init__(self, producer: Callable[[], bytes | None]):
        self._producer = producer
        self._consumed = False

    @property
    def size(self) -> None:
        return None

    def chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        if self._consumed:
            raise ValidationError("Pull stream has already been consumed")
        self._consumed = True
        while chunk := self._producer():
            yield chunk
