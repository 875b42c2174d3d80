"""SHA-256 tree hash computation and verification."""

import hashlib
import re
from typing import Iterable

from .errors import MalformedInputError

MIB = 1024 * 1024
LEAF_SIZE = MIB

_HEX_DIGEST = re.compile(r"^[0-9a-fA-F]{64}$")


def _sha256(data: bytes | memoryview) -> bytes:
    return hashlib.sha256(data).digest()


def fold_hashes(hashes: list[bytes]) -> bytes:
    """Reduce a level of hashes to a single root.

    Adjacent pairs are combined as SHA256(left + right). An unpaired trailing
    hash is carried up to the next level unchanged.
    """
    if not hashes:
        raise ValueError("cannot fold an empty list of hashes")

    level = hashes
    while len(level) > 1:
        next_level = [
            _sha256(level[i] + level[i + 1]) for i in range(0, len(level) - 1, 2)
        ]
        if len(level) % 2 == 1:
            next_level.append(level[-1])
        level = next_level

    return level[0]


class TreeHasher:
    """Incremental tree hash over 1 MiB leaves.

    Data may be fed in buffers of any size; leaves are cut on 1 MiB
    boundaries of the consumed stream, and the trailing partial leaf is only
    hashed when the root is requested.
    """

    def __init__(self) -> None:
        self._leaves: list[bytes] = []
        self._residual = bytearray()
        self._size = 0
        self._root: bytes | None = None

    def consume(self, data: bytes | bytearray | memoryview) -> None:
        view = memoryview(data)
        if not view.nbytes:
            return

        self._root = None
        self._size += view.nbytes

        if self._residual:
            take = min(LEAF_SIZE - len(self._residual), view.nbytes)
            self._residual += view[:take]
            view = view[take:]
            if len(self._residual) < LEAF_SIZE:
                return
            self._leaves.append(_sha256(self._residual))
            self._residual.clear()

        while view.nbytes >= LEAF_SIZE:
            self._leaves.append(_sha256(view[:LEAF_SIZE]))
            view = view[LEAF_SIZE:]

        if view.nbytes:
            self._residual += view

    def finalize(self) -> bytes:
        """Return the 32-byte root hash of everything consumed so far.

        Repeated calls without intervening consume() return the cached root.
        Consuming more data afterwards extends the stream and the next call
        recomputes.
        """
        if self._root is None:
            leaves = list(self._leaves)
            if self._residual or not leaves:
                leaves.append(_sha256(self._residual))
            self._root = fold_hashes(leaves)
        return self._root

    def hexdigest(self) -> str:
        return self.finalize().hex()

    @property
    def leaf_hashes(self) -> list[bytes]:
        """Hashes of the complete 1 MiB leaves consumed so far."""
        return list(self._leaves)

    @property
    def size(self) -> int:
        return self._size


def tree_hash_bytes(data: bytes) -> str:
    """Compute the hex tree hash of an in-memory buffer."""
    hasher = TreeHasher()
    hasher.consume(data)
    return hasher.hexdigest()


def combine_tree_hashes(digests: Iterable[str]) -> str:
    """Combine ordered per-part tree hashes into the archive tree hash.

    Args:
        digests: Hex tree hashes of consecutive parts, each part 1 MiB aligned

    Returns:
        Lowercase hex tree hash of the whole archive

    Raises:
        MalformedInputError: If the list is empty or a digest is not 64 hex characters
    """
    raw: list[bytes] = []
    for position, digest in enumerate(digests):
        if not isinstance(digest, str) or not _HEX_DIGEST.match(digest):
            raise MalformedInputError(
                f"Tree hash at position {position} is not 64 hex characters: {digest!r}"
            )
        raw.append(bytes.fromhex(digest))

    if not raw:
        raise MalformedInputError("No tree hashes to combine")

    return fold_hashes(raw).hex()
