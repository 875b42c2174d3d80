"""Tests for byte sources."""

import io

import pytest

from glacier_upload.errors import ValidationError
from glacier_upload.sources import FileSource, InMemorySource, PullStreamSource


class TestInMemorySource:
    def test_chunks(self):
        source = InMemorySource(b"abcdefghij")
        assert list(source.chunks(4)) == [b"abcd", b"efgh", b"ij"]
        assert source.size == 10
        assert source.rewindable

    def test_read_all_twice(self):
        source = InMemorySource(b"data")
        assert source.read_all() == b"data"
        assert source.read_all() == b"data"

    def test_empty(self):
        assert list(InMemorySource(b"").chunks()) == []


class TestFileSource:
    def test_whole_file(self, tmp_path):
        path = tmp_path / "f.bin"
        path.write_bytes(b"0123456789")
        with open(path, "rb") as f:
            source = FileSource(f)
            assert source.size == 10
            assert source.read_all() == b"0123456789"

    def test_window(self, tmp_path):
        path = tmp_path / "f.bin"
        path.write_bytes(b"0123456789")
        with open(path, "rb") as f:
            source = FileSource(f, offset=3, length=4)
            assert list(source.chunks(3)) == [b"345", b"6"]

    def test_rewinds_on_each_iteration(self, tmp_path):
        """Each pass starts again at the window offset."""
        path = tmp_path / "f.bin"
        path.write_bytes(b"0123456789")
        with open(path, "rb") as f:
            source = FileSource(f, offset=5)
            assert source.read_all() == b"56789"
            assert source.read_all() == b"56789"

    def test_window_past_end_of_file(self, tmp_path):
        path = tmp_path / "f.bin"
        path.write_bytes(b"0123")
        with open(path, "rb") as f:
            source = FileSource(f, offset=2, length=10)
            with pytest.raises(ValidationError):
                source.read_all()

    def test_negative_offset(self):
        with pytest.raises(ValidationError):
            FileSource(io.BytesIO(b"x"), offset=-1, length=1)

    def test_in_memory_handle_without_length(self):
        source = FileSource(io.BytesIO(b"abc"))
        assert source.size == 3
        assert source.read_all() == b"abc"

    def test_length_measured_from_offset(self):
        source = FileSource(io.BytesIO(b"0123456789"), offset=4)
        assert source.size == 6
        assert source.read_all() == b"456789"

    def test_sizing_keeps_handle_position(self):
        handle = io.BytesIO(b"0123456789")
        handle.seek(7)
        FileSource(handle)
        assert handle.tell() == 7

    def test_unseekable_handle(self):
        with pytest.raises(ValidationError):
            FileSource(io.RawIOBase())


class TestPullStreamSource:
    def test_pulls_until_empty(self):
        pieces = iter([b"ab", b"cd", b""])
        source = PullStreamSource(lambda: next(pieces))
        assert source.read_all() == b"abcd"
        assert source.size is None
        assert not source.rewindable

    def test_none_ends_stream(self):
        pieces = iter([b"ab", None])
        source = PullStreamSource(lambda: next(pieces))
        assert source.read_all() == b"ab"

    def test_single_use(self):
        source = PullStreamSource(lambda: b"")
        source.read_all()
        with pytest.raises(ValidationError):
            source.read_all()
