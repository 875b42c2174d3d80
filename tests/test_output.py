"""Tests for output formatting."""

import json

from glacier_upload.multipart import PartDescriptor, UploadSummary
from glacier_upload.output import (
    format_duration,
    format_error,
    format_parts,
    format_size,
    format_success,
    format_uploads,
)
from glacier_upload.upload import UploadResult

MIB = 1024 * 1024

SINGLE = UploadResult(archive_id="arch-1", tree_hash="a" * 64, size=100, elapsed_seconds=1.5)
MULTI = UploadResult(
    archive_id="arch-2",
    tree_hash="b" * 64,
    size=2 * MIB + 10,
    upload_id="up-1",
    parts=[
        PartDescriptor(0, MIB, "c" * 64),
        PartDescriptor(1, MIB, "d" * 64),
        PartDescriptor(2, 10, "e" * 64),
    ],
    resumed_parts=1,
    elapsed_seconds=75,
)


class TestFormatSuccess:
    """Test success output formatting."""

    def test_json_format(self):
        """Should output valid JSON."""
        data = json.loads(format_success(MULTI, json_output=True))

        assert data["status"] == "success"
        assert data["archive_id"] == "arch-2"
        assert data["upload_id"] == "up-1"
        assert data["parts"] == 3
        assert data["resumed_parts"] == 1

    def test_json_single_request(self):
        data = json.loads(format_success(SINGLE, json_output=True))
        assert data["upload_id"] is None
        assert data["parts"] == 0

    def test_human_format(self):
        """Should output human-readable text."""
        result = format_success(MULTI, json_output=False)

        assert "Upload complete" in result
        assert "arch-2" in result
        assert "3 (1 resumed)" in result
        assert "1m 15s" in result

    def test_human_single_request_has_no_parts(self):
        assert "Parts:" not in format_success(SINGLE)


class TestFormatError:
    """Test error output formatting."""

    def test_json_format(self):
        """Should output valid JSON error."""
        result = format_error(
            code="AUTH_FAILED",
            message="Invalid credentials",
            json_output=True,
        )

        data = json.loads(result)
        assert data["status"] == "error"
        assert data["code"] == "AUTH_FAILED"
        assert data["message"] == "Invalid credentials"

    def test_human_format(self):
        """Should output human-readable error."""
        result = format_error(
            code="AUTH_FAILED",
            message="Invalid credentials",
            json_output=False,
        )

        assert "Invalid credentials" in result


class TestFormatUploads:
    """Test multipart upload listing output."""

    UPLOADS = [
        UploadSummary("up-1", MIB, "photos", "2024-01-01T00:00:00.000Z"),
        UploadSummary("up-2", 4 * MIB),
    ]

    def test_json_format(self):
        data = json.loads(format_uploads(self.UPLOADS, json_output=True, vault="v"))

        assert data["vault"] == "v"
        assert [u["upload_id"] for u in data["uploads"]] == ["up-1", "up-2"]
        assert data["uploads"][1]["description"] is None

    def test_human_format(self):
        result = format_uploads(self.UPLOADS)

        assert "up-1" in result
        assert "'photos'" in result
        assert "4.0 MB" in result

    def test_empty(self):
        assert "no uploads" in format_uploads([])


class TestFormatParts:
    """Test part listing output."""

    def test_json_format(self):
        data = json.loads(format_parts(MULTI.parts, MIB, json_output=True, upload_id="up-1"))

        assert data["upload_id"] == "up-1"
        assert data["parts"][2] == {"index": 2, "size": 10, "tree_hash": "e" * 64}

    def test_human_format(self):
        result = format_parts(MULTI.parts, MIB, upload_id="up-1")

        assert f"bytes {2 * MIB}-{2 * MIB + 9}" in result
        assert "3 parts" in result

    def test_empty(self):
        assert "no parts" in format_parts([], MIB)


class TestFormatHelpers:
    def test_format_size(self):
        assert format_size(512) == "512.0 B"
        assert format_size(1536) == "1.5 KB"
        assert format_size(3 * MIB) == "3.0 MB"

    def test_format_duration(self):
        assert format_duration(12.34) == "12.3s"
        assert format_duration(125) == "2m 5s"
        assert format_duration(7260) == "2h 1m"
