"""Pytest configuration and fixtures."""

import hashlib
import json
import random
import secrets
from urllib.parse import parse_qs, urlsplit

import pytest
from requests.structures import CaseInsensitiveDict

from glacier_upload.transport import Response

MIB = 1024 * 1024
VAULT = "test-vault"
ACCOUNT_NUMBER = "123456789012"


def reference_tree_hash(data: bytes) -> str:
    """Straightforward tree hash used to check the library against."""
    level = [hashlib.sha256(data[i : i + MIB]).digest() for i in range(0, len(data), MIB)]
    if not level:
        level = [hashlib.sha256(b"").digest()]
    while len(level) > 1:
        paired = []
        for i in range(0, len(level), 2):
            if i + 1 < len(level):
                paired.append(hashlib.sha256(level[i] + level[i + 1]).digest())
            else:
                paired.append(level[i])
        level = paired
    return level[0].hex()


def make_data(size: int, seed: int = 0) -> bytes:
    return random.Random(seed).randbytes(size)


def _error(status: int, code: str, message: str) -> Response:
    body = json.dumps({"code": code, "message": message, "type": "Client"}).encode()
    return Response(status=status, headers=CaseInsensitiveDict(), body=body)


class FakeGlacier:
    """In-memory Glacier service speaking the REST protocol through Transport.send."""

    def __init__(self, vaults: tuple[str, ...] = (VAULT,)):
        self.vaults = set(vaults)
        self.uploads: dict[str, dict] = {}
        self.archives: dict[str, dict] = {}
        self.requests: list[tuple[str, str, dict]] = []
        # Part indices whose acknowledged tree hash is corrupted
        self.tamper_parts: set[int] = set()
        # Part indices that answer 500 instead of storing
        self.fail_parts: set[int] = set()
        # Responses returned verbatim, one per request, before normal handling
        self.scripted: list[Response] = []
        self.closed = False

    def send(self, method, path, headers=None, body=None):
        headers = CaseInsensitiveDict(headers or {})
        data = b"" if body is None else (body if isinstance(body, bytes) else b"".join(body))
        self.requests.append((method, path, dict(headers)))

        if self.scripted:
            return self.scripted.pop(0)

        url = urlsplit(path)
        query = {k: v[0] for k, v in parse_qs(url.query).items()}
        segments = url.path.strip("/").split("/")
        if len(segments) < 3 or segments[1] != "vaults":
            return _error(400, "InvalidParameterValueException", f"Bad path {path}")
        vault = segments[2]
        if vault not in self.vaults:
            return _error(404, "ResourceNotFoundException", f"Vault not found: {vault}")

        rest = segments[3:]
        if rest == ["archives"] and method == "POST":
            return self._upload_archive(vault, headers, data)
        if rest == ["multipart-uploads"] and method == "POST":
            return self._initiate(vault, headers)
        if rest == ["multipart-uploads"] and method == "GET":
            return self._list_uploads(vault, query)
        if len(rest) == 2 and rest[0] == "multipart-uploads":
            upload = self.uploads.get(rest[1])
            if upload is None or upload["vault"] != vault:
                return _error(
                    404, "ResourceNotFoundException", f"Multipart upload not found: {rest[1]}"
                )
            if method == "PUT":
                return self._upload_part(upload, headers, data)
            if method == "POST":
                return self._complete(rest[1], upload, headers)
            if method == "DELETE":
                del self.uploads[rest[1]]
                return Response(status=204)
            if method == "GET":
                return self._list_parts(rest[1], upload, query)

        return _error(400, "InvalidParameterValueException", f"Unsupported {method} {path}")

    def _store_archive(self, vault: str, data: bytes, description: str) -> Response:
        archive_id = secrets.token_urlsafe(104)[:138]
        tree_hash = reference_tree_hash(data)
        self.archives[archive_id] = {
            "vault": vault,
            "data": data,
            "description": description,
            "tree_hash": tree_hash,
        }
        return Response(
            status=201,
            headers=CaseInsensitiveDict({
                "location": f"/{ACCOUNT_NUMBER}/vaults/{vault}/archives/{archive_id}",
                "x-amz-archive-id": archive_id,
                "x-amz-sha256-tree-hash": tree_hash,
            }),
        )

    def _upload_archive(self, vault, headers, data):
        if headers.get("x-amz-sha256-tree-hash") != reference_tree_hash(data):
            return _error(400, "InvalidParameterValueException", "Checksum mismatch")
        if headers.get("x-amz-content-sha256") != hashlib.sha256(data).hexdigest():
            return _error(400, "InvalidParameterValueException", "Content hash mismatch")
        return self._store_archive(vault, data, headers.get("x-amz-archive-description", ""))

    def _initiate(self, vault, headers):
        upload_id = secrets.token_urlsafe(60)
        self.uploads[upload_id] = {
            "vault": vault,
            "part_size": int(headers["x-amz-part-size"]),
            "description": headers.get("x-amz-archive-description"),
            "created": "2024-01-01T00:00:00.000Z",
            "parts": {},
        }
        return Response(
            status=201,
            headers=CaseInsensitiveDict({"x-amz-multipart-upload-id": upload_id}),
        )

    def _upload_part(self, upload, headers, data):
        part_size = upload["part_size"]
        range_header = headers["Content-Range"]
        assert range_header.startswith("bytes ") and range_header.endswith("/*"), range_header
        start, end = (int(x) for x in range_header[len("bytes ") : -len("/*")].split("-"))
        if start % part_size or end - start + 1 != len(data) or len(data) > part_size:
            return _error(400, "InvalidParameterValueException", f"Bad range {range_header}")
        if int(headers["Content-Length"]) != len(data):
            return _error(400, "InvalidParameterValueException", "Bad content length")

        index = start // part_size
        if index in self.fail_parts:
            return _error(500, "ServiceUnavailableException", "Try again")

        tree_hash = reference_tree_hash(data)
        if headers.get("x-amz-sha256-tree-hash") != tree_hash:
            return _error(400, "InvalidParameterValueException", "Checksum mismatch")

        upload["parts"][start] = (data, tree_hash)
        reported = "0" * 64 if index in self.tamper_parts else tree_hash
        return Response(
            status=204,
            headers=CaseInsensitiveDict({"x-amz-sha256-tree-hash": reported}),
        )

    def _complete(self, upload_id, upload, headers):
        parts = sorted(upload["parts"].items())
        data = b"".join(chunk for _, (chunk, _) in parts)
        expected = 0
        for start, (chunk, _) in parts:
            if start != expected:
                return _error(400, "InvalidParameterValueException", "Missing parts")
            expected += len(chunk)
        if int(headers["x-amz-archive-size"]) != len(data):
            return _error(400, "InvalidParameterValueException", "Archive size mismatch")
        if headers["x-amz-sha256-tree-hash"] != reference_tree_hash(data):
            return _error(400, "InvalidParameterValueException", "Tree hash mismatch")

        del self.uploads[upload_id]
        return self._store_archive(upload["vault"], data, upload["description"] or "")

    def _page(self, items, query):
        limit = int(query.get("limit", 1000))
        offset = int(query.get("marker", 0))
        page = items[offset : offset + limit]
        marker = str(offset + limit) if offset + limit < len(items) else None
        return page, marker

    def _list_uploads(self, vault, query):
        items = [
            {
                "MultipartUploadId": upload_id,
                "PartSizeInBytes": u["part_size"],
                "ArchiveDescription": u["description"],
                "CreationDate": u["created"],
                "VaultARN": f"arn:aws:glacier:us-east-1:{ACCOUNT_NUMBER}:vaults/{vault}",
            }
            for upload_id, u in self.uploads.items()
            if u["vault"] == vault
        ]
        page, marker = self._page(items, query)
        body = {"UploadsList": page, "Marker": marker}
        return Response(status=200, body=json.dumps(body).encode())

    def _list_parts(self, upload_id, upload, query):
        items = [
            {"RangeInBytes": f"{start}-{start + len(chunk) - 1}", "SHA256TreeHash": tree_hash}
            for start, (chunk, tree_hash) in sorted(upload["parts"].items())
        ]
        page, marker = self._page(items, query)
        body = {
            "MultipartUploadId": upload_id,
            "PartSizeInBytes": upload["part_size"],
            "ArchiveDescription": upload["description"],
            "Parts": page,
            "Marker": marker,
        }
        return Response(status=200, body=json.dumps(body).encode())

    def close(self) -> None:
        self.closed = True

    def requests_for(self, method: str) -> list[tuple[str, str, dict]]:
        return [r for r in self.requests if r[0] == method]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the user's config files and GLACIER_* variables out of tests."""
    for name in ("GLACIER_REGION", "GLACIER_PROFILE", "GLACIER_ACCOUNT_ID", "GLACIER_WORKERS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(
        "glacier_upload.config.DEFAULT_CONFIG_PATHS", [tmp_path / "no-such-config.toml"]
    )


@pytest.fixture
def fake_glacier():
    """Provide an in-memory Glacier service with one vault."""
    return FakeGlacier()


@pytest.fixture
def tmp_journal_dir(tmp_path):
    """Provide a temporary journal directory."""
    journal_dir = tmp_path / "journal"
    journal_dir.mkdir()
    return journal_dir
