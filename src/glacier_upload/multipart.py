"""Multipart upload sessions.

A session moves through these states::

    UNINITIATED -> ACTIVE -> COMPLETING -> COMPLETED
                          -> ABORTING   -> ABORTED
                   (any session-scoped "not found") -> FAILED

A failed completion or abort request returns the session to ACTIVE so the
caller can inspect remote state with list_parts() and try again. Sessions are
driven by one owner; parts may be uploaded from several threads as long as
each thread sends distinct indices.
"""

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .archive import parse_archive_location, validate_description, vault_path
from .errors import (
    IntegrityMismatchError,
    ProtocolError,
    RemoteRejectedError,
    SessionExpiredError,
    ValidationError,
)
from .log import get_logger
from .part_size import validate_part_size
from .sources import ByteSource
from .transport import (
    ARCHIVE_DESCRIPTION_HEADER,
    ARCHIVE_SIZE_HEADER,
    CONTENT_HASH_HEADER,
    DEFAULT_ACCOUNT_ID,
    PART_SIZE_HEADER,
    TREE_HASH_HEADER,
    UPLOAD_ID_HEADER,
    Response,
    StreamingBody,
    Transport,
    decode_error,
    paginate,
    raise_for_status,
)
from .treehash import TreeHasher, combine_tree_hashes


class SessionState(Enum):
    UNINITIATED = "uninitiated"
    ACTIVE = "active"
    COMPLETING = "completing"
    ABORTING = "aborting"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SessionState.COMPLETED, SessionState.ABORTED, SessionState.FAILED})


@dataclass(frozen=True)
class PartDescriptor:
    """An accepted part: its position, length and tree hash."""

    index: int
    size: int
    tree_hash: str

    def byte_range(self, part_size: int) -> tuple[int, int]:
        """Inclusive (start, end) byte offsets of this part within the archive."""
        start = self.index * part_size
        return start, start + self.size - 1

    def to_dict(self) -> dict:
        return {"index": self.index, "size": self.size, "tree_hash": self.tree_hash}

    @classmethod
    def from_dict(cls, d: dict) -> "PartDescriptor":
        return cls(index=d["index"], size=d["size"], tree_hash=d["tree_hash"])


@dataclass(frozen=True)
class UploadSummary:
    """An in-progress multipart upload as listed by the service."""

    upload_id: str
    part_size: int
    description: str | None = None
    created: str | None = None
    vault_arn: str | None = None

    @classmethod
    def from_dict(cls, d: dict) -> "UploadSummary":
        try:
            return cls(
                upload_id=d["MultipartUploadId"],
                part_size=int(d["PartSizeInBytes"]),
                description=d.get("ArchiveDescription"),
                created=d.get("CreationDate"),
                vault_arn=d.get("VaultARN"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed upload entry {d!r}: {e}") from e


def content_range(index: int, part_size: int, length: int) -> str:
    start = index * part_size
    return f"bytes {start}-{start + length - 1}/*"


def parse_part_entry(entry: dict, part_size: int) -> PartDescriptor:
    """Convert a listed part ({"RangeInBytes": "0-1048575", ...}) to a descriptor."""
    try:
        start_text, end_text = entry["RangeInBytes"].split("-", 1)
        start, end = int(start_text), int(end_text)
        tree_hash = entry["SHA256TreeHash"].lower()
    except (KeyError, AttributeError, ValueError) as e:
        raise ProtocolError(f"Malformed part entry {entry!r}: {e}") from e

    if start % part_size or end < start:
        raise ProtocolError(f"Part range {start}-{end} is not aligned to {part_size}")

    return PartDescriptor(index=start // part_size, size=end - start + 1, tree_hash=tree_hash)


def list_multipart_uploads(
    transport: Transport, vault: str, account_id: str = DEFAULT_ACCOUNT_ID
) -> list[UploadSummary]:
    """List every in-progress multipart upload in a vault, following pagination."""
    path = vault_path(account_id, vault) + "/multipart-uploads"
    return [UploadSummary.from_dict(u) for u in paginate(transport, path, "UploadsList")]


class MultipartUploadSession:
    """Client side of one multipart upload."""

    def __init__(self, transport: Transport, vault: str, account_id: str = DEFAULT_ACCOUNT_ID):
        self._transport = transport
        self._vault = vault
        self._account_id = account_id
        self._vault_path = vault_path(account_id, vault)
        self._state = SessionState.UNINITIATED
        self._upload_id: str | None = None
        self._part_size: int | None = None
        self._archive_id: str | None = None
        self._parts_uploaded: list[PartDescriptor] = []
        self._highest_index: int | None = None
        self._short_index: int | None = None

    @classmethod
    def resume(
        cls,
        transport: Transport,
        vault: str,
        upload_id: str,
        part_size: int,
        account_id: str = DEFAULT_ACCOUNT_ID,
    ) -> "MultipartUploadSession":
        """Attach to an upload that was initiated earlier, possibly by another process."""
        if not upload_id:
            raise ValidationError("Upload id is required to resume a session")
        validate_part_size(part_size)

        session = cls(transport, vault, account_id=account_id)
        session._upload_id = upload_id
        session._part_size = part_size
        session._state = SessionState.ACTIVE
        return session

    @classmethod
    def attach(
        cls,
        transport: Transport,
        vault: str,
        upload_id: str,
        account_id: str = DEFAULT_ACCOUNT_ID,
    ) -> "MultipartUploadSession":
        """Resume an upload knowing only its id; the part size is looked up remotely."""
        for upload in list_multipart_uploads(transport, vault, account_id):
            if upload.upload_id == upload_id:
                return cls.resume(
                    transport, vault, upload_id, upload.part_size, account_id=account_id
                )
        raise SessionExpiredError(upload_id, f"no such upload in vault {vault}")

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def vault(self) -> str:
        return self._vault

    @property
    def upload_id(self) -> str | None:
        return self._upload_id

    @property
    def part_size(self) -> int | None:
        return self._part_size

    @property
    def archive_id(self) -> str | None:
        return self._archive_id

    @property
    def parts_uploaded(self) -> list[PartDescriptor]:
        """Parts accepted by this session object, in upload order."""
        return list(self._parts_uploaded)

    @property
    def _upload_path(self) -> str:
        return f"{self._vault_path}/multipart-uploads/{self._upload_id}"

    def _require_active(self, action: str) -> None:
        if self._state is SessionState.UNINITIATED:
            raise ValidationError(f"Cannot {action}: session has not been initiated")
        if self._state in TERMINAL_STATES:
            raise SessionExpiredError(self._upload_id, f"session is {self._state.value}")
        if self._state is not SessionState.ACTIVE:
            raise ValidationError(
                f"Cannot {action}: session is {self._state.value}"
            )

    def _reject(self, response: Response, fallback: SessionState) -> None:
        """Raise for a non-success response on a session-scoped request."""
        code, message = decode_error(response)
        if response.status == 404:
            if self._state not in TERMINAL_STATES:
                self._state = SessionState.FAILED
            raise SessionExpiredError(self._upload_id, message or code or "upload not found")
        if self._state not in TERMINAL_STATES:
            self._state = fallback
        raise RemoteRejectedError(response.status, code, message)

    def initiate(self, part_size: int, description: str = "") -> str:
        """Start the upload on the service and return its upload id.

        Raises:
            ValidationError: Bad part size or description, or already initiated
            RemoteRejectedError: The service refused the request
            ProtocolError: The service accepted but sent no upload id
        """
        logger = get_logger()
        if self._state is not SessionState.UNINITIATED:
            raise ValidationError(f"Session is already {self._state.value}")
        validate_part_size(part_size)
        validate_description(description)

        headers = {PART_SIZE_HEADER: str(part_size)}
        if description:
            headers[ARCHIVE_DESCRIPTION_HEADER] = description

        response = self._transport.send(
            "POST", f"{self._vault_path}/multipart-uploads", headers
        )
        raise_for_status(response)

        upload_id = response.headers.get(UPLOAD_ID_HEADER)
        if not upload_id:
            raise ProtocolError(
                f"Initiate succeeded, but the response has no {UPLOAD_ID_HEADER} header"
            )

        self._upload_id = upload_id
        self._part_size = part_size
        self._state = SessionState.ACTIVE
        logger.info(f"Initiated multipart upload {upload_id} ({part_size} byte parts)")
        return upload_id

    def _check_part(self, index: int, size: int) -> None:
        assert self._part_size is not None
        if size == 0:
            raise ValidationError(f"Part {index} is empty")
        if size > self._part_size:
            raise ValidationError(
                f"Part {index} is {size} bytes, larger than the part size {self._part_size}"
            )
        if self._short_index is not None and index > self._short_index:
            raise ValidationError(
                f"Part {self._short_index} was shorter than the part size and ended "
                f"the archive; part {index} cannot follow it"
            )
        if (
            size < self._part_size
            and self._highest_index is not None
            and index < self._highest_index
        ):
            raise ValidationError(
                f"Part {index} is shorter than the part size, but part "
                f"{self._highest_index} was already uploaded after it"
            )

    def _record(self, part: PartDescriptor) -> None:
        assert self._part_size is not None
        self._parts_uploaded.append(part)
        if self._highest_index is None or part.index > self._highest_index:
            self._highest_index = part.index
        if part.size < self._part_size:
            self._short_index = part.index
        elif part.index == self._short_index:
            self._short_index = None

    def upload_part(self, index: int, source: ByteSource) -> PartDescriptor:
        """Upload one part and verify the service's tree hash for it.

        The returned descriptor is the only proof the part was accepted; the
        caller keeps the ordered list for complete().

        Raises:
            ValidationError: Bad index or part length
            RemoteRejectedError: The service refused the part
            SessionExpiredError: The service no longer knows this upload
            IntegrityMismatchError: The service's tree hash differs from ours
        """
        logger = get_logger()
        self._require_active("upload a part")
        assert self._part_size is not None
        if index < 0:
            raise ValidationError(f"Part index cannot be negative: {index}")

        hasher = TreeHasher()
        sha = hashlib.sha256()

        if source.rewindable:
            size = source.size
            assert size is not None
            self._check_part(index, size)
            for chunk in source.chunks():
                hasher.consume(chunk)
                sha.update(chunk)
            body: bytes | StreamingBody = StreamingBody(source.chunks, size)
        else:
            buffer = bytearray()
            for chunk in source.chunks():
                buffer += chunk
                if len(buffer) > self._part_size:
                    raise ValidationError(
                        f"Part {index} exceeds the part size {self._part_size}"
                    )
            size = len(buffer)
            self._check_part(index, size)
            hasher.consume(buffer)
            sha.update(buffer)
            body = bytes(buffer)

        tree_hash = hasher.hexdigest()
        headers = {
            "Content-Range": content_range(index, self._part_size, size),
            "Content-Length": str(size),
            TREE_HASH_HEADER: tree_hash,
            CONTENT_HASH_HEADER: sha.hexdigest(),
        }

        response = self._transport.send("PUT", self._upload_path, headers, body)
        if not response.ok:
            self._reject(response, SessionState.ACTIVE)

        reported = response.headers.get(TREE_HASH_HEADER)
        if reported is None or reported.lower() != tree_hash:
            raise IntegrityMismatchError(f"part {index}", tree_hash, reported)

        part = PartDescriptor(index=index, size=size, tree_hash=tree_hash)
        self._record(part)
        logger.debug(f"Part {index} accepted ({size} bytes, {tree_hash})")
        return part

    def _validate_parts(self, parts: list[PartDescriptor], total_size: int) -> None:
        assert self._part_size is not None
        if not parts:
            raise ValidationError("Cannot complete an upload with no parts")

        for position, part in enumerate(parts):
            if part.index != position:
                raise ValidationError(
                    f"Parts must be contiguous and ordered: expected index "
                    f"{position}, found {part.index}"
                )
            is_last = position == len(parts) - 1
            if not is_last and part.size != self._part_size:
                raise ValidationError(
                    f"Part {part.index} is {part.size} bytes; only the last part "
                    f"may differ from the part size {self._part_size}"
                )
            if part.size <= 0 or part.size > self._part_size:
                raise ValidationError(f"Part {part.index} has invalid size {part.size}")

        declared = sum(p.size for p in parts)
        if declared != total_size:
            raise ValidationError(
                f"Parts add up to {declared} bytes, but the archive size is {total_size}"
            )

    def complete(self, parts: Iterable[PartDescriptor], total_size: int) -> str:
        """Assemble the uploaded parts into an archive and return its id.

        On RemoteRejectedError the session stays ACTIVE so the caller can
        list_parts(), fill gaps, and complete again.

        Raises:
            ValidationError: Parts are not contiguous or do not add up to total_size
            MalformedInputError: A part carries a malformed tree hash
            RemoteRejectedError: The service refused to assemble the archive
            SessionExpiredError: The service no longer knows this upload
            IntegrityMismatchError: The service reported a different archive tree hash
            ProtocolError: The success response has no parseable location
        """
        logger = get_logger()
        self._require_active("complete")
        parts = list(parts)
        self._validate_parts(parts, total_size)
        tree_hash = combine_tree_hashes(p.tree_hash for p in parts)

        headers = {
            TREE_HASH_HEADER: tree_hash,
            ARCHIVE_SIZE_HEADER: str(total_size),
        }

        self._state = SessionState.COMPLETING
        try:
            response = self._transport.send("POST", self._upload_path, headers)
        except Exception:
            self._state = SessionState.ACTIVE
            raise

        if not response.ok:
            self._reject(response, SessionState.ACTIVE)

        reported = response.headers.get(TREE_HASH_HEADER)
        if reported is not None and reported.lower() != tree_hash:
            self._state = SessionState.FAILED
            raise IntegrityMismatchError("archive", tree_hash, reported)

        try:
            archive_id = parse_archive_location(response.headers.get("location"))
        except ProtocolError:
            self._state = SessionState.FAILED
            raise

        self._archive_id = archive_id
        self._state = SessionState.COMPLETED
        logger.info(
            f"Completed upload {self._upload_id}: archive {archive_id} "
            f"({total_size} bytes, {len(parts)} parts)"
        )
        return archive_id

    def abort(self) -> None:
        """Cancel the upload and release its server-side parts.

        Raises:
            RemoteRejectedError: The service refused; the session stays ACTIVE
            SessionExpiredError: The service no longer knows this upload
            ProtocolError: The service answered with a success other than 204
        """
        logger = get_logger()
        self._require_active("abort")

        self._state = SessionState.ABORTING
        try:
            response = self._transport.send("DELETE", self._upload_path)
        except Exception:
            self._state = SessionState.ACTIVE
            raise

        if response.status == 204:
            self._state = SessionState.ABORTED
            logger.info(f"Aborted multipart upload {self._upload_id}")
            return

        if response.ok:
            self._state = SessionState.FAILED
            raise ProtocolError(
                f"Abort of {self._upload_id} answered {response.status}, expected 204"
            )

        self._reject(response, SessionState.ACTIVE)

    def list_parts(self) -> list[PartDescriptor]:
        """List the parts the service holds for this upload, ordered by index."""
        if self._upload_id is None or self._part_size is None:
            raise ValidationError("Cannot list parts: session has not been initiated")
        part_size = self._part_size

        def on_error(response: Response) -> None:
            self._reject(response, self._state)

        entries = paginate(self._transport, self._upload_path, "Parts", on_error=on_error)
        parts = [parse_part_entry(entry, part_size) for entry in entries]
        return sorted(parts, key=lambda p: p.index)

    def list_uploads(self) -> list[UploadSummary]:
        """List every in-progress upload in this session's vault."""
        return list_multipart_uploads(self._transport, self._vault, self._account_id)
