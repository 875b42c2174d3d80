"""Single-request archive upload."""

import hashlib
import re
from dataclasses import dataclass

from .errors import (
    ArchiveTooLargeError,
    IntegrityMismatchError,
    ProtocolError,
    ValidationError,
)
from .log import get_logger
from .sources import ByteSource
from .transport import (
    ARCHIVE_DESCRIPTION_HEADER,
    CONTENT_HASH_HEADER,
    DEFAULT_ACCOUNT_ID,
    TREE_HASH_HEADER,
    StreamingBody,
    Transport,
    raise_for_status,
)
from .treehash import MIB, TreeHasher

# Above this size the service only accepts multipart uploads
MAX_SINGLE_SHOT_SIZE = 4 * 1024 * MIB

MAX_DESCRIPTION_LENGTH = 1024

_VAULT_NAME = re.compile(r"^[A-Za-z0-9_.\-]{1,255}$")
_LOCATION = re.compile(r"^/([^/]+)/vaults/([^/]+)/archives/([^/?#]+)$")


@dataclass(frozen=True)
class StoredArchive:
    """What the service accepted for a single-request upload."""

    archive_id: str
    tree_hash: str
    size: int


def validate_vault_name(vault: str) -> None:
    if not isinstance(vault, str) or not _VAULT_NAME.match(vault):
        raise ValidationError(
            f"Invalid vault name {vault!r}: use 1-255 letters, digits, '_', '-' or '.'"
        )


def validate_description(description: str) -> None:
    """Descriptions are limited to 1024 printable ASCII characters."""
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Archive description is {len(description)} characters; "
            f"the limit is {MAX_DESCRIPTION_LENGTH}"
        )
    for ch in description:
        if not " " <= ch <= "~":
            raise ValidationError(
                f"Archive description contains a non-printable or non-ASCII character: {ch!r}"
            )


def vault_path(account_id: str, vault: str) -> str:
    validate_vault_name(vault)
    return f"/{account_id}/vaults/{vault}"


def parse_archive_location(location: str | None) -> str:
    """Extract the archive id from a /{account}/vaults/{vault}/archives/{id} location.

    Raises:
        ProtocolError: If the location is missing or does not match
    """
    if not location:
        raise ProtocolError("Request succeeded, but the response has no location header")

    match = _LOCATION.match(location)
    if match is None:
        raise ProtocolError(
            f"Request succeeded, but reported archive location does not match: {location}"
        )
    return match.group(3)


class ArchiveUploader:
    """Uploads a whole archive in one request.

    Suited to archives below the multipart threshold; the service recommends
    multipart above 100 MB and requires it above 4 GiB.
    """

    def __init__(self, transport: Transport, account_id: str = DEFAULT_ACCOUNT_ID):
        self._transport = transport
        self._account_id = account_id

    def upload(self, vault: str, source: ByteSource, description: str = "") -> str:
        """Upload source to vault and return the service-issued archive id."""
        return self.store(vault, source, description).archive_id

    def store(self, vault: str, source: ByteSource, description: str = "") -> StoredArchive:
        """Upload source to vault; the result carries the locally computed tree hash.

        Raises:
            ValidationError: Bad vault name or description
            ArchiveTooLargeError: Source is larger than 4 GiB
            RemoteRejectedError: The service refused the upload
            IntegrityMismatchError: The service reported a different tree hash
            ProtocolError: The success response has no parseable location
        """
        logger = get_logger()
        path = vault_path(self._account_id, vault) + "/archives"
        validate_description(description)

        hasher = TreeHasher()
        sha = hashlib.sha256()

        if source.rewindable:
            size = source.size
            assert size is not None
            if size > MAX_SINGLE_SHOT_SIZE:
                raise ArchiveTooLargeError(size, MAX_SINGLE_SHOT_SIZE)
            for chunk in source.chunks():
                hasher.consume(chunk)
                sha.update(chunk)
            body: bytes | StreamingBody = StreamingBody(source.chunks, size) if size else b""
        else:
            buffer = bytearray()
            for chunk in source.chunks():
                buffer += chunk
                if len(buffer) > MAX_SINGLE_SHOT_SIZE:
                    raise ArchiveTooLargeError(len(buffer), MAX_SINGLE_SHOT_SIZE)
            hasher.consume(buffer)
            sha.update(buffer)
            size = len(buffer)
            body = bytes(buffer)

        tree_hash = hasher.hexdigest()
        headers = {
            TREE_HASH_HEADER: tree_hash,
            CONTENT_HASH_HEADER: sha.hexdigest(),
            "Content-Length": str(size),
        }
        if description:
            headers[ARCHIVE_DESCRIPTION_HEADER] = description

        logger.info(f"Uploading {size} bytes to vault {vault} in a single request")
        response = self._transport.send("POST", path, headers, body)
        raise_for_status(response)

        reported = response.headers.get(TREE_HASH_HEADER)
        if reported is not None and reported.lower() != tree_hash:
            raise IntegrityMismatchError("archive", tree_hash, reported)

        archive_id = parse_archive_location(response.headers.get("location"))
        logger.info(f"Archive stored: {archive_id}")
        return StoredArchive(archive_id=archive_id, tree_hash=tree_hash, size=size)
