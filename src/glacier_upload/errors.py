"""Error taxonomy for upload and verification failures."""


class GlacierError(Exception):
    """Base class for all errors raised by glacier-upload."""


class ValidationError(GlacierError, ValueError):
    """Raised for bad caller input, before any request is sent."""


class MalformedInputError(ValidationError):
    """Raised when a tree hash digest is not 64 hex characters."""


class ArchiveTooLargeError(GlacierError):
    """Raised when an archive exceeds what the service can store."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Archive of {size} bytes exceeds the limit of {limit} bytes")


class RemoteRejectedError(GlacierError):
    """Raised when the service answers with a non-success status."""

    def __init__(self, status: int, code: str | None = None, message: str | None = None):
        self.status = status
        self.code = code
        self.message = message
        detail = f"HTTP {status}"
        if code:
            detail += f" ({code})"
        if message:
            detail += f": {message}"
        super().__init__(detail)


class SessionExpiredError(GlacierError):
    """Raised when the service no longer recognizes an upload session."""

    def __init__(self, upload_id: str | None, reason: str):
        self.upload_id = upload_id
        self.reason = reason
        super().__init__(f"Upload {upload_id} is no longer usable: {reason}")


class ProtocolError(GlacierError):
    """Raised when a success response does not have the expected shape."""


class IntegrityMismatchError(GlacierError):
    """Raised when a locally computed tree hash disagrees with the service."""

    def __init__(self, what: str, expected: str, actual: str | None):
        self.what = what
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Tree hash mismatch for {what}: computed {expected}, service reported {actual}"
        )
