"""AWS credential resolution and request signing for the Glacier API."""

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

import boto3
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.exceptions import BotoCoreError, NoCredentialsError, PartialCredentialsError

from .errors import RemoteRejectedError

if TYPE_CHECKING:
    from botocore.credentials import ReadOnlyCredentials

SERVICE_NAME = "glacier"

# Service error codes that indicate credential issues
CREDENTIAL_ERROR_CODES = frozenset({
    "AccessDeniedException",
    "ExpiredTokenException",
    "InvalidSignatureException",
    "MissingAuthenticationTokenException",
    "UnrecognizedClientException",
})


def is_credential_error(exc: BaseException) -> bool:
    """Check if an exception indicates an AWS credential problem."""
    if isinstance(exc, (NoCredentialsError, PartialCredentialsError, AuthenticationError)):
        return True

    if isinstance(exc, RemoteRejectedError):
        return exc.code in CREDENTIAL_ERROR_CODES

    return False


class AuthenticationError(Exception):
    """Raised when no usable AWS credentials can be resolved."""

    pass


@dataclass
class AWSCredentials:
    """Explicit AWS credentials, used instead of the default provider chain."""

    access_key_id: str
    secret_access_key: str
    session_token: str | None = None


class CredentialManager:
    """Resolves AWS credentials through boto3 and signs requests with SigV4.

    Thread-safe. Refreshable credentials (instance roles, SSO, assumed roles)
    are refreshed by botocore; every signature uses a frozen snapshot.
    """

    def __init__(
        self,
        region: str,
        profile: str | None = None,
        credentials: AWSCredentials | None = None,
    ):
        self._region = region
        self._profile = profile
        self._explicit = credentials
        self._session: boto3.Session | None = None
        self._lock = threading.Lock()

    def _create_session(self) -> boto3.Session:
        if self._explicit is not None:
            return boto3.Session(
                aws_access_key_id=self._explicit.access_key_id,
                aws_secret_access_key=self._explicit.secret_access_key,
                aws_session_token=self._explicit.session_token,
                region_name=self._region,
            )
        return boto3.Session(profile_name=self._profile, region_name=self._region)

    def get_credentials(self) -> "ReadOnlyCredentials":
        """Return a frozen snapshot of the current credentials."""
        with self._lock:
            if self._session is None:
                try:
                    self._session = self._create_session()
                except BotoCoreError as e:
                    raise AuthenticationError(f"Cannot create AWS session: {e}") from e
            session = self._session

        try:
            credentials = session.get_credentials()
            if credentials is None:
                raise AuthenticationError(
                    "No AWS credentials found. Configure a profile, environment "
                    "variables, or an instance role."
                )
            return credentials.get_frozen_credentials()
        except BotoCoreError as e:
            raise AuthenticationError(f"Cannot resolve AWS credentials: {e}") from e

    def sign(self, method: str, url: str, headers: dict[str, str]) -> dict[str, str]:
        """Return headers with SigV4 authentication added.

        The payload hash is taken from the x-amz-content-sha256 header, so the
        body itself is never read here.
        """
        request = AWSRequest(method=method, url=url, headers=dict(headers))
        SigV4Auth(self.get_credentials(), SERVICE_NAME, self._region).add_auth(request)
        return dict(request.headers.items())

    @property
    def region(self) -> str:
        return self._region
