"""Authenticated request transport and pagination for the Glacier REST API."""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Protocol
from urllib.parse import urlencode

import requests
from requests.structures import CaseInsensitiveDict

from .auth import CredentialManager
from .errors import ProtocolError, RemoteRejectedError
from .log import get_logger
from .retry import retry_with_backoff

API_VERSION = "2012-06-01"
DEFAULT_ACCOUNT_ID = "-"
DEFAULT_PAGE_LIMIT = 1000
DEFAULT_TIMEOUT_SECONDS = 300

EMPTY_SHA256 = hashlib.sha256(b"").hexdigest()

TREE_HASH_HEADER = "x-amz-sha256-tree-hash"
CONTENT_HASH_HEADER = "x-amz-content-sha256"
UPLOAD_ID_HEADER = "x-amz-multipart-upload-id"
PART_SIZE_HEADER = "x-amz-part-size"
ARCHIVE_SIZE_HEADER = "x-amz-archive-size"
ARCHIVE_DESCRIPTION_HEADER = "x-amz-archive-description"


@dataclass
class Response:
    """A service response as seen by the upload core."""

    status: int
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> dict:
        try:
            data = json.loads(self.body or b"{}")
        except ValueError as e:
            raise ProtocolError(f"Response body is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ProtocolError(f"Expected a JSON object, got {type(data).__name__}")
        return data


class StreamingBody:
    """A request body of known length produced chunk by chunk.

    The factory is called on every iteration, so a retried request re-reads
    the data from the start.
    """

    def __init__(self, factory: Callable[[], Iterable[bytes]], length: int):
        self._factory = factory
        self._length = length

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._factory())

    def __len__(self) -> int:
        return self._length


Body = bytes | StreamingBody | None


class Transport(Protocol):
    """Sends one authenticated request and returns the service's answer."""

    def send(
        self,
        method: str,
        path: str,
        headers: dict[str, str] | None = None,
        body: Body = None,
    ) -> Response: ...


def decode_error(response: Response) -> tuple[str | None, str | None]:
    """Extract the service error code and message from an error body."""
    try:
        data = json.loads(response.body or b"{}")
    except ValueError:
        text = response.body.decode("utf-8", errors="replace").strip()
        return None, text or None
    if not isinstance(data, dict):
        return None, None
    return data.get("code"), data.get("message")


def raise_for_status(response: Response) -> None:
    """Raise RemoteRejectedError unless the response is a success."""
    if response.ok:
        return
    code, message = decode_error(response)
    raise RemoteRejectedError(response.status, code, message)


def with_query(path: str, **params: object) -> str:
    query = urlencode({k: v for k, v in params.items() if v is not None})
    if not query:
        return path
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}{query}"


def paginate(
    transport: Transport,
    path: str,
    result_key: str,
    limit: int = DEFAULT_PAGE_LIMIT,
    on_error: Callable[[Response], None] = raise_for_status,
) -> list[dict]:
    """Follow Marker continuation tokens and concatenate every page's results.

    Args:
        transport: Request transport
        path: List resource path, without limit or marker
        result_key: Name of the list field in each page (e.g. "Parts")
        limit: Page size requested from the service
        on_error: Called with a non-success response; must raise

    Returns:
        All items from all pages, in service order
    """
    logger = get_logger()
    items: list[dict] = []
    marker: str | None = None
    pages = 0

    while True:
        response = transport.send("GET", with_query(path, limit=limit, marker=marker))
        if not response.ok:
            on_error(response)
            raise_for_status(response)

        page = response.json()
        items.extend(page.get(result_key) or [])
        pages += 1

        marker = page.get("Marker")
        if not marker:
            break

    logger.debug(f"Listed {len(items)} {result_key} from {path} in {pages} page(s)")
    return items


class RequestsTransport:
    """Transport that signs requests with SigV4 and sends them with requests.

    Connection failures are retried with exponential backoff; any HTTP answer,
    success or not, is returned to the caller unchanged.
    """

    def __init__(
        self,
        credential_manager: CredentialManager,
        endpoint_url: str | None = None,
        retries: int = 3,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ):
        self._credentials = credential_manager
        self._endpoint = (
            endpoint_url or f"https://glacier.{credential_manager.region}.amazonaws.com"
        ).rstrip("/")
        self._retries = retries
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def send(
        self,
        method: str,
        path: str,
        headers: dict[str, str] | None = None,
        body: Body = None,
    ) -> Response:
        logger = get_logger()
        url = self._endpoint + path

        request_headers = {"x-amz-glacier-version": API_VERSION}
        request_headers.update(headers or {})
        if not any(k.lower() == CONTENT_HASH_HEADER for k in request_headers):
            if isinstance(body, StreamingBody):
                raise ValueError("Streaming bodies must carry an x-amz-content-sha256 header")
            request_headers[CONTENT_HASH_HEADER] = (
                hashlib.sha256(body).hexdigest() if body else EMPTY_SHA256
            )

        @retry_with_backoff(max_retries=self._retries)
        def _send_once() -> requests.Response:
            signed = self._credentials.sign(method, url, request_headers)
            return self._session.request(
                method,
                url,
                headers=signed,
                data=body,
                timeout=self._timeout,
            )

        raw = _send_once()
        response = Response(
            status=raw.status_code,
            headers=CaseInsensitiveDict(raw.headers),
            body=raw.content,
        )

        if response.ok:
            logger.debug(f"{method} {path} -> {response.status}")
        else:
            code, message = decode_error(response)
            logger.debug(f"{method} {path} -> {response.status} {code}: {message}")

        return response

    def close(self) -> None:
        self._session.close()
