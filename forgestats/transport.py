"""Request/response shapes and the httpx-backed transport."""

import re
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from typing import Dict, Mapping, Optional, Protocol

import httpx

from shared.logger import get_logger

from .config import DEFAULT_API_URL, GITHUB, ApiConventions
from .errors import RequestTimeout, TransientError
from .models import Freshness, PageToken, RateBudget

logger = get_logger(__name__)


@dataclass
class Request:
    """One HTTP request the engine wants sent."""

    url: str
    params: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    method: str = "GET"


@dataclass
class Response:
    """Raw response as returned by a transport. Header names are lower-cased."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self) -> None:
        self.headers = {k.lower(): v for k, v in self.headers.items()}

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


class Transport(Protocol):
    """Anything that can send a Request and return a Response."""

    def send(self, request: Request) -> Response:  # pragma: no cover
        ...


class HttpxTransport:
    """
    Transport over a shared ``httpx.Client``.

    Timeouts become RequestTimeout and connection problems TransientError, so
    the retry controller treats them as retryable. HTTP error statuses are
    returned as-is; classifying them is the fetcher's job.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 10.0,
        conventions: ApiConventions = GITHUB,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the transport.

        Args:
            token: GitHub personal access token (optional but recommended)
            base_url: API root
            timeout: Per-attempt timeout in seconds
            conventions: Header constants
            client: Pre-built client, mainly for tests
        """
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "Accept": conventions.accept,
            "User-Agent": conventions.user_agent,
            "X-GitHub-Api-Version": conventions.api_version,
        }

        if token:
            self.headers["Authorization"] = f"Bearer {token}"
            logger.debug("Using authenticated GitHub API")
        else:
            logger.warning("No GitHub token found. Rate limits: 60 req/hour (vs 5000 with token)")

        self._owns_client = client is None
        self._client = client or httpx.Client(headers=self.headers, timeout=timeout, follow_redirects=True)
        if client is not None:
            self._client.headers.update(self.headers)

    def send(self, request: Request) -> Response:
        logger.debug(f"{request.method} {request.url} {request.params or ''}")
        try:
            response = self._client.request(
                request.method,
                request.url,
                params=request.params or None,
                headers=request.headers or None,
            )
        except httpx.TimeoutException as e:
            raise RequestTimeout(f"Request to {request.url} timed out: {e}") from e
        except httpx.RequestError as e:
            raise TransientError(f"Network error: {e}") from e

        return Response(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.content,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


_LINK_RE = re.compile(r'<([^>]*)>\s*((?:;\s*[^;,]+)*)')
_REL_RE = re.compile(r'rel\s*=\s*"?([^";]+)"?')


def parse_next_link(value: Optional[str]) -> PageToken:
    """
    Extract the ``rel="next"`` URL from a Link header.

    Example:
        <https://api.github.com/x?page=2>; rel="next", <...?page=5>; rel="last"
    """
    if not value:
        return None
    for match in _LINK_RE.finditer(value):
        url, params = match.group(1), match.group(2)
        rel = _REL_RE.search(params)
        if rel and "next" in rel.group(1).split():
            return url
    return None


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def parse_rate_budget(response: Response, conventions: ApiConventions = GITHUB) -> Optional[RateBudget]:
    """Rate budget carried by a response, or None when headers are missing."""
    remaining = _to_int(response.header(conventions.remaining_header))
    reset = _to_int(response.header(conventions.reset_header))
    if remaining is None or reset is None:
        return None
    limit = _to_int(response.header(conventions.limit_header))
    return RateBudget(
        remaining=max(remaining, 0),
        reset_at=float(reset),
        limit=limit if limit is not None else remaining,
        resource=response.header(conventions.resource_header) or "core",
    )


def parse_retry_after(response: Response, now: float, conventions: ApiConventions = GITHUB) -> Optional[float]:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP date)."""
    value = response.header(conventions.retry_after_header)
    if not value:
        return None
    seconds = _to_int(value)
    if seconds is not None:
        return float(max(seconds, 0))
    try:
        return max(parsedate_to_datetime(value).timestamp() - now, 0.0)
    except (TypeError, ValueError):
        return None


def parse_freshness(headers: Mapping[str, str], conventions: ApiConventions = GITHUB) -> Optional[Freshness]:
    """Freshness marker from response headers."""
    freshness = Freshness(
        etag=headers.get(conventions.etag_header),
        last_modified=headers.get(conventions.last_modified_header),
    )
    return freshness if freshness else None
