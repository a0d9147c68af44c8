"""Shared fixtures: a fake clock and a scripted transport."""

import json
import threading
from typing import Any, Dict, List, Optional, Union
from urllib.parse import parse_qsl, urlsplit

import pytest

from forgestats.budget import BudgetRegistry
from forgestats.transport import Request, Response

BASE_URL = "https://api.github.com"
RESET_AT = 1_700_003_600.0


class FakeClock:
    """Epoch clock that only moves when told to (or when slept on)."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now
        self.sleeps: List[float] = []
        self._lock = threading.Lock()

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_response(
    data: Any = None,
    status: int = 200,
    remaining: Optional[int] = 4999,
    limit: int = 5000,
    reset: float = RESET_AT,
    resource: str = "core",
    etag: Optional[str] = None,
    next_url: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> Response:
    """Build a Response with GitHub-style rate headers."""
    all_headers = {}
    if remaining is not None:
        all_headers.update(
            {
                "X-RateLimit-Remaining": str(remaining),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Reset": str(int(reset)),
                "X-RateLimit-Resource": resource,
            }
        )
    if etag:
        all_headers["ETag"] = etag
    if next_url:
        all_headers["Link"] = f'<{next_url}>; rel="next", <{next_url}&last=1>; rel="last"'
    all_headers.update(headers or {})
    body = b"" if data is None else json.dumps(data).encode("utf-8")
    return Response(status_code=status, headers=all_headers, body=body)


Scripted = Union[Response, Exception]


class ScriptedTransport:
    """
    Transport answering from a script keyed by request route.

    A route is the URL path, plus ``?page=N`` when the URL carries a page
    number, plus ``?q=...`` for search requests. A route maps to one
    response or a list consumed in order (the last entry repeats).
    """

    def __init__(self, routes: Optional[Dict[str, Union[Scripted, List[Scripted]]]] = None):
        self.routes: Dict[str, List[Scripted]] = {}
        self.requests: List[Request] = []
        self._lock = threading.Lock()
        for key, value in (routes or {}).items():
            self.add(key, value)

    def add(self, key: str, value: Union[Scripted, List[Scripted]]) -> None:
        self.routes[key] = list(value) if isinstance(value, list) else [value]

    @staticmethod
    def route(request: Request) -> str:
        parts = urlsplit(request.url)
        key = parts.path
        query = dict(parse_qsl(parts.query))
        if "page" in query:
            key += f"?page={query['page']}"
        if "q" in request.params:
            key += f"?q={request.params['q']}"
        return key

    def send(self, request: Request) -> Response:
        key = self.route(request)
        with self._lock:
            self.requests.append(request)
            script = self.routes.get(key)
            if not script:
                return make_response({"message": "Not Found"}, status=404)
            item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, Exception):
            raise item
        return item

    def count(self, key: str) -> int:
        return sum(1 for r in self.requests if self.route(r) == key)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return BudgetRegistry(clock=clock)


@pytest.fixture
def repo_payload():
    return {
        "name": "widgets",
        "full_name": "acme/widgets",
        "stargazers_count": 1234,
        "forks_count": 56,
        "subscribers_count": 78,
        "open_issues_count": 9,
    }
