"""Tests for header parsing and the httpx transport."""

import httpx
import pytest

from forgestats.errors import RequestTimeout, TransientError
from forgestats.transport import (
    HttpxTransport,
    Request,
    Response,
    parse_freshness,
    parse_next_link,
    parse_rate_budget,
    parse_retry_after,
)


class TestLinkHeader:
    """Test Link header parsing."""

    def test_next(self):
        """Test the next URL is found among other relations."""
        header = (
            '<https://api.github.com/repositories/1/contributors?page=2>; rel="next", '
            '<https://api.github.com/repositories/1/contributors?page=9>; rel="last"'
        )
        assert parse_next_link(header) == "https://api.github.com/repositories/1/contributors?page=2"

    def test_last_page(self):
        """Test no next relation on the last page."""
        header = '<https://api.github.com/x?page=1>; rel="first", <https://api.github.com/x?page=8>; rel="prev"'
        assert parse_next_link(header) is None

    def test_missing(self):
        """Test absent header."""
        assert parse_next_link(None) is None
        assert parse_next_link("") is None


class TestRateHeaders:
    """Test rate limit header parsing."""

    def test_budget(self):
        """Test a full set of rate headers."""
        response = Response(
            200,
            {
                "X-RateLimit-Remaining": "4321",
                "X-RateLimit-Limit": "5000",
                "X-RateLimit-Reset": "1700003600",
                "X-RateLimit-Resource": "search",
            },
        )
        budget = parse_rate_budget(response)
        assert budget.remaining == 4321
        assert budget.limit == 5000
        assert budget.reset_at == 1700003600.0
        assert budget.resource == "search"
        assert budget.reset_datetime.year == 2023

    def test_budget_missing(self):
        """Test responses without rate headers."""
        assert parse_rate_budget(Response(200, {})) is None
        assert parse_rate_budget(Response(200, {"X-RateLimit-Remaining": "abc", "X-RateLimit-Reset": "1"})) is None

    def test_retry_after_seconds(self):
        """Test delta-seconds Retry-After."""
        assert parse_retry_after(Response(403, {"Retry-After": "60"}), now=0) == 60.0

    def test_retry_after_http_date(self):
        """Test HTTP-date Retry-After."""
        response = Response(429, {"Retry-After": "Wed, 21 Oct 2015 07:28:30 GMT"})
        now = 1445412480.0  # 07:28:00 that day
        assert parse_retry_after(response, now=now) == 30.0

    def test_freshness(self):
        """Test ETag and Last-Modified become a freshness marker."""
        response = Response(200, {"ETag": 'W/"abc"', "Last-Modified": "Tue, 01 Oct 2024 10:00:00 GMT"})
        freshness = parse_freshness(response.headers)
        assert freshness.etag == 'W/"abc"'
        assert freshness.last_modified == "Tue, 01 Oct 2024 10:00:00 GMT"
        assert parse_freshness(Response(200, {}).headers) is None


class TestHttpxTransport:
    """Test the httpx-backed transport."""

    def test_send(self):
        """Test request shape and response mapping."""
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["etag"] = request.headers.get("if-none-match")
            return httpx.Response(200, json={"stargazers_count": 3}, headers={"ETag": '"x"'})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        with HttpxTransport(token="ghp_test", client=client) as transport:
            response = transport.send(
                Request(
                    url="https://api.github.com/repos/acme/widgets",
                    params={"per_page": "100"},
                    headers={"If-None-Match": '"old"'},
                )
            )

        assert response.status_code == 200
        assert response.header("ETag") == '"x"'
        assert b"stargazers_count" in response.body
        assert seen["url"] == "https://api.github.com/repos/acme/widgets?per_page=100"
        assert seen["auth"] == "Bearer ghp_test"
        assert seen["etag"] == '"old"'

    def test_error_status_returned(self):
        """Test HTTP errors are returned, not raised."""
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(404, json={})))
        transport = HttpxTransport(client=client)
        assert transport.send(Request(url="https://api.github.com/repos/a/b")).status_code == 404

    def test_timeout(self):
        """Test timeouts become RequestTimeout."""

        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        transport = HttpxTransport(client=httpx.Client(transport=httpx.MockTransport(handler)))
        with pytest.raises(RequestTimeout):
            transport.send(Request(url="https://api.github.com/repos/a/b"))

    def test_network_error(self):
        """Test connection problems become transient errors."""

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        transport = HttpxTransport(client=httpx.Client(transport=httpx.MockTransport(handler)))
        with pytest.raises(TransientError) as exc_info:
            transport.send(Request(url="https://api.github.com/repos/a/b"))
        assert not isinstance(exc_info.value, RequestTimeout)
