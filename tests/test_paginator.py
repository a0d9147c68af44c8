"""Tests for the Paginator."""

import pytest

from forgestats.cancellation import CancellationToken
from forgestats.errors import Cancelled, PaginationExhausted, PermanentError
from forgestats.models import Page
from forgestats.paginator import Paginator


def pages_from(book):
    """Page-fetch function serving ``book``: token -> Page, recording calls."""
    calls = []

    def fetch_page(token):
        calls.append(token)
        return book[token]

    return fetch_page, calls


THREE_PAGES = {
    None: Page(["a", "b"], next_token="p2"),
    "p2": Page(["c", "d"], next_token="p3"),
    "p3": Page(["e", "f"], next_token=None),
}


class TestPaginator:
    """Test cursor-driven pagination."""

    def test_collects_in_order(self):
        """Test 3 pages of 2 items yield 6 items in page order."""
        fetch_page, calls = pages_from(THREE_PAGES)
        paginator = Paginator(fetch_page)

        assert paginator.collect() == ["a", "b", "c", "d", "e", "f"]
        assert calls == [None, "p2", "p3"]
        assert paginator.pages == 3
        assert paginator.finished
        assert not paginator.truncated
        assert paginator.next_token is None

    def test_lazy(self):
        """Test pages are only fetched as items are consumed."""
        fetch_page, calls = pages_from(THREE_PAGES)
        iterator = iter(Paginator(fetch_page))

        assert next(iterator) == "a"
        assert next(iterator) == "b"
        assert calls == [None]
        assert next(iterator) == "c"
        assert calls == [None, "p2"]

    def test_first_page_kept(self):
        """Test the first page is exposed after iteration."""
        fetch_page, _ = pages_from(THREE_PAGES)
        paginator = Paginator(fetch_page)
        paginator.collect()
        assert paginator.first_page is THREE_PAGES[None]

    def test_empty_page_with_cursor_continues(self):
        """Test an empty page that still has a next cursor is skipped over."""
        book = {
            None: Page(["a"], next_token="p2"),
            "p2": Page([], next_token="p3"),
            "p3": Page(["b"], next_token=None),
        }
        fetch_page, _ = pages_from(book)
        assert Paginator(fetch_page).collect() == ["a", "b"]

    def test_soft_ceiling_truncates(self):
        """Test max_pages stops early and keeps the resume cursor."""
        fetch_page, calls = pages_from(THREE_PAGES)
        paginator = Paginator(fetch_page, max_pages=2)

        assert paginator.collect() == ["a", "b", "c", "d"]
        assert paginator.truncated
        assert paginator.next_token == "p3"
        assert calls == [None, "p2"]

    def test_restart_from_cursor(self):
        """Test a new paginator resumes where a truncated one stopped."""
        fetch_page, _ = pages_from(THREE_PAGES)
        first = Paginator(fetch_page, max_pages=1)
        head = first.collect()

        rest = Paginator(fetch_page, start=first.next_token).collect()

        assert head + rest == ["a", "b", "c", "d", "e", "f"]

    def test_hard_ceiling(self):
        """Test endless pagination fails with PaginationExhausted."""
        counter = {"n": 0}

        def endless(token):
            counter["n"] += 1
            return Page([], next_token=f"p{counter['n']}")

        with pytest.raises(PaginationExhausted) as exc_info:
            Paginator(endless, hard_ceiling=50).collect()
        assert exc_info.value.pages == 50
        assert counter["n"] == 50

    def test_exact_ceiling_is_fine(self):
        """Test finishing exactly at the hard ceiling is not an error."""
        fetch_page, _ = pages_from(THREE_PAGES)
        assert len(Paginator(fetch_page, hard_ceiling=3).collect()) == 6

    def test_repeated_cursor(self):
        """Test a cursor loop is detected."""
        book = {
            None: Page(["a"], next_token="p2"),
            "p2": Page(["b"], next_token="p2"),
        }
        fetch_page, _ = pages_from(book)
        with pytest.raises(PaginationExhausted, match="repeated"):
            Paginator(fetch_page).collect()

    def test_errors_propagate(self):
        """Test page failures are not swallowed or retried."""
        calls = []

        def failing(token):
            calls.append(token)
            raise PermanentError("boom", 404)

        with pytest.raises(PermanentError):
            Paginator(failing).collect()
        assert calls == [None]

    def test_cancellation_between_pages(self):
        """Test cancellation stops before the next page request."""
        token = CancellationToken()
        calls = []

        def fetch_page(page_token):
            calls.append(page_token)
            token.cancel()
            return THREE_PAGES[page_token]

        with pytest.raises(Cancelled):
            Paginator(fetch_page, cancel=token).collect()
        assert calls == [None]

    def test_single_use(self):
        """Test a paginator cannot be iterated twice."""
        fetch_page, _ = pages_from(THREE_PAGES)
        paginator = Paginator(fetch_page)
        paginator.collect()
        with pytest.raises(RuntimeError):
            paginator.collect()
