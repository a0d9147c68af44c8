"""Cursor-driven pagination over a page-fetch function."""

from typing import Any, Callable, Iterator, Optional, Set

from shared.logger import get_logger

from .cancellation import CancellationToken
from .errors import PaginationExhausted
from .models import Page, PageToken

logger = get_logger(__name__)

HARD_PAGE_CEILING = 10000

FetchPage = Callable[[PageToken], Page]


class Paginator:
    """
    Lazy iterator over the items of a paginated collection.

    Pages are requested strictly in cursor order: page N+1 is only requested
    once page N has produced its next token. Iteration ends when a page has
    no next token, or early when ``max_pages`` is reached, in which case
    ``truncated`` is set and ``next_token`` holds the cursor to resume from.

    Failures of the fetch function propagate untouched; retrying a page is
    the caller's concern.

    Attributes:
        pages: Pages fetched so far
        next_token: Cursor of the next unfetched page, None when finished
        truncated: True if iteration stopped at max_pages with pages left
        first_page: The first page fetched, if any
    """

    def __init__(
        self,
        fetch_page: FetchPage,
        start: PageToken = None,
        max_pages: Optional[int] = None,
        hard_ceiling: int = HARD_PAGE_CEILING,
        cancel: Optional[CancellationToken] = None,
    ):
        """
        Initialize the paginator.

        Args:
            fetch_page: Function returning the Page for a token (None = first page)
            start: Cursor to resume from
            max_pages: Soft page limit; stopping there marks the result truncated
            hard_ceiling: Page count after which a still-unfinished
                collection raises PaginationExhausted
            cancel: Checked before every page request
        """
        self._fetch_page = fetch_page
        self._cancel = cancel
        self.max_pages = max_pages
        self.hard_ceiling = hard_ceiling
        self.next_token: PageToken = start
        self.pages = 0
        self.truncated = False
        self.first_page: Optional[Page] = None
        self._started = False
        self._finished = False

    def __iter__(self) -> Iterator[Any]:
        return self._iterate()

    def _iterate(self) -> Iterator[Any]:
        if self._started:
            raise RuntimeError("Paginator already consumed; create a new one from next_token")
        self._started = True
        seen: Set[str] = set()

        while True:
            if self.max_pages is not None and self.pages >= self.max_pages:
                self.truncated = True
                logger.debug(f"Stopped after {self.pages} pages (max_pages reached)")
                return
            if self.pages >= self.hard_ceiling:
                raise PaginationExhausted(self.pages)
            if self._cancel is not None:
                self._cancel.raise_if_cancelled()

            page = self._fetch_page(self.next_token)
            self.pages += 1
            if self.first_page is None:
                self.first_page = page

            yield from page.items

            token = page.next_token
            if token is None:
                self.next_token = None
                self._finished = True
                return
            if token in seen:
                raise PaginationExhausted(self.pages, f"Cursor {token!r} repeated after {self.pages} pages")
            seen.add(token)
            if not page.items:
                logger.debug(f"Empty page {self.pages} with a next cursor, continuing")
            self.next_token = token

    @property
    def finished(self) -> bool:
        return self._finished

    def collect(self) -> list:
        """Fetch every page and return the items in order."""
        return list(self)
