"""Fetch one statistic category for a repository."""

import time
from typing import Callable, Dict, Optional

from shared.logger import get_logger

from .budget import BudgetRegistry, RateBudgetTracker
from .cancellation import CancellationToken
from .categories import CategorySpec, load_json, spec_for
from .config import DEFAULT_API_URL, DEFAULT_OPTIONS, GITHUB, ApiConventions, FetchOptions
from .errors import (
    Cancelled,
    DecodeError,
    FailureReason,
    FetchFailure,
    PaginationExhausted,
    PermanentError,
    RateLimitExceeded,
    RetriesExhausted,
    TransientError,
    WouldExceedBudget,
)
from .models import Category, FetchTask, Page, PageToken, RepositoryRef, StatResult, TaskState
from .paginator import Paginator
from .retry import RetryController, RetryPolicy
from .transport import Request, Response, Transport, parse_freshness, parse_next_link, parse_rate_budget, parse_retry_after

logger = get_logger(__name__)


class _NotModified(Exception):
    """Internal signal: the first page answered 304 to a conditional request."""


def classify_response(response: Response, url: str, now: float, conventions: ApiConventions = GITHUB) -> None:
    """
    Raise the engine error matching a response status, or return for success.

    2xx (except 202) and 304 pass. 202 means GitHub is still computing a
    statistics endpoint and is retried like a server error.

    Raises:
        RateLimitExceeded: 429, or 403 with an exhausted budget or Retry-After
        TransientError: 202, 408 and 5xx
        PermanentError: Any other 4xx
    """
    status = response.status_code
    if status == 304 or (200 <= status < 300 and status != 202):
        return

    message = _error_message(response)
    if status == 202:
        raise TransientError(f"Statistics for {url} are still being computed", status)

    if status in (403, 429):
        retry_after = parse_retry_after(response, now, conventions)
        budget = parse_rate_budget(response, conventions)
        if status == 429 or retry_after is not None or (budget is not None and budget.remaining == 0):
            raise RateLimitExceeded(
                f"Rate limit exceeded{message}",
                status,
                reset_at=budget.reset_at if budget is not None else None,
                retry_after=retry_after,
            )
        raise PermanentError(f"Access forbidden to {url}{message}", status)

    if status == 408 or status >= 500:
        raise TransientError(f"Server error {status} on {url}{message}", status)
    if status == 401:
        raise PermanentError(f"Authentication failed{message}. Check your GitHub token.", status)
    if status == 404:
        raise PermanentError(f"Not found: {url}{message}", status)
    raise PermanentError(f"HTTP {status} from {url}{message}", status)


def _error_message(response: Response) -> str:
    try:
        data = load_json(response.body)
    except DecodeError:
        return ""
    if isinstance(data, dict) and data.get("message"):
        return f" - {data['message']}"
    return ""


class Fetcher:
    """
    Issues the requests for one category and turns them into a StatResult.

    Every request reserves a unit from the rate budget, runs under the retry
    controller and feeds the response's rate headers back into the budget.
    Collections are walked page by page with a Paginator.
    """

    def __init__(
        self,
        transport: Transport,
        budgets: BudgetRegistry,
        token: Optional[str] = None,
        base_url: str = DEFAULT_API_URL,
        options: FetchOptions = DEFAULT_OPTIONS,
        conventions: ApiConventions = GITHUB,
        retry: Optional[RetryController] = None,
        cancel: Optional[CancellationToken] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the fetcher.

        Args:
            transport: Sends requests
            budgets: Registry holding the shared rate budget trackers
            token: Credential the requests are made under (selects the tracker)
            base_url: API root
            options: Page limits and retry settings
            conventions: Header and parameter names of the API
            retry: Retry controller; built from options when omitted
            cancel: Cooperative cancellation flag
            clock: Returns epoch seconds
        """
        self._transport = transport
        self._budgets = budgets
        self._token = token
        self.base_url = base_url.rstrip("/")
        self.options = options
        self.conventions = conventions
        self._clock = clock
        self.cancel = cancel
        self.retry = retry or RetryController(
            RetryPolicy(
                max_attempts=options.max_retries,
                base_delay=options.base_delay,
                max_delay=options.max_delay,
                max_reset_wait=options.max_reset_wait,
            ),
            clock=clock,
        )

    def fetch(
        self,
        ref: RepositoryRef,
        category: Category,
        previous: Optional[StatResult] = None,
        task: Optional[FetchTask] = None,
    ) -> StatResult:
        """
        Fetch one category.

        Args:
            ref: Target repository
            category: Statistic to fetch
            previous: Earlier result; its freshness marker makes the first
                request conditional and a 304 returns it unchanged. For
                collections only the first page is compared, so a change
                confined to later pages is reported as unchanged
            task: Task record to keep up to date

        Returns:
            StatResult for the category

        Raises:
            FetchFailure: With the reason the category could not be fetched
        """
        spec = spec_for(category)
        tracker = self._budgets.tracker(self._token, spec.resource)
        if previous is not None and (previous.category != category or not previous.freshness):
            previous = None
        if task is not None:
            task.state = TaskState.IN_PROGRESS

        logger.info(f"Fetching {category.value} for {ref}")
        try:
            if self.cancel is not None:
                self.cancel.raise_if_cancelled()
            if spec.paginated:
                result = self._fetch_collection(ref, category, spec, tracker, previous, task)
            else:
                result = self._fetch_count(ref, category, spec, tracker, previous, task)
        except _NotModified:
            logger.info(f"{category.value} for {ref} unchanged since last fetch")
            result = previous
        except WouldExceedBudget as e:
            raise self._failure(category, FailureReason.RATE_LIMITED, e, task) from e
        except RetriesExhausted as e:
            raise self._failure(category, FailureReason.TRANSPORT, e, task) from e
        except DecodeError as e:
            raise self._failure(category, FailureReason.DECODE, e, task) from e
        except PermanentError as e:
            raise self._failure(category, FailureReason.TRANSPORT, e, task) from e
        except PaginationExhausted as e:
            raise self._failure(category, FailureReason.PAGINATION, e, task) from e
        except Cancelled as e:
            raise self._failure(category, FailureReason.CANCELLED, e, task) from e

        if task is not None:
            task.state = TaskState.SUCCEEDED
        logger.info(f"Fetched {category.value} for {ref}: {result.count:,}")
        return result

    def _failure(
        self, category: Category, reason: FailureReason, cause: Exception, task: Optional[FetchTask]
    ) -> FetchFailure:
        run = self.retry.last_run
        failure = FetchFailure(category, reason, cause, run.attempts if run is not None else 0)
        if task is not None:
            task.state = TaskState.FAILED
            task.failure = failure
        logger.error(f"Failed to fetch {category.value}: {cause}")
        return failure

    def _fetch_count(self, ref, category, spec: CategorySpec, tracker, previous, task) -> StatResult:
        response = self._send(self._first_request(ref, spec, previous), tracker, task)
        if response.status_code == 304:
            self._expect_conditional(previous)
        return StatResult(
            category=category,
            value=spec.decode(response.body),
            freshness=parse_freshness(response.headers, self.conventions),
            fetched_at=self._clock(),
            pages=1,
        )

    def _fetch_collection(self, ref, category, spec: CategorySpec, tracker, previous, task) -> StatResult:
        def fetch_page(token: PageToken) -> Page:
            first = token is None
            request = self._first_request(ref, spec, previous) if first else Request(url=token)
            response = self._send(request, tracker, task)
            if response.status_code == 304:
                self._expect_conditional(previous if first else None)
            return Page(
                items=spec.decode(response.body),
                next_token=parse_next_link(response.header(self.conventions.link_header)),
                freshness=parse_freshness(response.headers, self.conventions) if first else None,
            )

        paginator = Paginator(
            fetch_page,
            max_pages=self.options.max_pages,
            hard_ceiling=self.options.page_ceiling,
            cancel=self.cancel,
        )
        items = paginator.collect()
        if paginator.truncated:
            logger.warning(f"{category.value} for {ref} truncated after {paginator.pages} pages")

        return StatResult(
            category=category,
            value=tuple(items),
            freshness=paginator.first_page.freshness if paginator.first_page else None,
            fetched_at=self._clock(),
            pages=paginator.pages,
            truncated=paginator.truncated,
        )

    def _first_request(self, ref: RepositoryRef, spec: CategorySpec, previous: Optional[StatResult]) -> Request:
        params: Dict[str, str] = {}
        if spec.paginated:
            params[self.conventions.per_page_param] = str(self.options.per_page)
        params.update(spec.params(ref))
        headers = previous.freshness.conditional_headers() if previous is not None else {}
        return Request(url=spec.url(self.base_url, ref), params=params, headers=headers)

    @staticmethod
    def _expect_conditional(previous: Optional[StatResult]) -> None:
        if previous is None:
            raise PermanentError("Unexpected 304 Not Modified for an unconditional request", 304)
        raise _NotModified()

    def _send(self, request: Request, tracker: RateBudgetTracker, task: Optional[FetchTask]) -> Response:
        def attempt_once() -> Response:
            tracker.acquire(self.cancel, max_wait=self.options.max_reset_wait, margin=self.options.safety_margin)
            response = self._transport.send(request)
            tracker.update(parse_rate_budget(response, self.conventions))
            classify_response(response, request.url, self._clock(), self.conventions)
            return response

        def on_retry(attempt: int, delay: float, error: Exception) -> None:
            if task is not None:
                task.state = TaskState.RETRYING
                if isinstance(error, RateLimitExceeded):
                    logger.warning(f"{task.category.value}: rate limited, waiting {delay:.0f}s")

        try:
            return self.retry.attempt(attempt_once, self.cancel, on_retry)
        finally:
            if task is not None:
                run = self.retry.last_run
                task.attempts += run.attempts if run is not None else 0
                if task.state is TaskState.RETRYING:
                    task.state = TaskState.IN_PROGRESS
