"""Fan out category fetches and join them into one snapshot."""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Iterable, List, Optional

from shared.logger import get_logger

from .budget import BudgetRegistry
from .cancellation import CancellationToken
from .config import DEFAULT_API_URL, DEFAULT_OPTIONS, GITHUB, ApiConventions, FetchOptions
from .errors import FailureReason, FetchFailure
from .fetcher import Fetcher
from .models import Category, FetchTask, RepositoryRef, RepositorySnapshot, StatResult, TaskState
from .transport import Transport

logger = get_logger(__name__)

FetcherFactory = Callable[[CancellationToken], Fetcher]


class SnapshotOrchestrator:
    """
    Builds a RepositorySnapshot from concurrent per-category fetches.

    At most ``concurrency`` fetchers run at once; the rest wait for a free
    worker. A failing category never aborts its siblings: every requested
    category ends up either in the snapshot's results or in its failures.
    """

    def __init__(
        self,
        transport: Transport,
        budgets: BudgetRegistry,
        token: Optional[str] = None,
        base_url: str = DEFAULT_API_URL,
        options: FetchOptions = DEFAULT_OPTIONS,
        conventions: ApiConventions = GITHUB,
        fetcher_factory: Optional[FetcherFactory] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the orchestrator.

        Args:
            transport: Shared by all fetchers
            budgets: Rate budget registry shared by all fetchers
            token: Credential the requests are made under
            base_url: API root
            options: Fetch options applied to every category
            conventions: Header and parameter names of the API
            fetcher_factory: Builds one Fetcher per category; mainly for tests
            clock: Returns epoch seconds
        """
        self.transport = transport
        self.budgets = budgets
        self.token = token
        self.base_url = base_url
        self.options = options
        self.conventions = conventions
        self._clock = clock
        self._fetcher_factory = fetcher_factory or self._default_fetcher
        self.tasks: Dict[Category, FetchTask] = {}

    def _default_fetcher(self, cancel: CancellationToken) -> Fetcher:
        return Fetcher(
            self.transport,
            self.budgets,
            token=self.token,
            base_url=self.base_url,
            options=self.options,
            conventions=self.conventions,
            cancel=cancel,
            clock=self._clock,
        )

    def snapshot(
        self,
        ref: RepositoryRef,
        categories: Iterable[Category],
        concurrency: Optional[int] = None,
        previous: Optional[RepositorySnapshot] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> RepositorySnapshot:
        """
        Fetch every requested category and join the outcomes.

        Args:
            ref: Target repository
            categories: Categories to fetch (duplicates are ignored)
            concurrency: Worker pool width, defaults to options.concurrency
            previous: Earlier snapshot enabling conditional re-fetch
            cancel: Cooperative cancellation flag

        Returns:
            RepositorySnapshot; never raises for a category failure
        """
        width = self.options.concurrency if concurrency is None else concurrency
        if width < 1:
            raise ValueError(f"concurrency must be >= 1, got {width}")
        if previous is not None and previous.ref != ref:
            logger.warning(f"Ignoring previous snapshot of {previous.ref} for {ref}")
            previous = None

        requested: List[Category] = list(dict.fromkeys(categories))
        cancel = cancel or CancellationToken()
        self.tasks = {category: FetchTask(category) for category in requested}
        results: Dict[Category, StatResult] = {}
        failures: Dict[Category, FetchFailure] = {}

        if not requested:
            return RepositorySnapshot(ref=ref, fetched_at=self._clock())

        workers = min(width, len(requested))
        logger.info(f"Fetching {len(requested)} categories for {ref} with {workers} workers")

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="forgestats") as pool:
            futures = {
                pool.submit(self._run_task, ref, self.tasks[category], previous, cancel): category
                for category in requested
            }
            try:
                for future in as_completed(futures):
                    category = futures[future]
                    outcome = future.result()
                    if isinstance(outcome, FetchFailure):
                        failures[category] = outcome
                    else:
                        results[category] = outcome
            except BaseException:
                # KeyboardInterrupt and the like: let in-flight fetchers wind down
                cancel.cancel()
                raise

        snapshot = RepositorySnapshot(ref=ref, results=results, failures=failures, fetched_at=self._clock())
        if snapshot.is_complete:
            logger.info(f"Snapshot of {ref} complete ({len(results)} categories)")
        else:
            failed = ", ".join(c.value for c in snapshot.failed_categories)
            logger.warning(f"Snapshot of {ref} partially failed: {failed}")
        return snapshot

    def _run_task(
        self,
        ref: RepositoryRef,
        task: FetchTask,
        previous: Optional[RepositorySnapshot],
        cancel: CancellationToken,
    ):
        """Run one category; returns a StatResult or a FetchFailure."""
        if cancel.cancelled:
            failure = FetchFailure(task.category, FailureReason.CANCELLED)
            task.state = TaskState.FAILED
            task.failure = failure
            return failure

        prior = previous.get(task.category) if previous is not None else None
        try:
            return self._fetcher_factory(cancel).fetch(ref, task.category, previous=prior, task=task)
        except FetchFailure as failure:
            return failure
        except Exception as e:
            logger.exception(f"Unexpected error fetching {task.category.value}")
            failure = FetchFailure(task.category, FailureReason.TRANSPORT, e, task.attempts)
            task.state = TaskState.FAILED
            task.failure = failure
            return failure
