"""Retry with exponential backoff on top of tenacity."""

import random
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, TypeVar

from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception_type, stop_after_attempt
from tenacity.wait import wait_base

from shared.logger import get_logger

from .cancellation import CancellationToken
from .errors import RateLimitExceeded, RetriesExhausted, TransientError, WouldExceedBudget
from .models import TaskState

logger = get_logger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, float, Exception], None]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff parameters.

    Attributes:
        max_attempts: Attempts allowed, first one included
        base_delay: Delay before the first retry, doubled per retry
        max_delay: Cap on the exponential delay (before jitter)
        max_reset_wait: Longest wait honoured for a rate-limit reset
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 60.0
    max_reset_wait: float = 900.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def backoff(self, retry: int) -> float:
        """Exponential delay for the ``retry``-th retry (0-based), without jitter."""
        return min(self.base_delay * (2 ** retry), self.max_delay)


@dataclass
class RetryRun:
    """Bookkeeping for one attempt() call."""

    state: TaskState = TaskState.PENDING
    attempts: int = 0
    base_delays: List[float] = field(default_factory=list)
    delays: List[float] = field(default_factory=list)
    last_error: Optional[Exception] = None


class wait_backoff_or_reset(wait_base):
    """
    Exponential backoff with jitter, or the service's own wait for rate limits.

    A RateLimitExceeded waits for its Retry-After or reset time instead;
    if that is further off than ``max_reset_wait`` WouldExceedBudget is
    raised rather than sleeping.
    """

    def __init__(self, policy: RetryPolicy, rng: random.Random, clock: Callable[[], float], run: RetryRun):
        self.policy = policy
        self.rng = rng
        self.clock = clock
        self.run = run

    def __call__(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception()
        if isinstance(error, RateLimitExceeded):
            base = delay = self.reset_delay(error)
        else:
            base = self.policy.backoff(retry_state.attempt_number - 1)
            delay = base + self.rng.random() * base
        self.run.base_delays.append(base)
        self.run.delays.append(delay)
        return delay

    def reset_delay(self, error: RateLimitExceeded) -> float:
        now = self.clock()
        if error.retry_after is not None:
            wait = error.retry_after
        elif error.reset_at is not None:
            wait = max(error.reset_at - now, 0.0)
        else:
            return self.policy.backoff(0)

        if wait > self.policy.max_reset_wait:
            raise WouldExceedBudget(error.reset_at if error.reset_at is not None else now + wait)
        return wait


class RetryController:
    """
    Runs an operation until it succeeds, fails permanently or runs out of attempts.

    States move PENDING -> IN_PROGRESS -> (RETRYING -> IN_PROGRESS)* ->
    SUCCEEDED | FAILED. Only TransientError (and its RateLimitExceeded
    subclass) leads to RETRYING; anything else fails on the spot.

    One controller serves one fetcher; ``last_run`` describes its most
    recent call.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], None]] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._clock = clock
        self.last_run: Optional[RetryRun] = None

    def attempt(
        self,
        operation: Callable[[], T],
        cancel: Optional[CancellationToken] = None,
        on_retry: Optional[RetryCallback] = None,
    ) -> T:
        """
        Run ``operation`` under the retry policy.

        Args:
            operation: Zero-argument callable performing one attempt
            cancel: Checked before each attempt and after each backoff
            on_retry: Called with (attempt number, delay, error) before sleeping

        Returns:
            The operation's result

        Raises:
            RetriesExhausted: Every attempt failed transiently
            WouldExceedBudget: A rate-limit reset is further off than max_reset_wait
            Cancelled: Cancellation was requested
            Exception: Any non-transient error from the operation, unchanged
        """
        run = RetryRun()
        self.last_run = run

        def before(retry_state: RetryCallState) -> None:
            if cancel is not None:
                cancel.raise_if_cancelled()
            run.state = TaskState.IN_PROGRESS
            run.attempts = retry_state.attempt_number

        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            delay = run.delays[-1]
            run.state = TaskState.RETRYING
            run.last_error = error
            logger.warning(f"Attempt {run.attempts}/{self.policy.max_attempts} failed ({error}), retrying in {delay:.1f}s")
            if on_retry is not None:
                on_retry(retry_state.attempt_number, delay, error)

        retrying = Retrying(
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=wait_backoff_or_reset(self.policy, self._rng, self._clock, run),
            retry=retry_if_exception_type(TransientError),
            sleep=lambda seconds: self._backoff_sleep(seconds, cancel),
            before=before,
            before_sleep=before_sleep,
        )

        try:
            result = retrying(operation)
        except RetryError as e:
            error = e.last_attempt.exception()
            run.state = TaskState.FAILED
            run.last_error = error
            logger.warning(f"Giving up after {run.attempts} attempts: {error}")
            raise RetriesExhausted(error, run.attempts) from error
        except Exception as e:
            run.state = TaskState.FAILED
            run.last_error = e
            raise

        run.state = TaskState.SUCCEEDED
        return result

    def _backoff_sleep(self, seconds: float, cancel: Optional[CancellationToken]) -> None:
        if self._sleep is not None:
            self._sleep(seconds)
            if cancel is not None:
                cancel.raise_if_cancelled()
        elif cancel is not None:
            cancel.sleep(seconds)
        else:
            time.sleep(seconds)
