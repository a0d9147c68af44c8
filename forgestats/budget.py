"""Rate budget tracking shared by all fetchers of one credential."""

import hashlib
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from shared.logger import get_logger

from .cancellation import CancellationToken
from .errors import WouldExceedBudget
from .models import RateBudget

logger = get_logger(__name__)


@dataclass(frozen=True)
class Permit:
    """Proof that one request unit was reserved."""

    resource: str
    remaining: Optional[int]


class RateBudgetTracker:
    """
    Remaining-request count and reset time for one rate-limit bucket.

    ``reserve`` and ``update`` run under one lock, so two fetchers can never
    both spend the last unit.
    """

    def __init__(
        self,
        resource: str = "core",
        safety_margin: int = 0,
        clock: Callable[[], float] = time.time,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """
        Initialize the tracker.

        Args:
            resource: Rate-limit bucket name (GitHub: core, search, ...)
            safety_margin: Units that are never reserved
            clock: Returns epoch seconds
            sleep: Wait function used by acquire() when no cancellation
                token is given
        """
        self.resource = resource
        self.safety_margin = safety_margin
        self._clock = clock
        self._sleep = sleep or time.sleep
        self._lock = threading.Lock()
        self._budget: Optional[RateBudget] = None
        self.reserved = 0

    @property
    def budget(self) -> Optional[RateBudget]:
        with self._lock:
            return self._budget

    def reserve(self, margin: Optional[int] = None) -> Permit:
        """
        Reserve one request unit.

        Args:
            margin: Units to keep in reserve for this call; the larger of
                this and the tracker's own safety_margin applies

        Returns:
            Permit for the request

        Raises:
            WouldExceedBudget: If no unit is available before reset_at
        """
        with self._lock:
            budget = self._budget
            if budget is None:
                self.reserved += 1
                return Permit(self.resource, None)

            now = self._clock()
            remaining = budget.remaining
            keep = max(self.safety_margin, margin or 0)
            if remaining <= keep:
                if budget.reset_at > now:
                    raise WouldExceedBudget(budget.reset_at, remaining, self.resource)
                # window rolled over
                remaining = budget.limit
                logger.debug(f"Rate window for '{self.resource}' reset, assuming {remaining} requests")
                if remaining <= keep:
                    raise WouldExceedBudget(budget.reset_at, remaining, self.resource)

            self._budget = RateBudget(
                remaining=remaining - 1,
                reset_at=budget.reset_at,
                limit=budget.limit,
                resource=budget.resource,
            )
            self.reserved += 1
            return Permit(self.resource, remaining - 1)

    def update(self, budget: Optional[RateBudget]) -> None:
        """Overwrite the tracked budget with the latest values from the service."""
        if budget is None:
            return
        with self._lock:
            self._budget = budget
        if budget.remaining <= max(self.safety_margin, budget.limit // 100):
            logger.warning(
                f"Rate budget for '{self.resource}' low: {budget.remaining}/{budget.limit}, "
                f"resets at {budget.reset_datetime:%H:%M:%S} UTC"
            )

    def seconds_until_reset(self) -> float:
        with self._lock:
            if self._budget is None:
                return 0.0
            return max(self._budget.reset_at - self._clock(), 0.0)

    def acquire(
        self, cancel: Optional[CancellationToken] = None, max_wait: float = 0.0, margin: Optional[int] = None
    ) -> Permit:
        """
        Reserve a unit, waiting for the reset if it is at most ``max_wait`` away.

        Raises:
            WouldExceedBudget: If the reset is further away than max_wait
            Cancelled: If cancelled while waiting
        """
        while True:
            try:
                return self.reserve(margin)
            except WouldExceedBudget as e:
                wait = max(e.reset_at - self._clock(), 0.0)
                if wait <= 0 or wait > max_wait:
                    raise
                logger.warning(f"Rate budget for '{self.resource}' exhausted, waiting {wait:.0f}s for reset")
                if cancel is not None:
                    cancel.sleep(wait)
                else:
                    self._sleep(wait)
                max_wait -= wait


def credential_key(token: Optional[str]) -> str:
    """Stable, non-reversible key for a credential."""
    if not token:
        return "anonymous"
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]


class BudgetRegistry:
    """
    Process-wide trackers, one per credential and rate-limit resource.

    Passed explicitly into fetchers; the service keeps one quota per
    credential and bucket, so all requests under it must share a tracker.
    """

    def __init__(self, safety_margin: int = 0, clock: Callable[[], float] = time.time):
        self.safety_margin = safety_margin
        self._clock = clock
        self._lock = threading.Lock()
        self._trackers: Dict[Tuple[str, str], RateBudgetTracker] = {}

    def tracker(self, token: Optional[str] = None, resource: str = "core") -> RateBudgetTracker:
        key = (credential_key(token), resource)
        with self._lock:
            tracker = self._trackers.get(key)
            if tracker is None:
                tracker = RateBudgetTracker(resource=resource, safety_margin=self.safety_margin, clock=self._clock)
                self._trackers[key] = tracker
            return tracker

    def clear(self) -> None:
        with self._lock:
            self._trackers.clear()


_default_registry = BudgetRegistry()


def default_registry() -> BudgetRegistry:
    """Registry shared by every fetch_snapshot call in this process."""
    return _default_registry
