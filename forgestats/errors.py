"""Error taxonomy for the stats engine."""

from enum import Enum
from typing import Optional


class StatsError(Exception):
    """Base class for all engine errors."""


class WouldExceedBudget(StatsError):
    """
    The rate budget has no units left before its reset time.

    Recoverable by waiting until reset_at.
    """

    def __init__(self, reset_at: float, remaining: int = 0, resource: str = "core"):
        self.reset_at = reset_at
        self.remaining = remaining
        self.resource = resource
        super().__init__(f"Rate budget for '{resource}' exhausted ({remaining} left) until {reset_at:.0f}")


class TransientError(StatsError):
    """An error expected to clear up by retrying."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RequestTimeout(TransientError):
    """A single request attempt exceeded its timeout."""


class RateLimitExceeded(TransientError):
    """
    The service rejected a request because the rate limit was hit.

    Carries the service's own wait hint: reset_at (epoch seconds) and/or
    retry_after (seconds).
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        reset_at: Optional[float] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, status_code)
        self.reset_at = reset_at
        self.retry_after = retry_after


class PermanentError(StatsError):
    """An error that retrying cannot fix (bad request, access denied, not found)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class DecodeError(PermanentError):
    """A response body could not be decoded into records."""


class RetriesExhausted(StatsError):
    """All retry attempts failed with transient errors."""

    def __init__(self, last_error: Exception, attempts: int):
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")


class PaginationExhausted(StatsError):
    """Pagination kept going past the hard page ceiling."""

    def __init__(self, pages: int, message: Optional[str] = None):
        self.pages = pages
        super().__init__(message or f"Pagination did not terminate after {pages} pages")


class Cancelled(StatsError):
    """The caller cancelled the operation."""


class FailureReason(str, Enum):
    """Why a category could not be fetched."""

    RATE_LIMITED = "rate_limited"
    TRANSPORT = "transport"
    DECODE = "decode"
    PAGINATION = "pagination"
    CANCELLED = "cancelled"


class FetchFailure(StatsError):
    """
    Final failure of one stat category.

    Stored in RepositorySnapshot.failures rather than aborting siblings.

    Attributes:
        category: The category that failed
        reason: FailureReason
        cause: Underlying exception, if any
        attempts: Request attempts spent on the failing request
    """

    def __init__(
        self,
        category,
        reason: FailureReason,
        cause: Optional[BaseException] = None,
        attempts: int = 0,
    ):
        self.category = category
        self.reason = reason
        self.cause = cause
        self.attempts = attempts
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{getattr(category, 'value', category)} failed ({reason.value}){detail}")

    def to_dict(self) -> dict:
        """Serializable summary."""
        return {
            "category": getattr(self.category, "value", str(self.category)),
            "reason": self.reason.value,
            "message": str(self.cause) if self.cause is not None else None,
            "attempts": self.attempts,
        }
