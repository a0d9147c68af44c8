"""forgestats - rate-limit aware repository statistics snapshots for GitHub."""

from .api import ALL_CATEGORIES, fetch_snapshot, retry_failed
from .budget import BudgetRegistry, RateBudgetTracker
from .cancellation import CancellationToken
from .config import EngineConfig, FetchOptions
from .errors import FailureReason, FetchFailure, StatsError
from .fetcher import Fetcher
from .models import Category, RepositoryRef, RepositorySnapshot, SnapshotStatus, StatResult
from .orchestrator import SnapshotOrchestrator
from .paginator import Paginator
from .retry import RetryController, RetryPolicy

__all__ = [
    "ALL_CATEGORIES",
    "BudgetRegistry",
    "CancellationToken",
    "Category",
    "EngineConfig",
    "FailureReason",
    "FetchFailure",
    "FetchOptions",
    "Fetcher",
    "Paginator",
    "RateBudgetTracker",
    "RepositoryRef",
    "RepositorySnapshot",
    "RetryController",
    "RetryPolicy",
    "SnapshotOrchestrator",
    "SnapshotStatus",
    "StatResult",
    "StatsError",
    "fetch_snapshot",
    "retry_failed",
]
