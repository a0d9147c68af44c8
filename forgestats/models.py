"""Data model for repository statistics snapshots."""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .errors import FetchFailure

PageToken = Optional[str]


class Category(str, Enum):
    """Statistic categories that can be requested for a repository."""

    STARS = "stars"
    FORKS = "forks"
    WATCHERS = "watchers"
    OPEN_ISSUES = "open_issues"
    CLOSED_ISSUES = "closed_issues"
    OPEN_PULLS = "open_pulls"
    MERGED_PULLS = "merged_pulls"
    CONTRIBUTORS = "contributors"
    COMMITS = "commits"
    COMMIT_ACTIVITY = "commit_activity"
    LANGUAGES = "languages"

    @classmethod
    def parse(cls, value: Union[str, "Category"]) -> "Category":
        """Look up a category by value or name, case-insensitively."""
        if isinstance(value, Category):
            return value
        key = value.strip().lower().replace("-", "_")
        for category in cls:
            if category.value == key:
                return category
        raise ValueError(f"Unknown category: {value!r}")


class TaskState(str, Enum):
    """Lifecycle of a FetchTask."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SnapshotStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL_FAILURE = "partial_failure"


@dataclass(frozen=True)
class RepositoryRef:
    """Identity of the target repository."""

    owner: str
    name: str

    def __post_init__(self) -> None:
        if not self.owner or not self.name:
            raise ValueError("Repository owner and name must be non-empty")
        if "/" in self.owner or "/" in self.name:
            raise ValueError(f"Invalid repository reference: {self.owner}/{self.name}")

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, repo: str) -> "RepositoryRef":
        """
        Parse an ``owner/name`` string.

        Raises:
            ValueError: If the string is not in owner/name form
        """
        if repo.count("/") != 1:
            raise ValueError(f"Invalid repo format. Use 'owner/repo', got: {repo}")
        owner, name = repo.split("/", 1)
        return cls(owner=owner.strip(), name=name.strip())

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class RateBudget:
    """
    Rate limit state as reported by the service.

    Attributes:
        remaining: Requests left in the current window
        reset_at: Epoch seconds when the window resets
        limit: Window size
        resource: Rate-limit bucket the numbers apply to
    """

    remaining: int
    reset_at: float
    limit: int
    resource: str = "core"

    @property
    def reset_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.reset_at, tz=timezone.utc)


@dataclass(frozen=True)
class Freshness:
    """Freshness marker used for conditional re-fetch."""

    etag: Optional[str] = None
    last_modified: Optional[str] = None

    def __bool__(self) -> bool:
        return bool(self.etag or self.last_modified)

    def conditional_headers(self) -> Dict[str, str]:
        """Request headers asking the service to answer 304 when unchanged."""
        headers = {}
        if self.etag:
            headers["If-None-Match"] = self.etag
        if self.last_modified:
            headers["If-Modified-Since"] = self.last_modified
        return headers


@dataclass
class Page:
    """One page of a collection."""

    items: List[Any]
    next_token: PageToken = None
    freshness: Optional[Freshness] = None


@dataclass(frozen=True)
class Contributor:
    login: str
    contributions: int
    kind: str = "User"


@dataclass(frozen=True)
class Commit:
    sha: str
    author: Optional[str]
    authored_at: Optional[datetime]
    message: str


@dataclass(frozen=True)
class WeeklyActivity:
    """Commit totals for one week, Sunday first."""

    week_start: datetime
    total: int
    days: Tuple[int, ...]


@dataclass(frozen=True)
class LanguageShare:
    language: str
    bytes: int


@dataclass(frozen=True)
class StatResult:
    """
    Outcome of one category fetch.

    Attributes:
        category: Category the value belongs to
        value: A count, or an ordered tuple of records
        freshness: Marker for conditional re-fetch
        fetched_at: Epoch seconds when the value was fetched
        pages: Pages requested to build the value
        truncated: True when a page ceiling stopped pagination early
    """

    category: Category
    value: Union[int, Tuple[Any, ...]]
    freshness: Optional[Freshness] = None
    fetched_at: float = field(default_factory=time.time)
    pages: int = 1
    truncated: bool = False

    @property
    def count(self) -> int:
        if isinstance(self.value, int):
            return self.value
        return len(self.value)

    @property
    def records(self) -> Tuple[Any, ...]:
        if isinstance(self.value, int):
            return ()
        return self.value


@dataclass
class FetchTask:
    """Per-category bookkeeping owned by the orchestrator."""

    category: Category
    state: TaskState = TaskState.PENDING
    attempts: int = 0
    failure: Optional[FetchFailure] = None

    @property
    def done(self) -> bool:
        return self.state in (TaskState.SUCCEEDED, TaskState.FAILED)


@dataclass
class RepositorySnapshot:
    """
    Point-in-time statistics for one repository.

    Every requested category is either in ``results`` or in ``failures``,
    never both.
    """

    ref: RepositoryRef
    results: Dict[Category, StatResult] = field(default_factory=dict)
    failures: Dict[Category, FetchFailure] = field(default_factory=dict)
    fetched_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        overlap = set(self.results) & set(self.failures)
        if overlap:
            names = ", ".join(sorted(c.value for c in overlap))
            raise ValueError(f"Categories both succeeded and failed: {names}")

    @property
    def status(self) -> SnapshotStatus:
        if self.failures:
            return SnapshotStatus.PARTIAL_FAILURE
        return SnapshotStatus.COMPLETE

    @property
    def is_complete(self) -> bool:
        return self.status is SnapshotStatus.COMPLETE

    @property
    def failed_categories(self) -> List[Category]:
        return sorted(self.failures, key=lambda c: c.value)

    @property
    def categories(self) -> List[Category]:
        return sorted(set(self.results) | set(self.failures), key=lambda c: c.value)

    def get(self, category: Category) -> Optional[StatResult]:
        return self.results.get(category)

    def merge(self, newer: "RepositorySnapshot") -> "RepositorySnapshot":
        """
        Combine with a newer snapshot of the same repository.

        Categories present in ``newer`` replace ours; a success in ``newer``
        clears our failure for that category and vice versa.
        """
        if newer.ref != self.ref:
            raise ValueError(f"Cannot merge snapshots of {self.ref} and {newer.ref}")

        results = {c: r for c, r in self.results.items() if c not in newer.failures}
        failures = {c: f for c, f in self.failures.items() if c not in newer.results}
        results.update(newer.results)
        failures.update(newer.failures)
        return RepositorySnapshot(ref=self.ref, results=results, failures=failures, fetched_at=newer.fetched_at)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form for JSON output."""
        return {
            "repository": self.ref.full_name,
            "status": self.status.value,
            "fetched_at": datetime.fromtimestamp(self.fetched_at, tz=timezone.utc).isoformat(),
            "results": {c.value: _result_to_dict(r) for c, r in sorted(self.results.items(), key=lambda i: i[0].value)},
            "failures": {c.value: f.to_dict() for c, f in sorted(self.failures.items(), key=lambda i: i[0].value)},
        }


def _result_to_dict(result: StatResult) -> Dict[str, Any]:
    data: Dict[str, Any] = {"count": result.count, "pages": result.pages, "truncated": result.truncated}
    if not isinstance(result.value, int):
        data["records"] = [_record_to_dict(r) for r in result.value]
    if result.freshness:
        data["etag"] = result.freshness.etag
        data["last_modified"] = result.freshness.last_modified
    return data


def _record_to_dict(record: Any) -> Dict[str, Any]:
    data = dict(record.__dict__)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = value.isoformat()
        elif isinstance(value, tuple):
            data[key] = list(value)
    return data


def categories_from(values: Iterable[Union[str, Category]]) -> List[Category]:
    """Normalize and de-duplicate category names, keeping first-seen order."""
    seen: List[Category] = []
    for value in values:
        category = Category.parse(value)
        if category not in seen:
            seen.append(category)
    return seen
