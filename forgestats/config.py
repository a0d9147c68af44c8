"""
Tunable parameters for the stats engine.

FetchOptions holds per-call knobs; ApiConventions pins the header names and
pagination style of the GitHub REST API so they are not scattered through the
engine; EngineConfig adds the credential and base URL read from the
environment.
"""

import os
from dataclasses import dataclass, field, replace
from typing import Optional

DEFAULT_API_URL = "https://api.github.com"


@dataclass(frozen=True)
class ApiConventions:
    """Header names and pagination constants of the targeted API."""

    remaining_header: str = "x-ratelimit-remaining"
    reset_header: str = "x-ratelimit-reset"
    limit_header: str = "x-ratelimit-limit"
    resource_header: str = "x-ratelimit-resource"
    retry_after_header: str = "retry-after"
    etag_header: str = "etag"
    last_modified_header: str = "last-modified"
    link_header: str = "link"

    per_page_param: str = "per_page"
    max_per_page: int = 100

    accept: str = "application/vnd.github+json"
    api_version: str = "2022-11-28"
    user_agent: str = "forgestats"


GITHUB = ApiConventions()


@dataclass(frozen=True)
class FetchOptions:
    """
    Per-call options for a snapshot fetch.

    Attributes:
        concurrency: Worker pool width
        max_retries: Attempts allowed per request, first attempt included
        page_ceiling: Hard page limit guarding against runaway pagination
        max_pages: Optional soft page limit; results are marked truncated
        per_page: Page size requested from the API
        base_delay: First backoff delay in seconds
        max_delay: Backoff delay cap in seconds
        max_reset_wait: Longest wait for a rate-limit reset before giving up
        timeout: Per-attempt request timeout in seconds
        safety_margin: Budget units never spent
    """

    concurrency: int = 4
    max_retries: int = 5
    page_ceiling: int = 10000
    max_pages: Optional[int] = None
    per_page: int = 100
    base_delay: float = 1.0
    max_delay: float = 60.0
    max_reset_wait: float = 900.0
    timeout: float = 10.0
    safety_margin: int = 0

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.page_ceiling < 1:
            raise ValueError(f"page_ceiling must be >= 1, got {self.page_ceiling}")
        if self.max_pages is not None and self.max_pages < 1:
            raise ValueError(f"max_pages must be >= 1, got {self.max_pages}")
        if not 1 <= self.per_page <= GITHUB.max_per_page:
            raise ValueError(f"per_page must be between 1 and {GITHUB.max_per_page}, got {self.per_page}")
        if self.base_delay < 0 or self.max_delay < 0 or self.max_reset_wait < 0:
            raise ValueError("Delays must be non-negative")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.safety_margin < 0:
            raise ValueError(f"safety_margin must be >= 0, got {self.safety_margin}")

    def with_overrides(self, **changes) -> "FetchOptions":
        """Copy with the non-None values in ``changes`` applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


@dataclass(frozen=True)
class EngineConfig:
    """Credential, endpoint and defaults for building an engine."""

    token: Optional[str] = None
    base_url: str = DEFAULT_API_URL
    conventions: ApiConventions = GITHUB
    options: FetchOptions = field(default_factory=FetchOptions)

    @classmethod
    def from_env(cls, token: Optional[str] = None, **kwargs) -> "EngineConfig":
        """
        Build a config from GITHUB_TOKEN and GITHUB_API_URL.

        An explicit ``token`` wins over the environment.
        """
        return cls(
            token=token or os.getenv("GITHUB_TOKEN") or None,
            base_url=(os.getenv("GITHUB_API_URL") or DEFAULT_API_URL).rstrip("/"),
            **kwargs,
        )


DEFAULT_OPTIONS = FetchOptions()
