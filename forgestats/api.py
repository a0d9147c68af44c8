"""Public entry points."""

from dataclasses import replace
from typing import Iterable, Optional, Union

from shared.logger import get_logger

from .budget import BudgetRegistry, default_registry
from .cancellation import CancellationToken
from .config import EngineConfig
from .models import Category, RepositorySnapshot, RepositoryRef, categories_from
from .orchestrator import SnapshotOrchestrator
from .transport import HttpxTransport, Transport

logger = get_logger(__name__)

ALL_CATEGORIES = tuple(Category)


def fetch_snapshot(
    owner: str,
    name: str,
    categories: Iterable[Union[str, Category]] = ALL_CATEGORIES,
    *,
    concurrency: Optional[int] = None,
    max_retries: Optional[int] = None,
    page_ceiling: Optional[int] = None,
    max_pages: Optional[int] = None,
    previous_snapshot: Optional[RepositorySnapshot] = None,
    token: Optional[str] = None,
    transport: Optional[Transport] = None,
    budgets: Optional[BudgetRegistry] = None,
    cancel: Optional[CancellationToken] = None,
    config: Optional[EngineConfig] = None,
) -> RepositorySnapshot:
    """
    Fetch a statistics snapshot for ``owner/name``.

    Always returns a snapshot; check ``snapshot.status`` and
    ``snapshot.failures`` for categories that could not be fetched.

    Args:
        owner: Repository owner
        name: Repository name
        categories: Categories to fetch (names or Category members)
        concurrency: Worker pool width (default 4)
        max_retries: Attempts per request (default 5)
        page_ceiling: Hard page limit per category (default 10000)
        max_pages: Soft page limit; results beyond it are marked truncated
        previous_snapshot: Earlier snapshot enabling conditional re-fetch
        token: GitHub token; falls back to GITHUB_TOKEN
        transport: Custom transport; an httpx transport is built otherwise
        budgets: Rate budget registry; the process-wide one by default
        cancel: Cancellation flag the caller may set from another thread
        config: Engine configuration; read from the environment by default

    Returns:
        RepositorySnapshot
    """
    config = config or EngineConfig.from_env(token=token)
    if token and token != config.token:
        config = replace(config, token=token)
    options = config.options.with_overrides(
        concurrency=concurrency,
        max_retries=max_retries,
        page_ceiling=page_ceiling,
        max_pages=max_pages,
    )
    ref = RepositoryRef(owner=owner, name=name)
    requested = categories_from(categories)

    owns_transport = transport is None
    if transport is None:
        transport = HttpxTransport(
            token=config.token,
            base_url=config.base_url,
            timeout=options.timeout,
            conventions=config.conventions,
        )

    orchestrator = SnapshotOrchestrator(
        transport,
        budgets or default_registry(),
        token=config.token,
        base_url=config.base_url,
        options=options,
        conventions=config.conventions,
    )
    try:
        return orchestrator.snapshot(ref, requested, previous=previous_snapshot, cancel=cancel)
    finally:
        if owns_transport:
            transport.close()


def retry_failed(snapshot: RepositorySnapshot, **kwargs) -> RepositorySnapshot:
    """
    Re-fetch only the failed categories of ``snapshot`` and merge the outcome.

    Accepts the same keyword options as fetch_snapshot.
    """
    if snapshot.is_complete:
        return snapshot
    logger.info(f"Retrying {len(snapshot.failures)} failed categories for {snapshot.ref}")
    retried = fetch_snapshot(snapshot.ref.owner, snapshot.ref.name, snapshot.failed_categories, **kwargs)
    return snapshot.merge(retried)
