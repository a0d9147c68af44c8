"""CLI interface for forgestats."""

import json
import sys
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from shared.cli import create_table, error, handle_errors, info, print_table, success, warning
from shared.logger import setup_logger

from .api import fetch_snapshot
from .models import Category, RepositoryRef, RepositorySnapshot, categories_from

console = Console()

COUNT_LABELS = {
    Category.STARS: "⭐ Stars",
    Category.FORKS: "🍴 Forks",
    Category.WATCHERS: "👀 Watchers",
    Category.OPEN_ISSUES: "🐛 Open Issues",
    Category.CLOSED_ISSUES: "✅ Closed Issues",
    Category.OPEN_PULLS: "🔀 Open PRs",
    Category.MERGED_PULLS: "🔀 Merged PRs",
    Category.CONTRIBUTORS: "👥 Contributors",
    Category.COMMITS: "📝 Commits",
}


def display_metrics(snapshot: RepositorySnapshot) -> None:
    """Display the count of every fetched category."""
    table = create_table(title=None)
    table.add_column("Metric", style="bold yellow")
    table.add_column("Value", justify="right", style="cyan")
    table.add_column("Pages", justify="right", style="dim")

    for category in Category:
        result = snapshot.get(category)
        if result is None or category not in COUNT_LABELS:
            continue
        value = f"{result.count:,}"
        if result.truncated:
            value += "+"
        table.add_row(COUNT_LABELS[category], value, str(result.pages))

    if table.row_count:
        console.print("\n[bold yellow]📊 Metrics:[/bold yellow]")
        print_table(table)


def display_contributors(snapshot: RepositorySnapshot, limit: int) -> None:
    """Display top contributors."""
    result = snapshot.get(Category.CONTRIBUTORS)
    if result is None or not result.records:
        return

    console.print(f"\n[bold yellow]👥 Top Contributors for {snapshot.ref}:[/bold yellow]")

    table = create_table(title=None)
    table.add_column("#", justify="right", style="cyan", width=4)
    table.add_column("Username", style="bold")
    table.add_column("Contributions", justify="right", style="yellow")
    table.add_column("% of total", justify="right", style="dim")

    total_contributions = sum(c.contributions for c in result.records)

    for idx, contrib in enumerate(result.records[:limit], 1):
        percentage = (contrib.contributions / total_contributions * 100) if total_contributions > 0 else 0
        table.add_row(str(idx), contrib.login, f"{contrib.contributions:,}", f"{percentage:.1f}%")

    print_table(table)


def display_languages(snapshot: RepositorySnapshot) -> None:
    """Display language breakdown."""
    result = snapshot.get(Category.LANGUAGES)
    if result is None or not result.records:
        return

    console.print(f"\n[bold yellow]💻 Languages in {snapshot.ref}:[/bold yellow]")

    total_bytes = sum(share.bytes for share in result.records)

    table = create_table(title=None)
    table.add_column("Language", style="bold cyan")
    table.add_column("Bytes", justify="right", style="yellow")
    table.add_column("Percentage", justify="right")
    table.add_column("Visual", width=30)

    for share in result.records:
        percentage = (share.bytes / total_bytes * 100) if total_bytes > 0 else 0
        bar_length = int((percentage / 100) * 25)
        bar = "█" * bar_length + "░" * (25 - bar_length)
        table.add_row(share.language, f"{share.bytes:,}", f"{percentage:.1f}%", bar)

    print_table(table)


def display_activity(snapshot: RepositorySnapshot, weeks: int = 12) -> None:
    """Display commit totals of the most recent weeks."""
    result = snapshot.get(Category.COMMIT_ACTIVITY)
    if result is None or not result.records:
        return

    recent = result.records[-weeks:]
    peak = max((w.total for w in recent), default=0)

    console.print(f"\n[bold yellow]📈 Commit activity (last {len(recent)} weeks):[/bold yellow]")
    table = create_table(title=None)
    table.add_column("Week", style="cyan")
    table.add_column("Commits", justify="right", style="yellow")
    table.add_column("Visual", width=30)

    for week in recent:
        bar_length = int(week.total / peak * 25) if peak else 0
        table.add_row(week.week_start.strftime("%Y-%m-%d"), str(week.total), "█" * bar_length)

    print_table(table)
    total = sum(w.total for w in result.records)
    console.print(f"  Total over {len(result.records)} weeks: [bold]{total:,}[/bold]")


def display_failures(snapshot: RepositorySnapshot) -> None:
    """Display categories that could not be fetched."""
    if not snapshot.failures:
        return

    table = create_table(title=None)
    table.add_column("Category", style="bold red")
    table.add_column("Reason", style="yellow")
    table.add_column("Attempts", justify="right")
    table.add_column("Details", style="dim", no_wrap=False)

    for category in snapshot.failed_categories:
        failure = snapshot.failures[category]
        table.add_row(category.value, failure.reason.value, str(failure.attempts), str(failure.cause or ""))

    console.print("\n[bold red]❌ Failed categories:[/bold red]")
    print_table(table)


def display_snapshot(snapshot: RepositorySnapshot, limit: int = 10) -> None:
    """Display a snapshot."""
    status = "[green]complete[/green]" if snapshot.is_complete else "[red]partial failure[/red]"
    console.print(Panel(f"[bold cyan]{snapshot.ref}[/bold cyan]\nStatus: {status}", title="Repository Stats"))

    display_metrics(snapshot)
    display_contributors(snapshot, limit)
    display_languages(snapshot)
    display_activity(snapshot)
    display_failures(snapshot)
    console.print()


@click.command()
@click.option("--repo", "-r", required=True, help="Repository in format 'owner/repo'")
@click.option(
    "--category",
    "-c",
    "categories",
    multiple=True,
    type=click.Choice([c.value for c in Category], case_sensitive=False),
    help="Category to fetch (repeatable, default: all)",
)
@click.option("--concurrency", type=int, default=4, show_default=True, help="Parallel category fetches")
@click.option("--max-retries", type=int, default=5, show_default=True, help="Attempts per request")
@click.option("--page-ceiling", type=int, default=10000, show_default=True, help="Hard page limit per category")
@click.option("--max-pages", type=int, default=None, help="Stop paginating after N pages (marks results truncated)")
@click.option("--limit", type=int, default=10, help="Rows shown for contributors")
@click.option(
    "--output",
    "-o",
    type=click.Choice(["rich", "json"], case_sensitive=False),
    default="rich",
    help="Output format",
)
@click.option("--token", help="GitHub personal access token (or set GITHUB_TOKEN env var)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@handle_errors
def main(
    repo: str,
    categories: tuple,
    concurrency: int,
    max_retries: int,
    page_ceiling: int,
    max_pages: Optional[int],
    limit: int,
    output: str,
    token: Optional[str],
    verbose: bool,
):
    """
    forgestats - Snapshot GitHub repository statistics.

    Examples:

        \b
        # Everything
        forgestats --repo pallets/click

        \b
        # Selected categories
        forgestats --repo psf/requests -c stars -c forks -c contributors

        \b
        # JSON output, first 5 pages of commits only
        forgestats --repo encode/httpx -c commits --max-pages 5 --output json
    """
    log_level = "DEBUG" if verbose else "WARNING"
    setup_logger("forgestats", level=log_level)

    ref = RepositoryRef.parse(repo)
    requested = categories_from(categories) if categories else list(Category)

    if output == "rich":
        info(f"Fetching {len(requested)} categories for {ref}")
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task("Fetching stats...", total=None)
            snapshot = _fetch(ref, requested, concurrency, max_retries, page_ceiling, max_pages, token)
    else:
        snapshot = _fetch(ref, requested, concurrency, max_retries, page_ceiling, max_pages, token)

    if output == "json":
        print(json.dumps(snapshot.to_dict(), indent=2))
    else:
        display_snapshot(snapshot, limit=limit)
        if snapshot.is_complete:
            success("Fetch completed!")
        else:
            warning(f"{len(snapshot.failures)} of {len(requested)} categories failed")

    if not snapshot.is_complete:
        if len(snapshot.failures) == len(requested):
            error("No category could be fetched")
        sys.exit(1)
    sys.exit(0)


def _fetch(ref, requested, concurrency, max_retries, page_ceiling, max_pages, token) -> RepositorySnapshot:
    return fetch_snapshot(
        ref.owner,
        ref.name,
        requested,
        concurrency=concurrency,
        max_retries=max_retries,
        page_ceiling=page_ceiling,
        max_pages=max_pages,
        token=token,
    )


if __name__ == "__main__":
    main()
