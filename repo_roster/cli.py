"""
Command-line interface for repo-roster.
"""

import asyncio
import functools
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import typer
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from repo_roster.config import (
    set_cache_ttl,
    set_github_token,
    set_verbose,
    set_verify_ssl,
)
from repo_roster.console import console
from repo_roster.github import GitHubMetricsClient
from repo_roster.http_client import close_async_http_client, close_http_client
from repo_roster.models import StudentRecord
from repo_roster.roster import (
    find_duplicate_identifiers,
    seed_roster,
    summarize_roster,
    top_performers,
)
from repo_roster.scheduler import get_batch_profile, process_roster

# --- Typer App ---
app = typer.Typer(help="Enrich a student roster with live GitHub repository metrics.")

# --- Helper Functions ---


def syncify(func):
    """Run an async Typer command inside asyncio.run()."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        return asyncio.run(func(*args, **kwargs))

    return wrapper


def load_roster_file(path: Path) -> list[dict[str, Any]]:
    """
    Load roster rows from a JSON file.

    Accepts either a list of rows or an object with a ``students`` list.

    Raises:
        typer.Exit: If the file is missing or is not a roster.
    """
    if not path.exists():
        console.print(f"[red]Roster file not found: {path}[/red]")
        raise typer.Exit(code=1)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON in {path}: {e}[/red]")
        raise typer.Exit(code=1) from e

    if isinstance(data, dict):
        data = data.get("students", [])
    if not isinstance(data, list):
        console.print(f"[red]{path} does not contain a list of students.[/red]")
        raise typer.Exit(code=1)
    return [row for row in data if isinstance(row, dict)]


def _format_date(value: str | None) -> str:
    if not value:
        return "N/A"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%Y-%m-%d")
    except ValueError:
        return value


def display_roster(students: list[StudentRecord]) -> None:
    """Display the enriched roster in a rich table."""
    table = Table(title="Roster Repository Metrics")
    table.add_column("Roll No", style="cyan", no_wrap=True)
    table.add_column("Name", justify="left")
    table.add_column("Repository", justify="left")
    table.add_column("Commits", justify="right", style="magenta")
    table.add_column("LOC", justify="right", style="magenta")
    table.add_column("Recent Commit", justify="left")
    table.add_column("Status", justify="left")

    for student in students:
        if student.error:
            status = f"[yellow]⚠️  {student.error}[/yellow]"
        elif student.loading:
            status = "[dim]Loading[/dim]"
        else:
            status = "[green]OK ✓[/green]"

        recent = ""
        if student.recent_commit:
            message = student.recent_commit.message.splitlines()[0] if student.recent_commit.message else ""
            recent = f"{message[:40]} ({_format_date(student.recent_commit.date)})"

        table.add_row(
            student.roll_no or student.admission_no or "",
            student.name,
            student.github_repo or "[dim]-[/dim]",
            str(student.total_commits),
            "" if student.total_lines_of_code is None else str(student.total_lines_of_code),
            recent,
            status,
        )

    console.print(table)


def display_summary(students: list[StudentRecord]) -> None:
    """Display roster totals and the top performers."""
    summary = summarize_roster(students)
    console.print(
        f"\n👥 {summary.total} students • "
        f"{summary.no_repo} with no repo • "
        f"{summary.zero_commits} with 0 commits • "
        f"{summary.with_errors} with errors"
    )

    by_commits, by_loc = top_performers(students)
    if by_commits:
        console.print("\n🏆 [bold cyan]Top by commits[/bold cyan]")
        for rank, student in enumerate(by_commits, start=1):
            console.print(f"   {rank}. {student.name}: {student.total_commits}")
    if by_loc:
        console.print("\n📈 [bold cyan]Top by lines of code[/bold cyan]")
        for rank, student in enumerate(by_loc, start=1):
            console.print(f"   {rank}. {student.name}: {student.total_lines_of_code}")


def write_roster_json(students: list[StudentRecord], output: Path) -> None:
    payload = {
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "students": [student.to_dict() for student in students],
    }
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)


# --- Commands ---


@app.command()
@syncify
async def check(
    roster: Path = typer.Argument(..., help="Path to a roster JSON file."),
    section: str = typer.Option(
        "roster",
        "--section",
        "-s",
        help="Section id used to build runtime ids for rows without admission or roll numbers.",
    ),
    no_loc: bool = typer.Option(
        False,
        "--no-loc",
        help="Skip the lines-of-code estimate (one request fewer per repository).",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the enriched roster to this JSON file.",
    ),
    token: str | None = typer.Option(
        None,
        "--token",
        help="GitHub token (default: GITHUB_TOKEN environment variable).",
    ),
    cache_ttl: int | None = typer.Option(
        None,
        "--cache-ttl",
        help="Metrics cache TTL in seconds (default: 1800 = 30 minutes).",
    ),
    insecure: bool = typer.Option(
        False,
        "--insecure",
        help="Disable SSL certificate verification for HTTPS requests.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show batch progress, cache hits and pacing details.",
    ),
) -> None:
    """Fetch commit counts, recent commits and LOC for every student in a roster."""
    set_verify_ssl(not insecure)
    set_cache_ttl(cache_ttl)
    if verbose:
        set_verbose(True)
    if token is not None:
        set_github_token(token)

    rows = load_roster_file(roster)
    if not rows:
        console.print("No students in roster.")
        return

    seed = seed_roster(rows, section_id=section)
    if seed.duplicate_keys:
        console.print(
            f"[yellow]⚠️  Removed {seed.duplicate_count} duplicate entr"
            f"{'y' if seed.duplicate_count == 1 else 'ies'}: "
            f"{', '.join(seed.duplicate_keys)}[/yellow]"
        )

    client = GitHubMetricsClient()
    if not client.authenticated:
        console.print(
            "[yellow]⚠️  No GitHub token found - using unauthenticated requests "
            "(rate limited to 60/hour)[/yellow]"
        )
    profile = get_batch_profile(client.authenticated)
    console.print(
        f"🔍 Loading data for {len(seed.students)} student(s) "
        f"in batches of {profile.batch_size}..."
    )

    try:
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            console=console,
        ) as progress:
            task_id = progress.add_task("Fetching repositories", total=len(seed.students))

            def on_progress(snapshot: list[StudentRecord]) -> None:
                done = sum(1 for student in snapshot if not student.loading)
                progress.update(task_id, completed=done)

            students = await process_roster(
                seed.students,
                client,
                include_loc=not no_loc,
                on_progress=on_progress,
            )
    finally:
        await close_async_http_client()

    display_roster(students)
    display_summary(students)

    if output is not None:
        write_roster_json(students, output)
        console.print(f"\n💾 Wrote enriched roster to [bold]{output}[/bold]")


@app.command()
def duplicates(
    roster: Path = typer.Argument(..., help="Path to a roster JSON file."),
) -> None:
    """Report admission and roll numbers that appear more than once."""
    rows = load_roster_file(roster)
    report = find_duplicate_identifiers(rows)

    found = False
    for field, label in (("admissionNo", "admission numbers"), ("rollNo", "roll numbers")):
        entries = report[field]
        if not entries:
            console.print(f"Duplicate {label}: [green]None[/green]")
            continue
        found = True
        console.print(f"Duplicate {label}:")
        for value, count in entries:
            console.print(f"   • [bold yellow]{value}[/bold yellow] × {count}")

    if found:
        raise typer.Exit(code=1)


@app.command("rate-limit")
def rate_limit(
    insecure: bool = typer.Option(
        False,
        "--insecure",
        help="Disable SSL certificate verification for HTTPS requests.",
    ),
) -> None:
    """Show the GitHub API rate-limit status for the configured credentials."""
    set_verify_ssl(not insecure)
    client = GitHubMetricsClient()
    try:
        data = client.check_rate_limit()
    finally:
        close_http_client()

    if data is None:
        raise typer.Exit(code=1)

    table = Table(title="GitHub API Rate Limit")
    table.add_column("Resource", style="cyan")
    table.add_column("Limit", justify="right")
    table.add_column("Remaining", justify="right", style="magenta")
    table.add_column("Resets", justify="left")
    for resource, values in sorted((data.get("resources") or {}).items()):
        reset = values.get("reset")
        reset_text = (
            datetime.fromtimestamp(reset, tz=timezone.utc).strftime("%H:%M:%S UTC")
            if isinstance(reset, int)
            else ""
        )
        table.add_row(
            resource,
            str(values.get("limit", "")),
            str(values.get("remaining", "")),
            reset_text,
        )
    console.print(table)


@app.command("validate-user")
@syncify
async def validate_user(
    username: str = typer.Argument(..., help="GitHub username to look up."),
) -> None:
    """Check that a GitHub username exists."""
    client = GitHubMetricsClient()
    try:
        valid = await client.validate_username(username)
    finally:
        await close_async_http_client()

    if valid:
        console.print(f"[green]✓ {username} exists on GitHub[/green]")
    else:
        console.print(f"[red]✗ {username} was not found on GitHub[/red]")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
