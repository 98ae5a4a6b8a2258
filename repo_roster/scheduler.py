"""
Batch scheduling of roster enrichment.

Rows are fetched in fixed-size batches. Rows inside a batch run concurrently;
batches run one after another with a pause in between, sized to the
credential tier. This pause is what keeps a roster load under GitHub's rate
limit.
"""

import asyncio
from contextlib import aclosing
from typing import AsyncIterator, Callable, Iterable, Sequence

from repo_roster.config import ANONYMOUS_BATCH, AUTHENTICATED_BATCH
from repo_roster.console import console, log_verbose
from repo_roster.github import GitHubMetricsClient
from repo_roster.identity import resolve_repository
from repo_roster.models import BatchProfile, MetricsBundle, StudentRecord
from repo_roster.roster import merge_results

NO_REPOSITORY_ERROR = "No GitHub repository"

ProgressCallback = Callable[[list[StudentRecord]], None]


def get_batch_profile(authenticated: bool) -> BatchProfile:
    """Return batch size and inter-batch delay for the credential tier."""
    return AUTHENTICATED_BATCH if authenticated else ANONYMOUS_BATCH


async def _process_row(
    student: StudentRecord, client: GitHubMetricsClient, include_loc: bool
) -> StudentRecord:
    """Fetch one row. Never raises: failures become the row's error."""
    if not student.has_repository:
        return student.with_bundle(MetricsBundle(error=NO_REPOSITORY_ERROR))

    try:
        bundle = await client.get_repository_data(
            student.github_repo, include_loc=include_loc
        )
    except Exception as e:
        console.print(
            f"  [yellow]⚠️  Error processing {student.name or student.runtime_id}: {e}[/yellow]"
        )
        bundle = MetricsBundle(error=str(e) or e.__class__.__name__)
    return student.with_bundle(bundle)


async def stream_roster(
    rows: Sequence[StudentRecord],
    client: GitHubMetricsClient,
    *,
    authenticated: bool | None = None,
    include_loc: bool = True,
    profile: BatchProfile | None = None,
) -> AsyncIterator[list[StudentRecord]]:
    """
    Enrich a seeded roster batch by batch, yielding merged snapshots.

    A snapshot is yielded after every batch, and once more after the last
    batch so consumers always see a final, complete merge. The next batch
    starts only after the consumer has taken the previous snapshot.

    Args:
        rows: Seeded roster (see roster.seed_roster). Yields nothing if empty.
        client: Metrics client used for every row.
        authenticated: Credential tier; defaults to ``client.authenticated``.
        include_loc: Whether to fetch the fast-mode LOC estimate.
        profile: Explicit batch profile, overriding the credential tier.

    Yields:
        The full roster with results merged in so far.
    """
    rows = list(rows)
    if not rows:
        return

    if profile is None:
        if authenticated is None:
            authenticated = client.authenticated
        profile = get_batch_profile(authenticated)

    batches = iter_batches(rows, profile.batch_size)
    accumulated: list[StudentRecord] = []

    for batch_number, batch in enumerate(batches, start=1):
        if batch_number > 1:
            log_verbose(f"Waiting {profile.delay_seconds}s before next batch...")
            await asyncio.sleep(profile.delay_seconds)

        log_verbose(f"Processing batch {batch_number}/{len(batches)} ({len(batch)} rows)")
        results = await asyncio.gather(
            *(_process_row(student, client, include_loc) for student in batch)
        )
        accumulated.extend(results)
        yield merge_results(rows, accumulated)

    yield merge_results(rows, accumulated)


async def process_roster(
    rows: Sequence[StudentRecord],
    client: GitHubMetricsClient,
    *,
    authenticated: bool | None = None,
    include_loc: bool = True,
    profile: BatchProfile | None = None,
    on_progress: ProgressCallback | None = None,
) -> list[StudentRecord]:
    """
    Enrich a seeded roster, reporting each snapshot through ``on_progress``.

    Returns:
        The final merged roster (empty if ``rows`` is empty).
    """
    latest = list(rows)
    async with aclosing(
        stream_roster(
            latest,
            client,
            authenticated=authenticated,
            include_loc=include_loc,
            profile=profile,
        )
    ) as snapshots:
        async for snapshot in snapshots:
            latest = snapshot
            if on_progress is not None:
                on_progress(snapshot)
    return latest


async def refresh_student(
    rows: Sequence[StudentRecord],
    runtime_id: str,
    client: GitHubMetricsClient,
    *,
    force: bool = False,
    accurate: bool = False,
) -> list[StudentRecord]:
    """
    Re-fetch LOC and repository info for a single row.

    Args:
        rows: Current roster snapshot.
        runtime_id: Row to refresh.
        client: Metrics client.
        force: Invalidate the repository's cache entries first.
        accurate: Use the polled statistics endpoint for LOC when it becomes
            ready, instead of the language-bytes estimate.

    Returns:
        A new roster where only that row changed. Previously known LOC and
        repository info are kept when the new fetch does not return them.

    Raises:
        ValueError: If no row has ``runtime_id``.
    """
    target = next((row for row in rows if row.runtime_id == runtime_id), None)
    if target is None:
        raise ValueError(f"Unknown runtime id: {runtime_id}")
    if not target.has_repository:
        return list(rows)

    if force:
        client.invalidate(target.github_repo)

    try:
        bundle = await client.get_repository_data(target.github_repo, include_loc=True)
        lines = bundle.total_lines_of_code
        identity = resolve_repository(target.github_repo)
        if accurate and identity is not None:
            stats_lines = await client.get_lines_via_stats(identity.owner, identity.repo)
            if stats_lines is not None:
                lines = stats_lines
        updated = target._replace(
            total_lines_of_code=(
                lines if lines is not None else target.total_lines_of_code
            ),
            repository_info=bundle.repository_info or target.repository_info,
            loading=False,
            error=bundle.error,
        )
    except Exception as e:
        console.print(f"  [yellow]⚠️  Refresh failed for {target.name}: {e}[/yellow]")
        updated = target._replace(loading=False, error=str(e) or e.__class__.__name__)

    return [updated if row.runtime_id == runtime_id else row for row in rows]


class RosterLoader:
    """
    Runs roster loads for a caller and drops results from superseded runs.

    Every load() or refresh() starts a new generation. A run that is still in
    flight when a newer one starts stops reporting snapshots and returns
    None, so stale results cannot overwrite fresh ones even when their rows
    still match the current roster.
    """

    def __init__(
        self,
        client: GitHubMetricsClient,
        include_loc: bool = True,
        profile: BatchProfile | None = None,
    ):
        self.client = client
        self.include_loc = include_loc
        self.profile = profile
        self.generation = 0

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    async def load(
        self,
        rows: Sequence[StudentRecord],
        on_progress: ProgressCallback | None = None,
    ) -> list[StudentRecord] | None:
        """
        Start a new run over ``rows``.

        Returns:
            The final roster, or None if a newer run superseded this one.
        """
        self.generation += 1
        generation = self.generation
        latest = list(rows)
        if not latest:
            return latest

        async with aclosing(
            stream_roster(
                latest,
                self.client,
                include_loc=self.include_loc,
                profile=self.profile,
            )
        ) as snapshots:
            async for snapshot in snapshots:
                if not self.is_current(generation):
                    log_verbose(f"Discarding results of superseded run {generation}")
                    return None
                latest = snapshot
                if on_progress is not None:
                    on_progress(snapshot)

        if not self.is_current(generation):
            return None
        return latest

    async def refresh(
        self,
        rows: Sequence[StudentRecord],
        on_progress: ProgressCallback | None = None,
    ) -> list[StudentRecord] | None:
        """Clear the metrics cache and start a new run."""
        self.client.clear_cache()
        return await self.load(rows, on_progress)


def iter_batches(
    rows: Iterable[StudentRecord], batch_size: int
) -> list[list[StudentRecord]]:
    """Split rows into consecutive batches of at most ``batch_size``."""
    rows = list(rows)
    size = max(1, batch_size)
    return [rows[i : i + size] for i in range(0, len(rows), size)]
