"""
Roster seeding and result merging.

The roster handed in by the caller is authoritative for shape and order.
Seeding assigns every row a stable ``runtime_id`` and drops duplicate source
rows; merging overlays fetched metrics onto the matching rows without ever
adding, dropping or duplicating a row.
"""

from collections import Counter, defaultdict
from typing import Any, Iterable, Sequence

from repo_roster.config import DUPLICATE_WARNING_LIMIT
from repo_roster.console import console, log_verbose
from repo_roster.models import (
    IDENTITY_FIELDS,
    METRIC_FIELDS,
    RosterSummary,
    SeedResult,
    StudentRecord,
)

# Match keys in priority order. runtime_id is unique per roster; repository
# URLs can legitimately repeat across students sharing an account.
MATCH_FIELDS = ("runtime_id", "admission_no", "roll_no", "github_repo")


def _as_record(row: StudentRecord | dict[str, Any]) -> StudentRecord:
    if isinstance(row, StudentRecord):
        return row
    return StudentRecord.from_dict(row)


def _soft_key(record: StudentRecord) -> str | None:
    return record.admission_no or record.roll_no or record.github_repo or record.name or None


def seed_roster(
    rows: Iterable[StudentRecord | dict[str, Any]],
    section_id: str = "roster",
    warning_limit: int = DUPLICATE_WARNING_LIMIT,
) -> SeedResult:
    """
    Prepare a raw roster for enrichment.

    Each row gets a ``runtime_id`` (admission number, else roll number, else
    ``<section_id>-<position>``) and ``loading`` set when it has a
    repository. Rows are then deduplicated twice, first by ``runtime_id`` and
    then by the first non-empty of admission number, roll number, repository
    and name. The first occurrence wins in both passes.

    Args:
        rows: Source rows, as camelCase dicts or StudentRecord.
        section_id: Prefix for positional runtime ids.
        warning_limit: Maximum number of duplicate keys reported.

    Returns:
        SeedResult with the surviving rows in input order, up to
        ``warning_limit`` duplicate keys, and the total number dropped.
    """
    seeded: list[StudentRecord] = []
    for idx, row in enumerate(rows):
        record = _as_record(row)
        runtime_id = record.admission_no or record.roll_no or f"{section_id}-{idx}"
        seeded.append(
            record._replace(runtime_id=runtime_id, loading=record.has_repository)
        )

    duplicate_keys: list[str] = []

    seen_ids: set[str] = set()
    by_id: list[StudentRecord] = []
    for record in seeded:
        if record.runtime_id in seen_ids:
            duplicate_keys.append(record.runtime_id)
            continue
        seen_ids.add(record.runtime_id)
        by_id.append(record)

    seen_keys: set[str] = set()
    students: list[StudentRecord] = []
    for record in by_id:
        key = _soft_key(record)
        if key and key in seen_keys:
            duplicate_keys.append(key)
            continue
        if key:
            seen_keys.add(key)
        students.append(record)

    if duplicate_keys:
        log_verbose(
            f"Dropped {len(duplicate_keys)} duplicate roster row(s): "
            f"{', '.join(duplicate_keys[:warning_limit])}"
        )

    return SeedResult(
        students=students,
        duplicate_keys=duplicate_keys[:warning_limit],
        duplicate_count=len(duplicate_keys),
    )


def find_duplicate_identifiers(
    rows: Iterable[StudentRecord | dict[str, Any]],
) -> dict[str, list[tuple[str, int]]]:
    """
    Report admission and roll numbers that appear more than once in a source roster.

    Returns:
        ``{"admissionNo": [(value, count), ...], "rollNo": [...]}`` with each
        list sorted by count, highest first.
    """
    admission_counts: Counter = Counter()
    roll_counts: Counter = Counter()
    for row in rows:
        record = _as_record(row)
        if record.admission_no:
            admission_counts[record.admission_no] += 1
        if record.roll_no:
            roll_counts[record.roll_no] += 1

    def _repeated(counts: Counter) -> list[tuple[str, int]]:
        return [(value, count) for value, count in counts.most_common() if count > 1]

    return {
        "admissionNo": _repeated(admission_counts),
        "rollNo": _repeated(roll_counts),
    }


def _index_results(
    results: Sequence[StudentRecord],
) -> dict[str, dict[str, list[StudentRecord]]]:
    indexes: dict[str, dict[str, list[StudentRecord]]] = {}
    for field in MATCH_FIELDS:
        index: dict[str, list[StudentRecord]] = defaultdict(list)
        for result in results:
            value = getattr(result, field)
            if value:
                index[value].append(result)
        indexes[field] = index
    return indexes


def _find_match(
    row: StudentRecord, indexes: dict[str, dict[str, list[StudentRecord]]]
) -> StudentRecord | None:
    """Return the result for a row from the first key that matches exactly one result."""
    for field in MATCH_FIELDS:
        value = getattr(row, field)
        if not value:
            continue
        candidates = indexes[field].get(value, [])
        if len(candidates) == 1:
            return candidates[0]
    return None


def _overlay(row: StudentRecord, result: StudentRecord) -> StudentRecord:
    """Apply a result's metrics to a roster row.

    Metric fields always come from the result. Identity fields already set on
    the row are kept, so ``runtime_id`` never changes.
    """
    updates = {field: getattr(result, field) for field in METRIC_FIELDS}
    for field in IDENTITY_FIELDS:
        if not getattr(row, field) and getattr(result, field):
            updates[field] = getattr(result, field)
    return row._replace(**updates)


def _check_identities(
    roster: Sequence[StudentRecord], merged: Sequence[StudentRecord]
) -> None:
    before = [row.runtime_id for row in roster]
    after = [row.runtime_id for row in merged]
    if before != after or len(set(after)) != len(after):
        console.print(
            "[yellow]⚠️  Merged roster does not preserve row identities "
            f"({len(before)} rows in, {len(after)} rows out)[/yellow]"
        )


def merge_results(
    roster: Sequence[StudentRecord], results: Sequence[StudentRecord]
) -> list[StudentRecord]:
    """
    Merge fetched rows into the roster.

    For each roster row, a result is looked up by runtime id, then admission
    number, then roll number, then exact repository reference; the first key
    with exactly one matching result wins. Unmatched rows are returned with
    ``loading`` set when they have a repository.

    Args:
        roster: Current roster snapshot. Its order and length are kept.
        results: Rows produced so far by the scheduler, in any order.

    Returns:
        A new list; the inputs are not modified.
    """
    indexes = _index_results(results)
    merged = []
    for row in roster:
        match = _find_match(row, indexes)
        if match is None:
            merged.append(row._replace(loading=row.has_repository))
        else:
            merged.append(_overlay(row, match))

    _check_identities(roster, merged)
    return merged


def summarize_roster(rows: Sequence[StudentRecord]) -> RosterSummary:
    """Count rows without repositories, with zero commits, with errors, and so on."""
    return RosterSummary(
        total=len(rows),
        no_repo=sum(1 for r in rows if not r.has_repository),
        zero_commits=sum(1 for r in rows if r.has_repository and not r.total_commits),
        with_errors=sum(1 for r in rows if r.error),
        loading=sum(1 for r in rows if r.loading),
        total_commits=sum(r.total_commits for r in rows),
        total_lines_of_code=sum(r.total_lines_of_code or 0 for r in rows),
    )


def top_performers(
    rows: Sequence[StudentRecord], limit: int = 3
) -> tuple[list[StudentRecord], list[StudentRecord]]:
    """
    Rank rows by commits and by lines of code.

    Rows with zero commits, or with unknown or zero LOC, are left out of the
    respective ranking.

    Returns:
        Tuple of (top by commits, top by LOC), each highest first.
    """
    by_commits = sorted(
        (r for r in rows if r.total_commits > 0),
        key=lambda r: r.total_commits,
        reverse=True,
    )
    by_loc = sorted(
        (r for r in rows if r.total_lines_of_code),
        key=lambda r: r.total_lines_of_code,
        reverse=True,
    )
    return by_commits[:limit], by_loc[:limit]
