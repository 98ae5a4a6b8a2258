"""
Tests for roster seeding, merging and summaries.
"""

import pytest

from repo_roster.models import MetricsBundle, RecentCommit, StudentRecord
from repo_roster.roster import (
    find_duplicate_identifiers,
    merge_results,
    seed_roster,
    summarize_roster,
    top_performers,
)


def _row(**kwargs):
    return StudentRecord(**kwargs)


def test_seed_assigns_runtime_ids():
    """Test runtime id priority: admission number, roll number, then position."""
    result = seed_roster(
        [
            {"name": "Ada", "admissionNo": "A100", "rollNo": "1", "githubRepo": "ada/app"},
            {"name": "Bo", "rollNo": "2"},
            {"name": "Cy"},
        ],
        section_id="sec-a",
    )

    assert [s.runtime_id for s in result.students] == ["A100", "2", "sec-a-2"]
    assert [s.loading for s in result.students] == [True, False, False]
    assert result.duplicate_count == 0


def test_seed_drops_duplicate_admission_numbers():
    """Test that the first of two rows sharing an admission number survives."""
    result = seed_roster(
        [
            {"name": "Ada", "admissionNo": "A100", "githubRepo": "ada/app"},
            {"name": "Ada (copy)", "admissionNo": "A100", "githubRepo": "ada/other"},
            {"name": "Bo", "admissionNo": "A101"},
        ]
    )

    assert [s.name for s in result.students] == ["Ada", "Bo"]
    assert result.duplicate_keys == ["A100"]
    assert result.duplicate_count == 1


def test_seed_drops_duplicate_repositories_without_identifiers():
    result = seed_roster(
        [
            {"name": "Ada", "githubRepo": "https://github.com/ada/app"},
            {"name": "Ada again", "githubRepo": "https://github.com/ada/app"},
        ]
    )

    assert len(result.students) == 1
    assert result.duplicate_keys == ["https://github.com/ada/app"]


def test_seed_caps_reported_duplicates():
    rows = [{"name": f"S{i}", "admissionNo": "A1"} for i in range(15)]

    result = seed_roster(rows, warning_limit=10)

    assert len(result.students) == 1
    assert len(result.duplicate_keys) == 10
    assert result.duplicate_count == 14


def test_seed_empty_roster():
    result = seed_roster([])
    assert result.students == []
    assert result.duplicate_keys == []


def test_find_duplicate_identifiers():
    report = find_duplicate_identifiers(
        [
            {"admissionNo": "A1", "rollNo": "1"},
            {"admissionNo": "A1", "rollNo": "2"},
            {"admissionNo": "A1", "rollNo": "2"},
            {"admissionNo": "A2", "rollNo": "3"},
        ]
    )

    assert report == {"admissionNo": [("A1", 3)], "rollNo": [("2", 2)]}


def test_merge_by_runtime_id():
    roster = seed_roster(
        [
            {"name": "Ada", "admissionNo": "A1", "githubRepo": "ada/app"},
            {"name": "Bo", "admissionNo": "A2", "githubRepo": "bo/app"},
        ]
    ).students
    result = roster[1].with_bundle(MetricsBundle(total_commits=9, total_lines_of_code=300))

    merged = merge_results(roster, [result])

    assert [s.runtime_id for s in merged] == ["A1", "A2"]
    assert merged[0].loading is True
    assert merged[0].total_commits == 0
    assert merged[1].loading is False
    assert merged[1].total_commits == 9
    assert merged[1].total_lines_of_code == 300


def test_merge_shared_repository_keeps_identities():
    """Test that students sharing one repository each keep their own row."""
    roster = seed_roster(
        [
            {"name": "Ada", "admissionNo": "A1", "githubRepo": "team/app"},
            {"name": "Bo", "admissionNo": "A2", "githubRepo": "team/app"},
        ]
    ).students
    results = [
        roster[0].with_bundle(MetricsBundle(total_commits=4)),
        roster[1].with_bundle(MetricsBundle(total_commits=4)),
    ]

    merged = merge_results(roster, list(reversed(results)))

    assert [(s.runtime_id, s.name) for s in merged] == [("A1", "Ada"), ("A2", "Bo")]
    assert all(s.total_commits == 4 for s in merged)


def test_merge_by_repository_when_only_key():
    roster = [_row(name="Ada", runtime_id="sec-0", github_repo="ada/app", loading=True)]
    result = _row(
        github_repo="ada/app",
        total_commits=2,
        recent_commit=RecentCommit("init", "Ada", "2024-01-01T00:00:00Z", "abc1234", None),
    )

    merged = merge_results(roster, [result])

    assert merged[0].runtime_id == "sec-0"
    assert merged[0].name == "Ada"
    assert merged[0].total_commits == 2
    assert merged[0].recent_commit.sha == "abc1234"


def test_merge_ambiguous_key_falls_through():
    """Test that a key matching several results is skipped for the next key."""
    roster = [_row(name="Ada", runtime_id="r1", roll_no="7", github_repo="ada/app", loading=True)]
    results = [
        _row(runtime_id="x1", roll_no="7", total_commits=1),
        _row(runtime_id="x2", roll_no="7", total_commits=2),
    ]

    merged = merge_results(roster, results)

    assert merged[0].total_commits == 0
    assert merged[0].loading is True


def test_merge_clears_stale_error():
    roster = [_row(name="Ada", runtime_id="A1", github_repo="ada/app", error="HTTP 500")]
    result = roster[0].with_bundle(MetricsBundle(total_commits=3))

    merged = merge_results(roster, [result])

    assert merged[0].error is None


def test_merge_keeps_length_and_order():
    roster = seed_roster(
        [{"name": f"S{i}", "admissionNo": f"A{i}", "githubRepo": f"s{i}/app"} for i in range(6)]
    ).students
    results = [row.with_bundle(MetricsBundle(total_commits=i)) for i, row in enumerate(roster)][::2]

    merged = merge_results(roster, results)

    assert [s.runtime_id for s in merged] == [s.runtime_id for s in roster]
    assert [s.loading for s in merged] == [False, True, False, True, False, True]


@pytest.mark.parametrize(
    "picked",
    [[], [0, 3], [0, 1, 2, 3, 4, 5]],
    ids=["empty", "partial", "full"],
)
def test_merge_preserves_identities_for_any_subset(picked):
    """Test row count, runtime id order and loading state after merging any subset."""
    roster = seed_roster(
        [
            {
                "name": f"S{i}",
                "admissionNo": f"A{i}",
                "githubRepo": f"s{i}/app" if i % 2 == 0 else "",
            }
            for i in range(6)
        ]
    ).students
    results = [roster[i].with_bundle(MetricsBundle(total_commits=i + 1)) for i in picked]

    merged = merge_results(roster, results)

    assert len(merged) == len(roster)
    assert [s.runtime_id for s in merged] == [s.runtime_id for s in roster]
    for i, (before, after) in enumerate(zip(roster, merged)):
        if i in picked:
            assert after.loading is False
            assert after.total_commits == i + 1
        else:
            assert after.loading is before.has_repository
            assert after.total_commits == 0


def test_summarize_roster():
    rows = [
        _row(name="Ada", github_repo="ada/app", total_commits=10, total_lines_of_code=500),
        _row(name="Bo", github_repo="bo/app", total_commits=0, error="HTTP 404"),
        _row(name="Cy", error="No GitHub repository"),
        _row(name="Di", github_repo="di/app", loading=True),
    ]

    summary = summarize_roster(rows)

    assert summary.total == 4
    assert summary.no_repo == 1
    assert summary.zero_commits == 2
    assert summary.with_errors == 2
    assert summary.loading == 1
    assert summary.total_commits == 10
    assert summary.total_lines_of_code == 500


def test_top_performers():
    rows = [
        _row(name="Ada", total_commits=12, total_lines_of_code=None),
        _row(name="Bo", total_commits=30, total_lines_of_code=800),
        _row(name="Cy", total_commits=0, total_lines_of_code=0),
        _row(name="Di", total_commits=5, total_lines_of_code=1500),
        _row(name="Ed", total_commits=7, total_lines_of_code=90),
    ]

    by_commits, by_loc = top_performers(rows)

    assert [r.name for r in by_commits] == ["Bo", "Ada", "Ed"]
    assert [r.name for r in by_loc] == ["Di", "Bo", "Ed"]
