"""
Tests for the command-line interface.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

from typer.testing import CliRunner

from repo_roster.cli import app, load_roster_file
from repo_roster.models import MetricsBundle, RecentCommit

runner = CliRunner()


class DummyProgress:
    def __init__(self, *args, **kwargs):
        self.updates = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def add_task(self, description, total=None):
        return 0

    def update(self, task_id, **kwargs):
        self.updates.append(kwargs)


def _write_roster(tmp_path, data):
    path = tmp_path / "roster.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_load_roster_file_accepts_list_and_object(tmp_path):
    rows = [{"name": "Ada", "admissionNo": "A1"}]
    assert load_roster_file(_write_roster(tmp_path, rows)) == rows
    assert load_roster_file(_write_roster(tmp_path, {"students": rows})) == rows


def test_check_missing_file(tmp_path):
    result = runner.invoke(app, ["check", str(tmp_path / "missing.json")])
    assert result.exit_code == 1
    assert "Roster file not found" in result.output


def test_check_empty_roster_makes_no_requests(tmp_path):
    path = _write_roster(tmp_path, [])

    with patch("repo_roster.cli.GitHubMetricsClient") as mock_client_cls:
        result = runner.invoke(app, ["check", str(path)])

    assert result.exit_code == 0
    assert "No students in roster" in result.output
    mock_client_cls.assert_not_called()


def test_check_renders_roster_and_writes_output(tmp_path):
    path = _write_roster(
        tmp_path,
        {
            "students": [
                {"name": "Ada", "admissionNo": "A1", "githubRepo": "https://github.com/ada/app"},
                {"name": "Ada dup", "admissionNo": "A1", "githubRepo": "https://github.com/ada/app"},
                {"name": "Bo", "admissionNo": "A2"},
            ]
        },
    )
    output = tmp_path / "out" / "enriched.json"
    bundle = MetricsBundle(
        total_commits=12,
        recent_commit=RecentCommit(
            "Fix tests", "Ada", "2024-03-01T10:00:00Z", "abc1234", None
        ),
        total_lines_of_code=450,
    )
    mock_client = MagicMock()
    mock_client.authenticated = True
    mock_client.get_repository_data = AsyncMock(return_value=bundle)

    with (
        patch("repo_roster.cli.Progress", DummyProgress),
        patch("repo_roster.cli.GitHubMetricsClient", return_value=mock_client),
        patch("repo_roster.cli.close_async_http_client", new=AsyncMock()) as mock_close,
    ):
        result = runner.invoke(app, ["check", str(path), "--output", str(output)])

    assert result.exit_code == 0, result.output
    assert "Removed 1 duplicate entry" in result.output
    assert "Top by commits" in result.output
    mock_client.get_repository_data.assert_awaited_once_with(
        "https://github.com/ada/app", include_loc=True
    )
    mock_close.assert_awaited_once()

    written = json.loads(output.read_text(encoding="utf-8"))
    students = written["students"]
    assert [s["runtimeId"] for s in students] == ["A1", "A2"]
    assert students[0]["totalCommits"] == 12
    assert students[0]["totalLinesOfCode"] == 450
    assert students[1]["error"] == "No GitHub repository"


def test_check_no_loc_flag(tmp_path):
    path = _write_roster(
        tmp_path, [{"name": "Ada", "admissionNo": "A1", "githubRepo": "ada/app"}]
    )
    mock_client = MagicMock()
    mock_client.authenticated = False
    mock_client.get_repository_data = AsyncMock(return_value=MetricsBundle(total_commits=1))

    with (
        patch("repo_roster.cli.Progress", DummyProgress),
        patch("repo_roster.cli.GitHubMetricsClient", return_value=mock_client),
        patch("repo_roster.cli.close_async_http_client", new=AsyncMock()),
    ):
        result = runner.invoke(app, ["check", str(path), "--no-loc"])

    assert result.exit_code == 0, result.output
    assert "No GitHub token found" in result.output
    mock_client.get_repository_data.assert_awaited_once_with("ada/app", include_loc=False)


def test_duplicates_command(tmp_path):
    path = _write_roster(
        tmp_path,
        [
            {"name": "Ada", "admissionNo": "A1", "rollNo": "1"},
            {"name": "Bo", "admissionNo": "A1", "rollNo": "2"},
        ],
    )

    result = runner.invoke(app, ["duplicates", str(path)])

    assert result.exit_code == 1
    assert "A1" in result.output
    assert "Duplicate roll numbers: None" in result.output


def test_duplicates_command_clean(tmp_path):
    path = _write_roster(tmp_path, [{"name": "Ada", "admissionNo": "A1", "rollNo": "1"}])

    result = runner.invoke(app, ["duplicates", str(path)])

    assert result.exit_code == 0


def test_rate_limit_command():
    mock_client = MagicMock()
    mock_client.check_rate_limit.return_value = {
        "resources": {"core": {"limit": 5000, "remaining": 4321, "reset": 1700000000}}
    }

    with (
        patch("repo_roster.cli.GitHubMetricsClient", return_value=mock_client),
        patch("repo_roster.cli.close_http_client") as mock_close,
    ):
        result = runner.invoke(app, ["rate-limit"])

    assert result.exit_code == 0, result.output
    assert "4321" in result.output
    mock_close.assert_called_once()


def test_rate_limit_command_failure():
    mock_client = MagicMock()
    mock_client.check_rate_limit.return_value = None

    with (
        patch("repo_roster.cli.GitHubMetricsClient", return_value=mock_client),
        patch("repo_roster.cli.close_http_client"),
    ):
        result = runner.invoke(app, ["rate-limit"])

    assert result.exit_code == 1


def test_validate_user_command():
    mock_client = MagicMock()
    mock_client.validate_username = AsyncMock(side_effect=[True, False])

    with (
        patch("repo_roster.cli.GitHubMetricsClient", return_value=mock_client),
        patch("repo_roster.cli.close_async_http_client", new=AsyncMock()),
    ):
        ok = runner.invoke(app, ["validate-user", "ada"])
        missing = runner.invoke(app, ["validate-user", "nobody"])

    assert ok.exit_code == 0
    assert "exists on GitHub" in ok.output
    assert missing.exit_code == 1
    assert "was not found" in missing.output
