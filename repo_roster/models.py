"""
Shared data types for roster enrichment.

Roster rows travel as immutable ``StudentRecord`` tuples. The JSON shape used
by callers keeps the camelCase keys of the source roster, so conversion lives
here as ``from_dict`` / ``to_dict``.
"""

from typing import Any, NamedTuple


class RecentCommit(NamedTuple):
    """The most recent commit on a repository's default branch."""

    message: str
    author: str | None
    date: str | None
    sha: str
    url: str | None

    def to_dict(self) -> dict[str, Any]:
        return self._asdict()

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RecentCommit | None":
        if not data:
            return None
        return cls(
            message=data.get("message") or "",
            author=data.get("author"),
            date=data.get("date"),
            sha=data.get("sha") or "",
            url=data.get("url"),
        )


class RepositoryInfo(NamedTuple):
    """Repository metadata shown next to commit figures."""

    name: str
    description: str | None
    language: str | None
    stars: int
    forks: int
    size: int
    is_private: bool
    created_at: str | None
    updated_at: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "language": self.language,
            "stars": self.stars,
            "forks": self.forks,
            "size": self.size,
            "isPrivate": self.is_private,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RepositoryInfo | None":
        if not data:
            return None
        return cls(
            name=data.get("name") or "",
            description=data.get("description"),
            language=data.get("language"),
            stars=int(data.get("stars") or 0),
            forks=int(data.get("forks") or 0),
            size=int(data.get("size") or 0),
            is_private=bool(data.get("isPrivate", False)),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


class MetricsBundle(NamedTuple):
    """All metrics fetched for one repository at one point in time.

    ``total_lines_of_code`` is ``None`` when the estimate is unknown or was not
    requested. It is never ``0`` as a stand-in for "unknown".
    """

    total_commits: int = 0
    recent_commit: RecentCommit | None = None
    repository_info: RepositoryInfo | None = None
    total_lines_of_code: int | None = None
    error: str | None = None


class CacheEntry(NamedTuple):
    """A cached bundle and the time it was stored."""

    timestamp: float
    bundle: MetricsBundle


class BatchProfile(NamedTuple):
    """Batch size and pause between batches for one credential tier."""

    batch_size: int
    delay_seconds: float


# Fields owned by the metrics overlay. Merging always copies these from a
# result row, even when the value is None.
METRIC_FIELDS = (
    "total_commits",
    "recent_commit",
    "repository_info",
    "total_lines_of_code",
    "loading",
    "error",
)

# Identity and display fields. Merging copies these only when set.
IDENTITY_FIELDS = (
    "runtime_id",
    "admission_no",
    "roll_no",
    "name",
    "github_repo",
    "github_username",
)


class StudentRecord(NamedTuple):
    """One roster row plus its metrics overlay."""

    name: str = ""
    admission_no: str | None = None
    roll_no: str | None = None
    github_repo: str | None = None
    github_username: str | None = None
    runtime_id: str | None = None
    total_commits: int = 0
    recent_commit: RecentCommit | None = None
    repository_info: RepositoryInfo | None = None
    total_lines_of_code: int | None = None
    loading: bool = False
    error: str | None = None

    @property
    def has_repository(self) -> bool:
        return bool(self.github_repo and self.github_repo.strip())

    def with_bundle(self, bundle: MetricsBundle) -> "StudentRecord":
        """Return this row with the bundle's metrics applied and loading off."""
        return self._replace(
            total_commits=bundle.total_commits,
            recent_commit=bundle.recent_commit,
            repository_info=bundle.repository_info,
            total_lines_of_code=bundle.total_lines_of_code,
            loading=False,
            error=bundle.error,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StudentRecord":
        """Build a record from a camelCase roster row."""

        def _text(key: str) -> str | None:
            value = data.get(key)
            if value is None:
                return None
            value = str(value).strip()
            return value or None

        loc = data.get("totalLinesOfCode")
        return cls(
            name=str(data.get("name") or ""),
            admission_no=_text("admissionNo"),
            roll_no=_text("rollNo"),
            github_repo=_text("githubRepo"),
            github_username=_text("githubUsername"),
            runtime_id=_text("_id") or _text("runtimeId"),
            total_commits=int(data.get("totalCommits") or 0),
            recent_commit=RecentCommit.from_dict(data.get("recentCommit")),
            repository_info=RepositoryInfo.from_dict(data.get("repositoryInfo")),
            total_lines_of_code=int(loc) if isinstance(loc, (int, float)) else None,
            loading=bool(data.get("loading", False)),
            error=data.get("error"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase shape used by the display layer."""
        return {
            "runtimeId": self.runtime_id,
            "admissionNo": self.admission_no,
            "rollNo": self.roll_no,
            "name": self.name,
            "githubRepo": self.github_repo,
            "githubUsername": self.github_username,
            "totalCommits": self.total_commits,
            "recentCommit": self.recent_commit.to_dict() if self.recent_commit else None,
            "repositoryInfo": (
                self.repository_info.to_dict() if self.repository_info else None
            ),
            "totalLinesOfCode": self.total_lines_of_code,
            "loading": self.loading,
            "error": self.error,
        }


class SeedResult(NamedTuple):
    """Seeded roster and the duplicate keys dropped while seeding."""

    students: list[StudentRecord]
    duplicate_keys: list[str]
    duplicate_count: int


class RosterSummary(NamedTuple):
    """Aggregate counts over a roster snapshot."""

    total: int
    no_repo: int
    zero_commits: int
    with_errors: int
    loading: int
    total_commits: int
    total_lines_of_code: int
