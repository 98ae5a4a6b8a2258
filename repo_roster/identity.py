"""
Repository reference parsing.

Turns the free-form ``githubRepo`` values found in rosters (full URLs,
``owner/repo`` shorthand, clone URLs ending in ``.git``) into a canonical
``RepositoryIdentity``.
"""

from typing import NamedTuple
from urllib.parse import urlsplit

from repo_roster.config import GITHUB_WEB_URL


class RepositoryIdentity(NamedTuple):
    """Canonical (owner, repo) pair for one remote repository."""

    owner: str
    repo: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def url(self) -> str:
        return f"{GITHUB_WEB_URL}/{self.owner}/{self.repo}"


def resolve_repository(reference: str | None) -> RepositoryIdentity | None:
    """
    Resolve a repository reference to its owner and name.

    Args:
        reference: A GitHub URL (``https://github.com/owner/repo``, optionally
            with extra path segments or a ``.git`` suffix) or an
            ``owner/repo`` shorthand.

    Returns:
        The RepositoryIdentity, or None when the reference is empty, is not a
        parseable URL, or has fewer than two path segments.
    """
    if not reference:
        return None

    url = reference.strip()
    if url.endswith(".git"):
        url = url[: -len(".git")]
    if not url.startswith("http"):
        url = f"{GITHUB_WEB_URL}/{url}"

    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None

    segments = [segment for segment in parts.path.split("/") if segment]
    if len(segments) < 2:
        return None

    return RepositoryIdentity(owner=segments[0], repo=segments[1])
