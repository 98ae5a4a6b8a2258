"""
GitHub REST client for roster metrics.

Fetches commit counts, the most recent commit, repository metadata and a
lines-of-code estimate for one repository. Every sub-request is independent:
only a failed commit summary marks the whole bundle as failed, the others
degrade to None.
"""

import asyncio
import re
import time
from typing import Any

import httpx

from repo_roster.cache import MetricsCache
from repo_roster.config import (
    BYTES_PER_LINE,
    GITHUB_API_URL,
    GITHUB_MEDIA_TYPE,
    RATE_LIMIT_MAX_RETRIES,
    STATS_MAX_ATTEMPTS,
    STATS_RETRY_DELAY,
    USER_AGENT,
    get_github_token,
    get_max_rate_limit_wait,
)
from repo_roster.console import console, log_verbose
from repo_roster.http_client import _get_async_http_client, _get_http_client
from repo_roster.identity import RepositoryIdentity, resolve_repository
from repo_roster.models import MetricsBundle, RecentCommit, RepositoryInfo

INVALID_REFERENCE_ERROR = "Invalid GitHub URL"

_PAGE_PARAM = re.compile(r"\bpage=(\d+)")


def parse_last_page(link_header: str | None) -> int | None:
    """
    Extract the last page number from a pagination ``Link`` header.

    Args:
        link_header: Header value such as
            ``<https://api.github.com/...&page=2>; rel="next", <...&page=7>; rel="last"``.

    Returns:
        The page number of the ``rel="last"`` link, or None when absent.
    """
    if not link_header:
        return None
    for part in link_header.split(","):
        if 'rel="last"' not in part:
            continue
        match = _PAGE_PARAM.search(part)
        if match:
            return int(match.group(1))
    return None


def describe_error(exc: Exception) -> str:
    """Short, row-friendly description of a request failure."""
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    return str(exc) or exc.__class__.__name__


def _rate_limit_wait(response: httpx.Response, attempt: int) -> float | None:
    """
    Seconds to wait before retrying a rate-limited response.

    Returns None when the response is not a rate-limit rejection.
    """
    if response.status_code not in (403, 429):
        return None

    headers = response.headers
    retry_after = headers.get("Retry-After")
    if headers.get("X-RateLimit-Remaining") != "0" and not retry_after:
        return None

    reset = headers.get("X-RateLimit-Reset")
    if retry_after and retry_after.isdigit():
        wait = int(retry_after)
    elif reset and reset.isdigit():
        wait = max(0, int(reset) - int(time.time())) + 1
    else:
        wait = 2**attempt
    return float(min(wait, get_max_rate_limit_wait()))


class GitHubMetricsClient:
    """Fetches and caches per-repository metrics from the GitHub REST API."""

    def __init__(
        self,
        token: str | None = None,
        cache: MetricsCache | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the client.

        Args:
            token: GitHub token. If not provided, reads GITHUB_TOKEN through
                config.get_github_token(). Pass "" to force anonymous access.
            cache: Metrics cache owned by this client. A fresh one is created
                when omitted.
            http_client: Async HTTP client to use instead of the shared one.
        """
        self.token = get_github_token() if token is None else (token or None)
        self.cache = cache if cache is not None else MetricsCache()
        self._http_client = http_client

    @property
    def authenticated(self) -> bool:
        """Whether requests carry a token (and get the higher rate limit)."""
        return bool(self.token)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": GITHUB_MEDIA_TYPE, "User-Agent": USER_AGENT}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client
        return await _get_async_http_client()

    async def _get(
        self, path: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        """GET an API path, waiting out rate-limit rejections a bounded number of times."""
        client = await self._client()
        url = f"{GITHUB_API_URL}{path}"
        attempt = 0
        while True:
            response = await client.get(url, params=params, headers=self._headers())
            wait = _rate_limit_wait(response, attempt)
            if wait is None or attempt >= RATE_LIMIT_MAX_RETRIES:
                return response
            console.print(
                f"  [yellow]⚠️  Rate limited on {path}, retrying in {wait:.0f}s[/yellow]"
            )
            await asyncio.sleep(wait)
            attempt += 1

    async def get_commit_summary(
        self, owner: str, repo: str
    ) -> tuple[int, RecentCommit | None]:
        """
        Fetch the commit count and the most recent commit in one request.

        Requests a single commit per page; the ``rel="last"`` page number of
        the pagination header is then the total commit count.

        Returns:
            Tuple of (total_commits, recent_commit).

        Raises:
            httpx.HTTPStatusError: If GitHub returns an error status.
            httpx.RequestError: On network failure.
        """
        response = await self._get(
            f"/repos/{owner}/{repo}/commits", params={"per_page": 1}
        )
        # GitHub answers 409 for a repository without any commits
        if response.status_code == 409:
            return 0, None
        response.raise_for_status()

        commits = response.json()
        if not isinstance(commits, list) or not commits:
            return 0, None

        last_page = parse_last_page(response.headers.get("Link"))
        total_commits = last_page if last_page is not None else 1

        commit = commits[0]
        if not isinstance(commit, dict):
            raise ValueError(f"Unexpected commit payload: {type(commit).__name__}")
        details = commit.get("commit") or {}
        author = details.get("author") or {}
        recent_commit = RecentCommit(
            message=details.get("message") or "",
            author=author.get("name"),
            date=author.get("date"),
            sha=(commit.get("sha") or "")[:7],
            url=commit.get("html_url"),
        )
        return total_commits, recent_commit

    async def get_repository_info(self, owner: str, repo: str) -> RepositoryInfo | None:
        """Fetch repository metadata, or None if the request fails."""
        try:
            response = await self._get(f"/repos/{owner}/{repo}")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            log_verbose(f"Repository info unavailable for {owner}/{repo}: {describe_error(e)}")
            return None
        if not isinstance(data, dict):
            log_verbose(f"Repository info for {owner}/{repo} is not an object")
            return None

        return RepositoryInfo(
            name=data.get("name") or repo,
            description=data.get("description"),
            language=data.get("language"),
            stars=int(data.get("stargazers_count") or 0),
            forks=int(data.get("forks_count") or 0),
            size=int(data.get("size") or 0),
            is_private=bool(data.get("private", False)),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    async def get_language_bytes(self, owner: str, repo: str) -> int:
        """
        Sum the per-language byte counts of a repository.

        Raises:
            httpx.HTTPStatusError: If GitHub returns an error status.
            ValueError: If the body is not a language -> bytes object.
        """
        response = await self._get(f"/repos/{owner}/{repo}/languages")
        response.raise_for_status()
        languages = response.json() or {}
        if not isinstance(languages, dict):
            raise ValueError(f"Unexpected languages payload: {type(languages).__name__}")
        return sum(int(count) for count in languages.values())

    async def estimate_lines_of_code(self, owner: str, repo: str) -> int | None:
        """
        Estimate lines of code from language byte totals (fast mode).

        Uses one request and assumes BYTES_PER_LINE bytes per line.

        Returns:
            The estimate rounded to the nearest line, or None if the language
            totals could not be fetched.
        """
        try:
            total_bytes = await self.get_language_bytes(owner, repo)
        except (httpx.HTTPError, ValueError, TypeError) as e:
            log_verbose(f"Language totals unavailable for {owner}/{repo}: {describe_error(e)}")
            return None
        total_bytes = max(0, total_bytes)
        return (total_bytes + BYTES_PER_LINE // 2) // BYTES_PER_LINE

    async def get_lines_via_stats(
        self,
        owner: str,
        repo: str,
        max_attempts: int = STATS_MAX_ATTEMPTS,
        retry_delay: float = STATS_RETRY_DELAY,
    ) -> int | None:
        """
        Compute net lines of code from the weekly code-frequency series (accurate mode).

        GitHub computes the series in the background and answers 202 until it
        is ready, so the endpoint is polled up to ``max_attempts`` times.

        Returns:
            Sum of additions minus deletions over all weeks, clamped at zero,
            or None if the series never became available. None means unknown
            and is distinct from zero.
        """
        path = f"/repos/{owner}/{repo}/stats/code_frequency"
        for attempt in range(1, max_attempts + 1):
            try:
                response = await self._get(path)
                if response.status_code == 202:
                    log_verbose(
                        f"Statistics for {owner}/{repo} not ready "
                        f"(attempt {attempt}/{max_attempts})"
                    )
                else:
                    response.raise_for_status()
                    weeks = response.json()
                    if isinstance(weeks, list) and weeks:
                        # Each week is [timestamp, additions, deletions];
                        # deletions are reported as negative numbers
                        total = sum(int(w[1]) - abs(int(w[2])) for w in weeks)
                        return max(0, total)
            except (httpx.HTTPError, ValueError, TypeError) as e:
                log_verbose(f"Statistics request failed for {owner}/{repo}: {describe_error(e)}")

            if attempt < max_attempts:
                await asyncio.sleep(retry_delay)
        return None

    async def _commit_summary_or_error(
        self, owner: str, repo: str
    ) -> tuple[int, RecentCommit | None, str | None]:
        try:
            total_commits, recent_commit = await self.get_commit_summary(owner, repo)
        except (httpx.HTTPError, ValueError) as e:
            error = describe_error(e)
            console.print(
                f"  [yellow]⚠️  Unable to fetch commits for {owner}/{repo}: {error}[/yellow]"
            )
            return 0, None, error
        return total_commits, recent_commit, None

    async def fetch_metrics(
        self, identity: RepositoryIdentity, include_loc: bool = True
    ) -> MetricsBundle:
        """
        Fetch the full metrics bundle for a repository, using the cache.

        The commit summary, metadata and (optionally) LOC estimate requests
        run concurrently. Only bundles without an error are cached.

        Args:
            identity: Repository to fetch.
            include_loc: Whether to include the fast-mode LOC estimate. The
                two modes are cached separately.

        Returns:
            The MetricsBundle; a cache hit returns the stored instance.
        """
        owner, repo = identity
        key = MetricsCache.key_for(identity, include_loc)
        cached = self.cache.get(key)
        if cached is not None:
            log_verbose(f"Cache hit: {key}")
            return cached

        requests = [
            self._commit_summary_or_error(owner, repo),
            self.get_repository_info(owner, repo),
        ]
        if include_loc:
            requests.append(self.estimate_lines_of_code(owner, repo))
        results = await asyncio.gather(*requests)

        total_commits, recent_commit, error = results[0]
        bundle = MetricsBundle(
            total_commits=total_commits,
            recent_commit=recent_commit,
            repository_info=results[1],
            total_lines_of_code=results[2] if include_loc else None,
            error=error,
        )
        if error is None:
            self.cache.put(key, bundle)
        return bundle

    async def get_repository_data(
        self, reference: str, include_loc: bool = True
    ) -> MetricsBundle:
        """Resolve a repository reference and fetch its metrics bundle."""
        identity = resolve_repository(reference)
        if identity is None:
            return MetricsBundle(error=INVALID_REFERENCE_ERROR)
        return await self.fetch_metrics(identity, include_loc=include_loc)

    def invalidate(self, reference: str) -> bool:
        """Drop cached bundles for a repository reference. Returns False if unparseable."""
        identity = resolve_repository(reference)
        if identity is None:
            return False
        self.cache.invalidate(identity.owner, identity.repo)
        return True

    def clear_cache(self) -> None:
        self.cache.clear()

    async def get_rate_limit(self) -> dict[str, Any] | None:
        """Fetch the current rate-limit status, or None on failure."""
        try:
            response = await self._get("/rate_limit")
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            console.print(f"[red]Rate limit check failed: {describe_error(e)}[/red]")
            return None

    def check_rate_limit(self) -> dict[str, Any] | None:
        """Synchronous variant of get_rate_limit() for diagnostics."""
        try:
            client = _get_http_client()
            response = client.get(f"{GITHUB_API_URL}/rate_limit", headers=self._headers())
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            console.print(f"[red]Rate limit check failed: {describe_error(e)}[/red]")
            return None

    async def validate_username(self, username: str) -> bool:
        """Return True if the GitHub user exists."""
        username = (username or "").strip()
        if not username:
            return False
        try:
            response = await self._get(f"/users/{username}")
        except httpx.HTTPError:
            return False
        return response.is_success
