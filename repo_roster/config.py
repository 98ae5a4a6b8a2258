"""
Configuration management for repo-roster.

Settings are resolved in this order:
1. Values set explicitly through the ``set_*`` functions (CLI flags)
2. Environment variables (``.env`` files are loaded with python-dotenv)
3. .repo-roster.toml (local config)
4. pyproject.toml ``[tool.repo-roster]`` (project-level config)
5. Built-in defaults
"""

import os
import tomllib
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from repo_roster.models import BatchProfile

# Load environment variables
load_dotenv()

# project_root is the parent directory of repo_roster/
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# GitHub REST API
GITHUB_API_URL = "https://api.github.com"
GITHUB_WEB_URL = "https://github.com"
GITHUB_MEDIA_TYPE = "application/vnd.github.v3+json"
USER_AGENT = "repo-roster/0.1"

# Lines-of-code estimation
# Fast mode: average bytes per source line across languages
BYTES_PER_LINE = 40
# Accurate mode: the code_frequency endpoint answers 202 while it computes
STATS_MAX_ATTEMPTS = 6
STATS_RETRY_DELAY = 1.5

# Batch pacing per credential tier (GitHub allows 5000 req/h with a token,
# 60 req/h without)
AUTHENTICATED_BATCH = BatchProfile(batch_size=50, delay_seconds=0.05)
ANONYMOUS_BATCH = BatchProfile(batch_size=5, delay_seconds=2.0)

# Rate-limit backoff for individual requests
RATE_LIMIT_MAX_RETRIES = 2
DEFAULT_MAX_RATE_LIMIT_WAIT = 60

# Seeding
DUPLICATE_WARNING_LIMIT = 10

# Default TTL: 30 minutes (in seconds)
DEFAULT_CACHE_TTL = 30 * 60

# Global settings (can be overridden)
VERIFY_SSL = True
_GITHUB_TOKEN: str | None = None
_CACHE_TTL: int | None = None
_VERBOSE: bool | None = None


def load_config_file(config_path: Path) -> dict:
    """Load a TOML configuration file."""
    if not config_path.exists():
        return {}
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        raise ValueError(f"Failed to load config from {config_path}: {e}") from e


def get_tool_config() -> dict[str, Any]:
    """
    Return the ``[tool.repo-roster]`` table from the project config files.

    Priority:
    1. .repo-roster.toml (local config, highest priority)
    2. pyproject.toml (project-level config, fallback)

    Returns:
        The tool table, or an empty dict when neither file defines one.
    """
    local_config_path = PROJECT_ROOT / ".repo-roster.toml"
    if local_config_path.exists():
        config = load_config_file(local_config_path)
        tool_config = config.get("tool", {}).get("repo-roster", {})
        if tool_config:
            return tool_config

    pyproject_path = PROJECT_ROOT / "pyproject.toml"
    if pyproject_path.exists():
        config = load_config_file(pyproject_path)
        return config.get("tool", {}).get("repo-roster", {})

    return {}


def set_verify_ssl(verify: bool) -> None:
    """
    Set the SSL verification setting globally.

    Args:
        verify: Whether to verify SSL certificates.
    """
    global VERIFY_SSL
    VERIFY_SSL = verify


def get_verify_ssl() -> bool:
    """Get the current SSL verification setting."""
    return VERIFY_SSL


def get_github_token() -> str | None:
    """
    Get the GitHub token used for elevated rate limits.

    Priority:
    1. Explicitly set value via set_github_token()
    2. GITHUB_TOKEN environment variable (or .env file)

    Returns:
        The token, or None for unauthenticated access.
    """
    if _GITHUB_TOKEN is not None:
        return _GITHUB_TOKEN or None
    token = os.getenv("GITHUB_TOKEN", "").strip()
    return token or None


def set_github_token(token: str | None) -> None:
    """
    Set the GitHub token explicitly.

    Passing an empty string forces unauthenticated access even when
    GITHUB_TOKEN is present in the environment.
    """
    global _GITHUB_TOKEN
    _GITHUB_TOKEN = token


def get_cache_ttl() -> int:
    """
    Get the metrics cache TTL (Time To Live) in seconds.

    Priority:
    1. Explicitly set value via set_cache_ttl()
    2. REPO_ROSTER_CACHE_TTL environment variable
    3. ``cache.ttl_seconds`` in the config files
    4. Default: 1800 (30 minutes)

    Returns:
        TTL in seconds.
    """
    if _CACHE_TTL is not None:
        return _CACHE_TTL

    env_cache_ttl = os.getenv("REPO_ROSTER_CACHE_TTL")
    if env_cache_ttl:
        try:
            return int(env_cache_ttl)
        except ValueError:
            pass

    cache_config = get_tool_config().get("cache", {})
    if "ttl_seconds" in cache_config:
        return int(cache_config["ttl_seconds"])

    return DEFAULT_CACHE_TTL


def set_cache_ttl(seconds: int | None) -> None:
    """Set the cache TTL explicitly. None restores the normal lookup."""
    global _CACHE_TTL
    _CACHE_TTL = seconds


def is_verbose_enabled() -> bool:
    """
    Check if verbose output is enabled.

    Priority:
    1. Explicitly set value via set_verbose()
    2. REPO_ROSTER_VERBOSE environment variable ("1", "true", "yes")
    3. ``verbose`` in the config files
    4. Default: False
    """
    if _VERBOSE is not None:
        return _VERBOSE

    env_verbose = os.getenv("REPO_ROSTER_VERBOSE")
    if env_verbose:
        return env_verbose.strip().lower() in ("1", "true", "yes")

    return bool(get_tool_config().get("verbose", False))


def set_verbose(verbose: bool | None) -> None:
    """Enable or disable verbose output. None restores the normal lookup."""
    global _VERBOSE
    _VERBOSE = verbose


def get_max_rate_limit_wait() -> int:
    """Maximum seconds a single request waits for a rate-limit reset."""
    env_wait = os.getenv("REPO_ROSTER_MAX_RATE_LIMIT_WAIT")
    if env_wait:
        try:
            return max(0, int(env_wait))
        except ValueError:
            pass
    return DEFAULT_MAX_RATE_LIMIT_WAIT
