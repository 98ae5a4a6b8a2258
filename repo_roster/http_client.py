"""Shared HTTP client handling."""

import httpx

from repo_roster.config import (
    AUTHENTICATED_BATCH,
    GITHUB_MEDIA_TYPE,
    USER_AGENT,
    get_verify_ssl,
)

_http_client: httpx.Client | None = None
_http_client_verify_ssl: bool | None = None

_async_http_client: httpx.AsyncClient | None = None
_async_http_client_verify_ssl: bool | None = None

_DEFAULT_HEADERS = {"Accept": GITHUB_MEDIA_TYPE, "User-Agent": USER_AGENT}
_LIMITS = httpx.Limits(
    max_connections=50,
    max_keepalive_connections=20,
    keepalive_expiry=30.0,
)
# One authenticated batch issues up to three sub-requests per row at once
_ASYNC_LIMITS = httpx.Limits(
    max_connections=AUTHENTICATED_BATCH.batch_size * 3,
    max_keepalive_connections=AUTHENTICATED_BATCH.batch_size,
    keepalive_expiry=30.0,
)
_ASYNC_TIMEOUT = httpx.Timeout(20.0, pool=60.0)


def _get_http_client() -> httpx.Client:
    """Get or create a global HTTP client with connection pooling.

    Recreates the client if SSL verification setting has changed.
    """
    global _http_client, _http_client_verify_ssl
    current_verify_ssl = get_verify_ssl()

    # Recreate client if setting changed or client is closed/None
    if (
        _http_client is None
        or _http_client.is_closed
        or _http_client_verify_ssl != current_verify_ssl
    ):
        if _http_client is not None and not _http_client.is_closed:
            _http_client.close()

        _http_client = httpx.Client(
            verify=current_verify_ssl,
            timeout=10,
            headers=_DEFAULT_HEADERS,
            limits=_LIMITS,
        )
        _http_client_verify_ssl = current_verify_ssl
    return _http_client


async def _get_async_http_client() -> httpx.AsyncClient:
    """Get or create a global async HTTP client with connection pooling.

    The pool holds every sub-request of one full authenticated batch, and
    waiting for a free connection has its own, longer timeout.
    """
    global _async_http_client, _async_http_client_verify_ssl
    current_verify_ssl = get_verify_ssl()

    if (
        _async_http_client is None
        or _async_http_client.is_closed
        or _async_http_client_verify_ssl != current_verify_ssl
    ):
        if _async_http_client is not None and not _async_http_client.is_closed:
            await _async_http_client.aclose()

        _async_http_client = httpx.AsyncClient(
            verify=current_verify_ssl,
            timeout=_ASYNC_TIMEOUT,
            headers=_DEFAULT_HEADERS,
            limits=_ASYNC_LIMITS,
        )
        _async_http_client_verify_ssl = current_verify_ssl
    return _async_http_client


def close_http_client():
    """Close the global HTTP client. Call this when shutting down."""
    global _http_client, _http_client_verify_ssl
    if _http_client is not None and not _http_client.is_closed:
        _http_client.close()
    _http_client = None
    _http_client_verify_ssl = None


async def close_async_http_client():
    """Close the global async HTTP client. Call this before the event loop ends."""
    global _async_http_client, _async_http_client_verify_ssl
    if _async_http_client is not None and not _async_http_client.is_closed:
        await _async_http_client.aclose()
    _async_http_client = None
    _async_http_client_verify_ssl = None
