"""Shared async HTTP clients for the identity provider and the upload host.

Each external service gets one pooled httpx.AsyncClient, created lazily and
closed from the application lifespan.
"""

import httpx

# Timeouts (seconds)
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_READ_TIMEOUT = 10.0
DEFAULT_WRITE_TIMEOUT = 10.0
DEFAULT_POOL_TIMEOUT = 5.0

# Uploads stream a whole file body
UPLOAD_WRITE_TIMEOUT = 120.0
UPLOAD_READ_TIMEOUT = 60.0

_identity_client: httpx.AsyncClient | None = None
_upload_client: httpx.AsyncClient | None = None


def create_http_client(
    base_url: str = "",
    max_connections: int = 20,
    max_keepalive_connections: int = 10,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    read_timeout: float = DEFAULT_READ_TIMEOUT,
    write_timeout: float = DEFAULT_WRITE_TIMEOUT,
    pool_timeout: float = DEFAULT_POOL_TIMEOUT,
) -> httpx.AsyncClient:
    """Create a configured async HTTP client.

    Args:
        base_url: Base URL for all requests (empty string for none)
        max_connections: Maximum number of concurrent connections
        max_keepalive_connections: Maximum idle connections to keep alive
        connect_timeout: Timeout for establishing connection
        read_timeout: Timeout for reading response
        write_timeout: Timeout for sending request
        pool_timeout: Timeout for acquiring connection from pool
    """
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=write_timeout,
            pool=pool_timeout,
        ),
        limits=httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive_connections,
        ),
    )


def get_identity_client(
    base_url: str = "https://identitytoolkit.googleapis.com",
) -> httpx.AsyncClient:
    """Singleton client for the Identity Toolkit REST API.

    The base URL only applies on first creation.
    """
    global _identity_client
    if _identity_client is None:
        _identity_client = create_http_client(
            base_url=base_url,
            max_connections=100,
            max_keepalive_connections=20,
        )
    return _identity_client


def get_upload_client() -> httpx.AsyncClient:
    """Singleton client for the file upload endpoint."""
    global _upload_client
    if _upload_client is None:
        _upload_client = create_http_client(
            max_connections=10,
            max_keepalive_connections=5,
            read_timeout=UPLOAD_READ_TIMEOUT,
            write_timeout=UPLOAD_WRITE_TIMEOUT,
        )
    return _upload_client


async def close_http_clients() -> None:
    """Close every shared client. Called during application shutdown."""
    global _identity_client, _upload_client
    if _identity_client is not None:
        await _identity_client.aclose()
        _identity_client = None
    if _upload_client is not None:
        await _upload_client.aclose()
        _upload_client = None
