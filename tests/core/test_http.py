"""Tests for chatsync/core/http.py - shared HTTP clients."""

import anyio
import httpx
import pytest

from chatsync.core import http as http_module


@pytest.fixture(autouse=True)
def reset_clients():
    yield
    anyio.run(http_module.close_http_clients)


@pytest.mark.asyncio
async def test_create_http_client_applies_timeouts_and_limits():
    client = http_module.create_http_client(
        base_url="https://example.com", read_timeout=2.0, max_connections=7
    )
    try:
        assert isinstance(client, httpx.AsyncClient)
        assert client.timeout.connect == http_module.DEFAULT_CONNECT_TIMEOUT
        assert client.timeout.read == 2.0
        assert client._transport._pool._max_connections == 7  # type: ignore[attr-defined]
    finally:
        await client.aclose()


def test_identity_client_is_a_singleton():
    first = http_module.get_identity_client("https://idp.test")
    second = http_module.get_identity_client("https://ignored.test")
    assert first is second
    assert str(first.base_url) == "https://idp.test"


def test_upload_client_uses_long_timeouts():
    client = http_module.get_upload_client()
    assert client is http_module.get_upload_client()
    assert client.timeout.write == http_module.UPLOAD_WRITE_TIMEOUT
    assert client.timeout.read == http_module.UPLOAD_READ_TIMEOUT
    assert client is not http_module.get_identity_client()


@pytest.mark.asyncio
async def test_close_http_clients_resets_singletons():
    identity = http_module.get_identity_client()
    upload = http_module.get_upload_client()

    await http_module.close_http_clients()

    assert identity.is_closed and upload.is_closed
    assert http_module._identity_client is None
    assert http_module._upload_client is None
    await http_module.close_http_clients()
