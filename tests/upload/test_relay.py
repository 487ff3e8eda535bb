"""Tests for chatsync/upload/relay.py"""

import httpx
import pytest

from chatsync.upload.relay import UploadRelay, absolute_file_url

UPLOAD_URL = "https://files.test/upload.php"
ORIGIN = "https://files.test"


def _relay(handler) -> UploadRelay:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return UploadRelay(UPLOAD_URL, ORIGIN, client=client)


@pytest.mark.parametrize(
    ("file_url", "expected"),
    [
        ("uploads/a.pdf", "https://files.test/uploads/a.pdf"),
        ("/uploads/a.pdf", "https://files.test/uploads/a.pdf"),
        ("https://cdn.test/a.pdf", "https://cdn.test/a.pdf"),
    ],
)
def test_absolute_file_url(file_url, expected):
    assert absolute_file_url(file_url, ORIGIN + "/") == expected


@pytest.mark.asyncio
async def test_successful_upload_sends_multipart_file():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.read()
        return httpx.Response(
            200,
            json={
                "status": "success",
                "message": "File uploaded",
                "file_name": "a.pdf",
                "file_size": 3,
                "file_url": "uploads/a.pdf",
            },
        )

    result = await _relay(handler).upload("a.pdf", b"pdf", "application/pdf")

    assert result.ok
    assert result.file_url == "https://files.test/uploads/a.pdf"
    assert seen["url"] == UPLOAD_URL
    assert b'name="file"; filename="a.pdf"' in seen["body"]


@pytest.mark.asyncio
async def test_http_error_status_becomes_error_result():
    result = await _relay(lambda request: httpx.Response(500)).upload("a.pdf", b"pdf")
    assert result.status == "error"
    assert result.message == "HTTP error! status: 500"
    assert not result.ok


@pytest.mark.asyncio
async def test_transport_failure_becomes_error_result():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    result = await _relay(handler).upload("a.pdf", b"pdf")
    assert result.status == "error"
    assert result.message == "connection refused"


@pytest.mark.asyncio
async def test_relay_reported_error_is_passed_through():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "error", "message": "File too large"})

    result = await _relay(handler).upload("big.zip", b"zip")
    assert result.status == "error"
    assert result.message == "File too large"


@pytest.mark.asyncio
async def test_unreadable_response():
    result = await _relay(lambda request: httpx.Response(200, content=b"<html>")).upload(
        "a.pdf", b"pdf"
    )
    assert result.status == "error"
    assert result.message == "Invalid upload response"
