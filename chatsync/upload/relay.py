"""File upload relay.

Sends one file as multipart field ``file`` and normalizes the JSON answer.
Failures never raise: they come back as ``UploadResult(status="error")`` so the
caller can skip the message send.
"""

import logging
from functools import lru_cache
from typing import Literal

import httpx
from pydantic import BaseModel

from chatsync.core.http import get_upload_client

logger = logging.getLogger(__name__)


class UploadResult(BaseModel):
    status: Literal["success", "error"]
    message: str = ""
    file_name: str | None = None
    file_size: int | None = None
    file_url: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success" and bool(self.file_url)


def absolute_file_url(file_url: str, origin: str) -> str:
    """Prefix relative upload URLs with the upload host's origin."""
    if file_url.startswith("http"):
        return file_url
    return f"{origin.rstrip('/')}/{file_url.lstrip('/')}"


class UploadRelay:
    def __init__(
        self,
        upload_url: str,
        origin: str,
        client: httpx.AsyncClient | None = None,
    ):
        self._upload_url = upload_url
        self._origin = origin
        self._client = client

    async def upload(
        self,
        file_name: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> UploadResult:
        client = self._client or get_upload_client()
        try:
            response = await client.post(
                self._upload_url,
                files={"file": (file_name, content, content_type)},
            )
        except httpx.HTTPError as e:
            logger.warning("Upload failed: %s", e, extra={"operation": "upload"})
            return UploadResult(status="error", message=str(e) or "Unknown upload error")

        if not response.is_success:
            logger.warning(
                "Upload rejected",
                extra={"operation": "upload", "status_code": response.status_code},
            )
            return UploadResult(
                status="error", message=f"HTTP error! status: {response.status_code}"
            )

        try:
            result = UploadResult.model_validate(response.json())
        except ValueError as e:
            logger.warning("Upload response unreadable: %s", e, extra={"operation": "upload"})
            return UploadResult(status="error", message="Invalid upload response")

        if result.file_url:
            result.file_url = absolute_file_url(result.file_url, self._origin)
        return result


@lru_cache
def get_upload_relay() -> UploadRelay:
    from chatsync.core.settings import get_settings

    settings = get_settings()
    return UploadRelay(upload_url=settings.upload_url, origin=settings.upload_origin)
