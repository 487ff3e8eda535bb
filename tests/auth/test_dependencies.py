"""Tests for chatsync/auth/dependencies.py - get_viewer_session dependency."""

from unittest.mock import MagicMock

import pytest
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient

from chatsync.auth.dependencies import get_viewer_session
from chatsync.auth.exceptions import InvalidCredentialsError, InvalidTokenError
from chatsync.main import app


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


@pytest.mark.asyncio
async def test_first_request_opens_session(session_manager, mock_identity_service):
    request = MagicMock()

    session = await get_viewer_session(
        request, mock_identity_service, session_manager, _credentials("alice-token")
    )

    assert session.uid == "alice"
    assert request.state.uid == "alice"
    mock_identity_service.verify_id_token.assert_called_once_with("alice-token")
    mock_identity_service.lookup.assert_awaited_once_with("alice-token")
    await session_manager.close_all()


@pytest.mark.asyncio
async def test_existing_session_takes_newest_token(session_manager, mock_identity_service):
    first = await get_viewer_session(
        MagicMock(), mock_identity_service, session_manager, _credentials("alice-token")
    )
    again = await get_viewer_session(
        MagicMock(), mock_identity_service, session_manager, _credentials("refreshed-token")
    )

    assert again is first
    assert again.id_token == "refreshed-token"
    mock_identity_service.lookup.assert_awaited_once()
    await session_manager.close_all()


@pytest.mark.asyncio
async def test_missing_credentials(session_manager, mock_identity_service):
    with pytest.raises(InvalidCredentialsError, match="Not authenticated"):
        await get_viewer_session(MagicMock(), mock_identity_service, session_manager, None)
    mock_identity_service.verify_id_token.assert_not_called()


@pytest.mark.asyncio
async def test_invalid_token_opens_nothing(session_manager, mock_identity_service):
    mock_identity_service.verify_id_token.side_effect = InvalidTokenError()

    with pytest.raises(InvalidTokenError):
        await get_viewer_session(
            MagicMock(), mock_identity_service, session_manager, _credentials("forged")
        )
    assert len(session_manager) == 0


def test_routes_require_bearer_token(client):
    response = TestClient(app).get("/chats")

    assert response.status_code == 401
    assert response.json() == {"type": "invalid_credentials", "message": "Not authenticated"}
