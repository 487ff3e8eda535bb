"""Tests for the error envelope and settings."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel

from chatsync.core.exception_handlers import register_exception_handlers
from chatsync.core.exceptions import AppException, RateLimitError
from chatsync.core.settings import Settings
from chatsync.gateway.exceptions import NotChatOwnerError
from chatsync.store.exceptions import StoreError


class _Body(BaseModel):
    name: str


def _app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/owner")
    def owner():
        raise NotChatOwnerError()

    @app.get("/store")
    def store():
        raise StoreError()

    @app.get("/slow")
    def slow():
        raise RateLimitError(retry_after=30)

    @app.get("/boom")
    def boom():
        raise RuntimeError("boom")

    @app.post("/body")
    def body(payload: _Body):
        return payload

    return app


@pytest.fixture(name="error_client")
def error_client_fixture():
    return TestClient(_app(), raise_server_exceptions=False)


def test_app_exception_envelope(error_client):
    response = error_client.get("/owner")
    assert response.status_code == 403
    assert response.json() == {
        "type": "not_chat_owner",
        "message": "Only the group creator can do this",
    }


def test_store_failures_are_bad_gateway(error_client):
    response = error_client.get("/store")
    assert response.status_code == 502
    assert response.json()["type"] == "store_error"


def test_rate_limit_sets_retry_after(error_client):
    response = error_client.get("/slow")
    assert response.status_code == 429
    assert response.headers["Retry-After"] == "30"


def test_unhandled_errors_are_masked(error_client):
    response = error_client.get("/boom")
    assert response.status_code == 500
    assert response.json() == {
        "type": "internal_error",
        "message": "An unexpected error occurred",
    }


def test_validation_errors_are_flattened(error_client):
    response = error_client.post("/body", json={})
    assert response.status_code == 422
    assert response.json()["type"] == "validation_error"
    assert response.json()["message"].startswith("name: ")


def test_unknown_route_uses_envelope(error_client):
    response = error_client.get("/nowhere")
    assert response.status_code == 404
    assert response.json()["type"] == "http_error"


def test_every_app_exception_keeps_its_message():
    error = AppException("custom")
    assert error.message == "custom"
    assert error.status_code == 500


def test_settings_parse_cors_origins():
    settings = Settings(cors_origins=" https://a.test, ,https://b.test ")
    assert settings.cors_origins_list == ["https://a.test", "https://b.test"]
    assert settings.store_backend == "firestore"
    assert settings.max_unread_counters == 50

