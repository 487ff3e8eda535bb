import asyncio
import inspect
from unittest.mock import AsyncMock, MagicMock

import anyio
import pytest
from fastapi.testclient import TestClient

from chatsync.auth.service import Identity, IdentityService, TokenClaims, get_identity_service
from chatsync.auth.state import AuthStateStream, get_auth_state_stream
from chatsync.core.settings import Settings, get_settings
from chatsync.gateway.service import MutationGateway
from chatsync.main import app
from chatsync.profile.models import UserProfile
from chatsync.profile.service import ProfileService
from chatsync.session.manager import SessionManager, get_session_manager
from chatsync.store.engine import get_store
from chatsync.store.memory import MemoryDocumentStore
from chatsync.store.registry import SubscriptionRegistry

AVATAR_BASE_URL = "https://avatars.test/api/"


def pytest_configure(config: pytest.Config) -> None:
    # Tests use @pytest.mark.asyncio, but we intentionally rely on anyio.
    config.addinivalue_line(
        "markers",
        "asyncio: run async tests using anyio (project-local hook)",
    )


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Run @pytest.mark.asyncio tests with anyio.

    This avoids adding an external pytest-asyncio dependency.
    """
    if pyfuncitem.get_closest_marker("asyncio") is None:
        return None

    test_func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_func):
        return None

    funcargs = {
        name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
    }

    async def _run_async_test() -> None:
        await test_func(**funcargs)

    anyio.run(_run_async_test)
    return True


def _make_profile(uid: str, name: str | None = None, **fields) -> UserProfile:
    return UserProfile(
        uid=uid,
        email=f"{uid}@example.com",
        display_name=name or uid.capitalize(),
        photo_url=f"https://photos.test/{uid}.png",
        **fields,
    )


async def _seed_profile(store: MemoryDocumentStore, profile: UserProfile) -> UserProfile:
    await store.set(
        "users",
        profile.uid,
        profile.model_dump(by_alias=True, exclude_none=True, mode="json"),
    )
    return profile


@pytest.fixture(name="make_profile")
def make_profile_fixture():
    """Factory for UserProfile objects with predictable email and photo."""
    return _make_profile


@pytest.fixture(name="seed_profile")
def seed_profile_fixture():
    """Async helper that writes a profile to a memory store."""
    return _seed_profile


@pytest.fixture(name="store")
def store_fixture():
    store = MemoryDocumentStore()
    yield store
    store.close()


@pytest.fixture(name="registry")
def registry_fixture(store: MemoryDocumentStore):
    registry = SubscriptionRegistry(store, max_subscriptions=64)
    yield registry
    registry.close()


@pytest.fixture(name="alice")
def alice_fixture() -> UserProfile:
    return _make_profile("alice")


@pytest.fixture(name="bob")
def bob_fixture() -> UserProfile:
    return _make_profile("bob")


@pytest.fixture(name="carol")
def carol_fixture() -> UserProfile:
    return _make_profile("carol")


@pytest.fixture(name="users")
def users_fixture(store, alice, bob, carol):
    """Alice, Bob and Carol stored in ``users``."""

    async def _seed() -> None:
        for profile in (alice, bob, carol):
            await _seed_profile(store, profile)

    anyio.run(_seed)
    return {"alice": alice, "bob": bob, "carol": carol}


@pytest.fixture(name="gateways")
def gateways_fixture(store, users):
    return {
        uid: MutationGateway(store, profile, avatar_base_url=AVATAR_BASE_URL)
        for uid, profile in users.items()
    }


class DeferredDeliveryStore(MemoryDocumentStore):
    """Delivers live snapshots on a later loop iteration, as Firestore does."""

    def _deliver(self, watch) -> None:
        asyncio.get_running_loop().call_soon(self._deliver_now, watch)

    def _deliver_now(self, watch) -> None:
        if watch.active:
            super()._deliver(watch)


@pytest.fixture(name="deferred_store")
def deferred_store_fixture():
    store = DeferredDeliveryStore()
    yield store
    store.close()


@pytest.fixture(name="deferred_registry")
def deferred_registry_fixture(deferred_store):
    registry = SubscriptionRegistry(deferred_store, max_subscriptions=64)
    yield registry
    registry.close()


@pytest.fixture(name="deferred_gateways")
def deferred_gateways_fixture(deferred_store, alice, bob, carol):
    """Gateways for Alice, Bob and Carol over a store with deferred delivery."""

    async def _seed() -> None:
        for profile in (alice, bob, carol):
            await _seed_profile(deferred_store, profile)

    anyio.run(_seed)
    return {
        profile.uid: MutationGateway(deferred_store, profile, avatar_base_url=AVATAR_BASE_URL)
        for profile in (alice, bob, carol)
    }


@pytest.fixture(name="mock_settings")
def mock_settings_fixture():
    return Settings(
        env_name="test",
        firebase_api_key="test-api-key",
        store_backend="memory",
        avatar_base_url=AVATAR_BASE_URL,
        max_sessions=5,
    )


@pytest.fixture(name="identity")
def identity_fixture() -> Identity:
    return Identity(
        uid="alice",
        email="alice@example.com",
        display_name="Alice",
        providers=("password",),
        id_token="alice-token",
        refresh_token="alice-refresh",
    )


@pytest.fixture(name="mock_identity_service")
def mock_identity_service_fixture(identity: Identity):
    """A mock IdentityService that signs everyone in as Alice."""
    service = MagicMock(spec=IdentityService)
    service.verify_id_token.return_value = TokenClaims(uid=identity.uid)
    service.lookup = AsyncMock(return_value=identity)
    service.sign_in = AsyncMock(return_value=identity)
    service.sign_up = AsyncMock(return_value=identity)
    service.sign_in_with_oauth = AsyncMock(return_value=identity)
    service.send_password_reset_email = AsyncMock(return_value=None)
    service.update_password = AsyncMock(return_value=None)
    return service


@pytest.fixture(name="session_manager")
def session_manager_fixture(store, registry, mock_settings):
    return SessionManager(
        store,
        registry,
        ProfileService(store, AVATAR_BASE_URL),
        avatar_base_url=AVATAR_BASE_URL,
        max_sessions=mock_settings.max_sessions,
    )


@pytest.fixture(name="client")
def client_fixture(store, session_manager, mock_identity_service, mock_settings):
    """Test client authenticated as Alice against the memory store."""
    stream = AuthStateStream()

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_session_manager] = lambda: session_manager
    app.dependency_overrides[get_identity_service] = lambda: mock_identity_service
    app.dependency_overrides[get_auth_state_stream] = lambda: stream
    app.dependency_overrides[get_settings] = lambda: mock_settings

    client = TestClient(app, headers={"Authorization": "Bearer alice-token"})
    yield client

    app.dependency_overrides.clear()
    anyio.run(session_manager.close_all)
