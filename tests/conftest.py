"""
Shared fixtures: test settings, fake provider adapters, stores and a
throwaway SQLite database.
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config.settings import config
from connectors.encryption import reset_cipher
from connectors.flow import FlowOrchestrator
from connectors.registry import ConnectorRegistry
from connectors.schemas import ConnectionRecord, utcnow
from connectors.state import InMemoryStateStore
from connectors.store import InMemoryTokenStore
from connectors.token_manager import TokenManager
from database.session import create_schema
from fakes import FakeConnector, FakeRefreshableConnector


# ── Settings ───────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def settings_for_tests(monkeypatch):
    monkeypatch.setattr(config, "token_encryption_key", Fernet.generate_key().decode())
    monkeypatch.setattr(config, "oauth_state_secret", "test-state-secret")
    monkeypatch.setattr(config, "jwt_secret", "test-jwt-secret")
    monkeypatch.setattr(config, "oauth_redirect_base", "http://testserver")
    monkeypatch.setattr(config, "refresh_backoff_seconds", 0.0)
    for name in (
        "youtube_client_id",
        "youtube_client_secret",
        "linkedin_client_id",
        "linkedin_client_secret",
        "twitter_client_id",
        "twitter_client_secret",
    ):
        monkeypatch.setattr(config, name, f"test-{name}")
    reset_cipher()
    ConnectorRegistry.reset()
    yield config
    reset_cipher()
    ConnectorRegistry.reset()


# ── Registry / adapters ────────────────────────────────────────────────────


@pytest.fixture
def youtube():
    return FakeRefreshableConnector("youtube")


@pytest.fixture
def linkedin():
    return FakeConnector("linkedin")


@pytest.fixture
def registry(youtube, linkedin):
    reg = ConnectorRegistry()
    reg.register(youtube)
    reg.register(linkedin)
    return reg


# ── Stores and services ────────────────────────────────────────────────────


@pytest.fixture
def token_store():
    return InMemoryTokenStore()


@pytest.fixture
def state_store():
    return InMemoryStateStore()


@pytest.fixture
def manager(token_store, registry):
    return TokenManager(
        token_store,
        registry,
        refresh_buffer=timedelta(minutes=5),
        max_retries=2,
        backoff_seconds=0.0,
    )


@pytest.fixture
def flow(registry, token_store, state_store):
    return FlowOrchestrator(registry, token_store, state_store)


@pytest.fixture
def make_record():
    def _make(**overrides) -> ConnectionRecord:
        fields = dict(
            user_id="user-1",
            provider="youtube",
            access_token="old-access",
            refresh_token="old-refresh",
            expires_at=utcnow() + timedelta(hours=1),
            scopes=["youtube.readonly"],
        )
        fields.update(overrides)
        return ConnectionRecord(**fields)

    return _make


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    db_path = tmp_path / "connections.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    await create_schema(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
