"""Shared pytest fixtures."""

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
import yaml
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import folio.db.models  # noqa: F401 - register all models on Base
from folio.config import DatabaseConfig, SchedulerConfig, Settings, get_settings
from folio.db.base import Base
from folio.db.services.user_service import create_user
from folio.lib.hooks import hooks
from folio.workflow.engine import WorkflowEngine
from folio.workflow.guards import Actor, RoleAccessGuard
from folio.workflow.scheduler import ContentScheduler

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock shared by the engine and the scheduler."""

    def __init__(self, start: datetime = START):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture(autouse=True)
def secret_key_env(monkeypatch):
    """Settings require SECRET_KEY; give every test one."""
    monkeypatch.setenv("SECRET_KEY", "test-secret")


@pytest.fixture
def temp_app_yaml(tmp_path):
    """Create a temporary app.yaml file for testing."""
    config_path = tmp_path / "app.yaml"

    def _create_config(config: dict):
        with open(config_path, "w") as f:
            yaml.safe_dump(config, f)
        return config_path

    return _create_config


@pytest.fixture
def mock_config_path(temp_app_yaml):
    """Point get_config_path at a temporary app.yaml and clear the settings cache."""
    patchers = []

    def _mock(config: dict):
        config_path = temp_app_yaml(config)
        patcher = patch("folio.config.get_config_path", return_value=config_path)
        patcher.start()
        patchers.append(patcher)
        get_settings.cache_clear()
        return config_path

    yield _mock

    for patcher in patchers:
        patcher.stop()
    get_settings.cache_clear()


@pytest.fixture
def clean_hooks():
    """Save and restore hooks state around a test."""
    original_filters = defaultdict(list, {k: list(v) for k, v in hooks._filters.items()})
    original_actions = defaultdict(list, {k: list(v) for k, v in hooks._actions.items()})
    yield hooks
    hooks._filters = original_filters
    hooks._actions = original_actions


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'folio-test.db'}"


@pytest.fixture
async def db_engine(db_url):
    engine = create_async_engine(db_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def workflow(session_maker, clock):
    return WorkflowEngine(session_maker, RoleAccessGuard(), timeout=5.0, max_retries=2, clock=clock)


@pytest.fixture
def scheduler(workflow, session_maker):
    return ContentScheduler(workflow, session_maker, interval=0.01, batch_size=50, alert_threshold=2)


async def _make_actor(session_maker, username: str, role: str) -> Actor:
    async with session_maker() as session:
        user = await create_user(session, username, role=role, display_name=username.title())
    return Actor.from_user(user)


@pytest.fixture
async def author(session_maker):
    return await _make_actor(session_maker, "alice", "author")


@pytest.fixture
async def other_author(session_maker):
    return await _make_actor(session_maker, "bob", "author")


@pytest.fixture
async def editor(session_maker):
    return await _make_actor(session_maker, "erin", "editor")


@pytest.fixture
async def admin(session_maker):
    return await _make_actor(session_maker, "ada", "admin")


# ---------------------------------------------------------------------------
# HTTP fixtures: the app runs in the test client's own event loop, so the
# database is seeded synchronously before the client starts.
# ---------------------------------------------------------------------------


@pytest.fixture
def app_settings(tmp_path):
    return Settings(
        debug=True,
        secret_key="test-secret",
        db=DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'folio-api.db'}"),
        scheduler=SchedulerConfig(enabled=False, lookahead_days=7),
    )


@pytest.fixture
def api_users(app_settings):
    """Create tables and one user per role; returns username -> user id string."""

    async def _seed():
        engine = create_async_engine(app_settings.db.url)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        users = {}
        async with maker() as session:
            for username, role in [
                ("alice", "author"),
                ("bob", "author"),
                ("erin", "editor"),
                ("ada", "admin"),
            ]:
                user = await create_user(session, username, role=role, display_name=username.title())
                users[username] = str(user.id)
        await engine.dispose()
        return users

    return asyncio.run(_seed())


@pytest.fixture
def api_client(app_settings, api_users, clock):
    """Test client with a ``login(username)`` helper switching the session user."""
    from litestar.testing import TestClient

    from folio.asgi import create_app, create_session_config

    app = create_app(app_settings, clock=clock)
    session_config = create_session_config(app_settings.secret_key)

    with TestClient(app, session_config=session_config) as client:

        def login(username: str) -> TestClient:
            client.set_session_data({"user_id": api_users[username]})
            return client

        client.login = login
        yield client
