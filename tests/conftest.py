"""Shared test fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from teamcrm.config.settings import Settings
from teamcrm.storage.database import init_db
from teamcrm.storage.repositories.users import DatabaseUserRepository
from teamcrm.tenancy.context import ActorContext, TenantContext
from teamcrm.web.app import create_app

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

    from teamcrm.models.database import User


@pytest.fixture()
async def async_engine(tmp_path: Path):
    """File-backed SQLite engine with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'teamcrm.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    # debug keeps the session cookie non-secure so httpx sends it over http
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'teamcrm.db'}",
        secret_key="test-secret",
        debug=True,
        log_level="WARNING",
    )


@pytest.fixture()
def app(settings: Settings, async_engine: AsyncEngine):
    """Create a fresh app instance bound to the test engine."""
    return create_app(settings=settings, engine=async_engine)


@pytest.fixture()
async def make_client(app):
    """Factory for clients that are registered and logged in as a new user."""
    clients: list[AsyncClient] = []

    async def _make(email: str, password: str = "correct-horse", name: str = "") -> AsyncClient:
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        resp = await client.post(
            "/api/auth/register",
            json={"email": email, "password": password, "name": name},
        )
        assert resp.status_code == 201, resp.text
        return client

    yield _make

    for client in clients:
        await client.aclose()


@pytest.fixture()
async def authed_client(make_client) -> AsyncClient:
    """An AsyncClient with a valid session cookie for authenticated API tests."""
    return await make_client("alice@example.com", name="Alice")


@pytest.fixture()
def user_repo(async_engine: AsyncEngine) -> DatabaseUserRepository:
    return DatabaseUserRepository(async_engine)


def _tenant_for(user: User, team_id: str | None = None, **overrides: Any) -> TenantContext:
    return TenantContext(
        team_id=team_id or user.current_team_id or "",
        user_id=user.id,
        email=user.email,
        **overrides,
    )


@pytest.fixture()
def tenant_for():
    """Build the context the resolver would produce for a user."""
    return _tenant_for


@pytest.fixture()
def actor_for():
    return lambda user: ActorContext(user_id=user.id, email=user.email)
