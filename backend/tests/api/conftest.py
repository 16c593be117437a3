"""API-specific test fixtures."""

from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from appbuilder.api.dependencies import get_generation_client, get_static_verifier
from appbuilder.core.auth import AuthUser, require_auth


@pytest.fixture
def user_a():
    return AuthUser(user_id="user_a", claims={"sub": "user_a"})


@pytest.fixture
def user_b():
    return AuthUser(user_id="user_b", claims={"sub": "user_b"})


def override_auth(user: AuthUser):
    """Create auth override for a specific user."""

    async def _override():
        return user

    return _override


@pytest.fixture
def api_client(tmp_path, client_fake, static_verifier):
    """FastAPI test client on a per-test SQLite database.

    The database is initialized inside the TestClient's own event loop so
    route handlers can use get_session_factory(). The generation client and
    the static verifier are overridden with the fakes from the root conftest.
    """
    from appbuilder.api.routes import api_router
    from appbuilder.core.config import get_settings
    from appbuilder.db import close_db, init_db
    from appbuilder.main import register_exception_handlers

    db_url = f"sqlite+aiosqlite:///{tmp_path / 'api.db'}"

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        # Reset global so init_db creates a fresh engine in THIS loop
        import appbuilder.db.base as db_mod

        db_mod._engine = None
        db_mod._session_factory = None
        await init_db(db_url)
        yield
        await close_db()

    app = FastAPI(title=get_settings().app_name, lifespan=test_lifespan)
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")

    app.dependency_overrides[get_generation_client] = lambda: client_fake
    app.dependency_overrides[get_static_verifier] = lambda: static_verifier

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def as_user(api_client):
    """Switch the authenticated user for subsequent requests."""

    def _as(user: AuthUser) -> TestClient:
        api_client.app.dependency_overrides[require_auth] = override_auth(user)
        return api_client

    return _as
