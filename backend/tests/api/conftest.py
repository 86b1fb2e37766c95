"""API-specific test fixtures."""

from contextlib import asynccontextmanager

import pytest
from fakeredis import FakeAsyncRedis
from fastapi import FastAPI
from fastapi.testclient import TestClient


@pytest.fixture
def api_client(tmp_path, fake_ai):
    """FastAPI test client backed by a per-test SQLite file and fake Redis.

    The database is initialized inside the TestClient's own event loop so
    route handlers can use get_session_factory(). Use ``run`` to execute
    setup coroutines in that same loop. AI-backed routes get ``fake_ai``.
    """
    from cvbuilder.api.routes import documents, jobs
    from cvbuilder.db import close_db, close_redis, init_db, init_redis
    from cvbuilder.db.seed import seed_all
    from cvbuilder.main import create_app
    from cvbuilder.services.email_service import get_email_service
    from cvbuilder.services.generation_service import GenerationService

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        """Test lifespan - initialize DB and Redis in TestClient's event loop."""
        import cvbuilder.db.base as db_mod
        import cvbuilder.db.redis as redis_mod

        db_mod._engine = None
        db_mod._session_factory = None
        redis_mod._redis = None
        app.state.shutting_down = False

        await init_db(f"sqlite+aiosqlite:///{tmp_path}/api.db")
        await init_redis(client=FakeAsyncRedis(decode_responses=True))
        await seed_all()
        yield
        await close_redis()
        await close_db()

    app = create_app(lifespan_handler=test_lifespan)
    app.dependency_overrides[documents.get_generation_service] = lambda: GenerationService(
        ai=fake_ai, email=get_email_service()
    )
    app.dependency_overrides[jobs.get_ai_service] = lambda: fake_ai

    with TestClient(app) as client:
        yield client


@pytest.fixture
def run(api_client):
    """Run an async callable in the TestClient's event loop: ``run(make_user, balance=...)``."""

    def _run(fn, *args, **kwargs):
        async def _call():
            return await fn(*args, **kwargs)

        return api_client.portal.call(_call)

    return _run


@pytest.fixture
def auth_headers():
    """Bearer headers for a user: ``auth_headers(user)``."""
    from cvbuilder.core.auth import create_token

    def _headers(user) -> dict:
        return {"Authorization": f"Bearer {create_token(user.id, role=user.role)}"}

    return _headers
