"""Shared fixtures: one SQLite file per test, repositories, and an ASGI client."""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from membership.config import Settings
from membership.database import init_db, make_engine
from membership.main import create_app
from membership.models.member import Role
from membership.repositories.registry import build_repositories
from tests.factories import create_member


# =============================================================================
# Store
# =============================================================================

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        APP_ENV="test",
        DATABASE_URL=f"sqlite:///{tmp_path / 'membership.sqlite'}",
        VAPID_PUBLIC_KEY="test-vapid-public-key",
    )


@pytest.fixture
def engine(settings):
    engine = make_engine(settings.resolved_database_url)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repos(engine, settings):
    return build_repositories(engine, settings)


@pytest.fixture
def unreachable_repos(tmp_path, settings):
    """Repositories pointed at a SQLite file whose directory does not exist."""
    engine = make_engine(f"sqlite:///{tmp_path / 'missing-dir' / 'nested' / 'db.sqlite'}")
    yield build_repositories(engine, settings)
    engine.dispose()


# =============================================================================
# Application and Client Fixtures
# =============================================================================

@pytest.fixture
def app(settings, repos):
    return create_app(settings=settings, repos=repos)


@pytest_asyncio.fixture
async def test_client(app) -> AsyncGenerator:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# =============================================================================
# Member Fixtures
# =============================================================================

@pytest.fixture
def admin(repos):
    return create_member(repos, email="admin@gracechurch.org", first_name="Ada", last_name="Admin", role=Role.ADMIN)


@pytest.fixture
def staff(repos):
    return create_member(repos, email="staff@gracechurch.org", first_name="Sam", last_name="Staff", role=Role.STAFF)


@pytest.fixture
def member(repos):
    return create_member(repos, email="mary@gracechurch.org", first_name="Mary", last_name="Member")


@pytest.fixture
def other_member(repos):
    return create_member(repos, email="otto@gracechurch.org", first_name="Otto", last_name="Other")
