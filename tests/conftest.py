"""
Test configuration and fixtures for the Waitroom API.

Every test gets a fresh SQLite database (aiosqlite) and, for API tests, an
httpx AsyncClient bound to the app with get_db overridden to that database.
"""

import os
import tempfile

# Settings are read at import time, so the environment is prepared first
_test_db_path = tempfile.mktemp(suffix=".db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_test_db_path}"
os.environ["ENVIRONMENT"] = "test"
os.environ["FORCE_IN_MEMORY_RATE_LIMITER"] = "true"
os.environ["RATE_LIMIT_MAX"] = "100000"
os.environ["WAITLIST_RATE_LIMIT_MAX"] = "100000"
os.environ["EMAILABLE_API_KEY"] = ""
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="waitroom-logs-")

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from app.features.auth.models.user import User  # noqa: E402
from app.features.auth.utils.security import create_access_token, hash_password  # noqa: E402
from app.features.projects.models.project import Project  # noqa: E402,F401
from app.features.projects.schemas.project import ProjectCreate, ProjectSettings  # noqa: E402
from app.features.projects.services.project_service import ProjectService  # noqa: E402
from app.features.referral.models.referral import ReferralEdge  # noqa: E402,F401
from app.features.referral.models.social_share import SocialShareClaim  # noqa: E402,F401
from app.features.waitlist.models.event import WaitlistEvent  # noqa: E402,F401
from app.features.waitlist.models.waitlist import WaitlistEntry  # noqa: E402,F401
from app.platform.db.base import Base  # noqa: E402
from app.platform.db.session import get_db  # noqa: E402

# No early-bird bonus, so scores only depend on join order and credits
FLAT_SETTINGS = ProjectSettings(early_bird_bonus=Decimal("0"))


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(os.environ["DATABASE_URL"], poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def owner(db_session) -> User:
    user = User(email="owner@example.com", name="Project Owner", password_hash=hash_password("launch2024"))
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def project(db_session, owner):
    """A project scored on join order and credits only."""
    return await ProjectService(db_session).create_project(
        owner.id, ProjectCreate(name="Launch", settings=FLAT_SETTINGS)
    )


@pytest_asyncio.fixture
async def manual_project(db_session, owner):
    """Referrals wait for an operator before they count."""
    return await ProjectService(db_session).create_project(
        owner.id,
        ProjectCreate(
            name="Invite only",
            settings=ProjectSettings(early_bird_bonus=Decimal("0"), referral_verification_policy="manual"),
        ),
    )


@pytest.fixture
def auth_headers(owner):
    token = create_access_token({"sub": owner.id, "email": owner.email, "name": owner.name})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def api_key_headers(project):
    return {"X-API-Key": project.api_key}


@pytest_asyncio.fixture
async def client(session_factory):
    """AsyncClient against the app, with get_db bound to the test database."""
    from app.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.pop(get_db, None)
