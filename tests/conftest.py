"""Pytest configuration and fixtures for the resource access tests.

Every test gets its own SQLite file, change feed and record store. API tests
run the app in-process through httpx with authentication overridden.
"""
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.database.engine import get_db, init_db
from app.core.records.feed import ChangeFeed
from app.core.records.store import SqlRecordStore
from app.features.organizations.models import Company, Section, Job, JobDistribution
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.main import app, start_access_core


# ── Database ─────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create a throwaway SQLite database with every table."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def store(session_factory, feed) -> SqlRecordStore:
    return SqlRecordStore(session_factory, feed)


class FlakyStore:
    """Record store that rejects creates for chosen resource ids."""

    def __init__(self, inner, fail_resources):
        self.inner = inner
        self.fail_resources = set(fail_resources)
        self.origin = getattr(inner, "origin", None)
        self.writes = 0

    async def query(self, collection, filter=None):
        return await self.inner.query(collection, filter)

    async def create(self, collection, data):
        self.writes += 1
        if data.get("resource_id") in self.fail_resources:
            raise RuntimeError("write rejected")
        return await self.inner.create(collection, data)

    async def delete(self, collection, record_id):
        self.writes += 1
        await self.inner.delete(collection, record_id)


@pytest.fixture
def flaky_store():
    return FlakyStore


@pytest.fixture
def add_rows(session_factory):
    """Insert model instances directly, bypassing the feed."""

    async def add(*rows):
        async with session_factory() as session:
            session.add_all(rows)
            await session.commit()
        return rows

    return add


# ── Test Data Fixtures ───────────────────────────────────────────

def make_user(user_id: str, **placement) -> User:
    for field in ("job_id", "company_id", "sector_id", "department_id", "section_id", "avatar_url", "last_login_at"):
        placement.setdefault(field, None)
    placement.setdefault("is_super_admin", False)
    return User(
        id=user_id,
        appwrite_id=f"aw-{user_id}",
        email=f"{user_id}@example.com",
        name=user_id.title(),
        is_active=True,
        **placement,
    )


@pytest_asyncio.fixture
async def organization(add_rows):
    """
    Two companies (c2 inactive), two sections, three jobs.

    j-guard is distributed into c1/s1 and c2; j-clerk has no distribution.
    """
    await add_rows(
        Company(id="c1", name_ar="شركة ١", name_en="Company 1", is_active=True),
        Company(id="c2", name_ar="شركة ٢", name_en="Company 2", is_active=False),
        Section(id="s1", name_ar="قسم ١", name_en="Section 1", is_active=True),
        Section(id="s2", name_ar="قسم ٢", name_en="Section 2", is_active=True),
        Job(id="j-admin", name_ar="مدير", name_en="Admin"),
        Job(id="j-guard", name_ar="حارس", name_en="Guard"),
        Job(id="j-clerk", name_ar="موظف", name_en="Clerk"),
    )
    await add_rows(
        JobDistribution(job_id="j-guard", company_id="c1", section_id="s1"),
        JobDistribution(job_id="j-guard", company_id="c2"),
    )


@pytest_asyncio.fixture
async def users(add_rows, organization) -> dict[str, User]:
    rows = {
        "root": make_user("root", is_super_admin=True),
        "admin": make_user("admin", job_id="j-admin", company_id="c1"),
        "guard": make_user("guard", job_id="j-guard", company_id="c1", section_id="s1"),
        "clerk": make_user("clerk", job_id="j-clerk", company_id="c1"),
    }
    await add_rows(*rows.values())
    return rows


# ── API ──────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def api(session_factory):
    """The app wired to the test database, with a fresh access core."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    await start_access_core(app, session_factory)
    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.state.resolution.stop()
    app.dependency_overrides.clear()


@pytest.fixture
def login(api):
    """Authenticate every following request as `user`."""

    def as_user(user: User) -> User:
        api.dependency_overrides[get_current_user] = lambda: user
        return user

    return as_user


@pytest_asyncio.fixture
async def client(api) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=api), base_url="http://test") as client:
        yield client


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
