"""
Pytest fixtures for test database, client, and authentication.

Every test gets its own in-memory SQLite database (aiosqlite) with the full
schema, so tests are isolated without a running PostgreSQL. The HTTP client
shares the test session with the fixtures and routes notification jobs to a
dispatcher whose queue the tests can inspect.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("REDIS_ENABLED", "false")

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from eventhub.main import app
from eventhub.core.security import create_access_token, hash_password
from eventhub.db.base import Base
from eventhub.db.session import get_db
from eventhub.models.event import Event, EventStatus
from eventhub.models.organisation import Organisation
from eventhub.models.user import User, UserRole
from eventhub.services.notification_dispatcher import NotificationDispatcher, get_dispatcher

TEST_DATABASE_URL = "sqlite+aiosqlite://"


class RecordingChannel:
    """Notification channel that records emissions instead of sending them."""

    def __init__(self):
        self.user_events: list[tuple[int, str, dict]] = []
        self.broadcasts: list[tuple[str, dict]] = []

    async def emit_to_user(self, user_id: int, event: str, payload: dict) -> bool:
        self.user_events.append((user_id, event, payload))
        return True

    async def emit_to_all(self, event: str, payload: dict) -> None:
        self.broadcasts.append((event, payload))


@pytest_asyncio.fixture(scope="function")
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def dispatcher(channel, session_factory) -> NotificationDispatcher:
    return NotificationDispatcher(channel=channel, session_factory=session_factory, maxsize=100)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, dispatcher: NotificationDispatcher) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB and dispatcher dependencies."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: AsyncSession):
    counter = {"n": 0}

    async def _make(role: UserRole = UserRole.USER, password: str | None = None, is_active: bool = True) -> User:
        counter["n"] += 1
        user = User(
            name=f"{role.value.title()} {counter['n']}",
            email=f"{role.value}{counter['n']}@example.com",
            hashed_password=hash_password(password) if password else None,
            role=role.value,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest_asyncio.fixture
async def test_user(make_user) -> User:
    return await make_user(UserRole.USER)


@pytest_asyncio.fixture
async def other_user(make_user) -> User:
    return await make_user(UserRole.USER)


@pytest_asyncio.fixture
async def org_user(make_user) -> User:
    return await make_user(UserRole.ORGANISATION)


@pytest_asyncio.fixture
async def admin_user(make_user) -> User:
    return await make_user(UserRole.ADMIN)


@pytest.fixture
def headers_for():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}

    return _headers


@pytest.fixture
def auth_headers(test_user, headers_for) -> dict:
    return headers_for(test_user)


@pytest.fixture
def org_headers(org_user, headers_for) -> dict:
    return headers_for(org_user)


@pytest.fixture
def admin_headers(admin_user, headers_for) -> dict:
    return headers_for(admin_user)


@pytest.fixture
def make_organisation(db_session: AsyncSession):
    counter = {"n": 0}

    async def _make(admins: list[User] = ()) -> Organisation:
        counter["n"] += 1
        organisation = Organisation(
            name=f"Organisation {counter['n']}",
            type="university",
            description="Hosts events",
            email=f"org{counter['n']}@example.com",
            social_media={},
        )
        organisation.admins = list(admins)
        db_session.add(organisation)
        await db_session.commit()
        await db_session.refresh(organisation)
        return organisation

    return _make


@pytest_asyncio.fixture
async def organisation(make_organisation, org_user) -> Organisation:
    """Organisation administered by `org_user`."""
    return await make_organisation([org_user])


@pytest.fixture
def make_event(db_session: AsyncSession, organisation: Organisation):
    counter = {"n": 0}

    async def _make(organisation_id: int | None = None, **overrides) -> Event:
        counter["n"] += 1
        now = datetime.now(timezone.utc)
        values = dict(
            title=f"Test Event {counter['n']}",
            description="A test event",
            organisation_id=organisation_id or organisation.id,
            category="workshop",
            event_type="offline",
            start_date=now + timedelta(days=30),
            end_date=now + timedelta(days=30, hours=3),
            registration_end_date=now + timedelta(days=20),
            capacity=10,
            registered_count=0,
            is_free=True,
            price=0,
            status=EventStatus.PUBLISHED.value,
        )
        values.update(overrides)
        event = Event(**values)
        db_session.add(event)
        await db_session.commit()
        await db_session.refresh(event)
        return event

    return _make


@pytest_asyncio.fixture
async def free_event(make_event) -> Event:
    return await make_event(title="Free Workshop")


@pytest_asyncio.fixture
async def paid_event(make_event) -> Event:
    return await make_event(title="Paid Conference", price=50, is_free=False)
