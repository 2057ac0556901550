"""
Pytest fixtures for test database, client, and authentication.

Each test gets its own database (in-memory SQLite unless TEST_DATABASE_URL
is set), its own app built in restrained error mode, and one session per
request exactly like production.
"""

import os

# Cheap hashes for tests; read once when settings are first loaded
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from datetime import datetime, timedelta, timezone
from io import BytesIO
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from natours.main import create_app
from natours.core.config import Settings
from natours.core.security import create_access_token, hash_password
from natours.db.base import Base
from natours.db.session import enable_sqlite_foreign_keys, get_db
from natours.models.tour import Tour
from natours.models.user import Role, User
from natours.services.interfaces import NotificationError, Notifier
from natours.services.notifier_factory import get_notifier

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
PASSWORD = "test-pass-1234"


class RecordingNotifier(Notifier):
    """Keeps every message instead of sending it; can be told to fail."""

    def __init__(self):
        self.sent: list[dict[str, Any]] = []
        self.fail = False

    async def send(self, user, template, subject, url):
        if self.fail:
            raise NotificationError("transport down")
        self.sent.append({"to": user.email, "template": template, "subject": subject, "url": url})


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {}


@pytest_asyncio.fixture(scope="function")
async def engine():
    """Create tables, yield the engine, then drop tables for isolation."""
    test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, **_engine_kwargs(TEST_DATABASE_URL))
    if TEST_DATABASE_URL.startswith("sqlite"):
        enable_sqlite_foreign_keys(test_engine)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for arranging data and checking results outside requests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(ENVIRONMENT="production", IMAGE_ROOT=str(tmp_path / "img"))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def app(settings, session_factory, notifier):
    """App with the DB and notifier dependencies pointed at the test doubles."""
    application = create_app(settings)

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_notifier] = lambda: notifier
    return application


@pytest_asyncio.fixture(scope="function")
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def create_user(
    db: AsyncSession,
    email: str,
    role: Role = Role.USER,
    name: str = "Test User",
    password: str = PASSWORD,
    **fields,
) -> User:
    user = User(name=name, email=email, role=role.value, password=hash_password(password), **fields)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def create_tour(db: AsyncSession, name: str = "The Forest Hiker", **fields) -> Tour:
    values = {
        "name": name,
        "slug": name.lower().replace(" ", "-"),
        "duration": 5,
        "max_group_size": 25,
        "difficulty": "easy",
        "price": 397,
        "summary": "Breathtaking hike through the Canadian Banff National Park",
        "image_cover": "tour-1-cover.jpg",
        "images": [],
        "start_dates": [],
        "locations": [],
    }
    values.update(fields)
    tour = Tour(**values)
    db.add(tour)
    await db.commit()
    await db.refresh(tour)
    return tour


def bearer(user: User, issued_at: Optional[datetime] = None) -> dict:
    token = create_access_token(data={"sub": str(user.id)}, issued_at=issued_at)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, "user@example.com", name="Laura Wilson")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, "other@example.com", name="Ben Hadley")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await create_user(db_session, "admin@example.com", role=Role.ADMIN, name="Jonas Admin")


@pytest_asyncio.fixture
async def lead_guide(db_session: AsyncSession) -> User:
    return await create_user(db_session, "lead@example.com", role=Role.LEAD_GUIDE, name="Steve Lead")


@pytest_asyncio.fixture
async def guide(db_session: AsyncSession) -> User:
    return await create_user(db_session, "guide@example.com", role=Role.GUIDE, name="Kate Guide")


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    """Authorization headers with Bearer token for a plain user."""
    return bearer(test_user)


@pytest.fixture
def admin_headers(admin: User) -> dict:
    return bearer(admin)


@pytest.fixture
def lead_guide_headers(lead_guide: User) -> dict:
    return bearer(lead_guide)


@pytest.fixture
def guide_headers(guide: User) -> dict:
    return bearer(guide)


@pytest_asyncio.fixture
async def test_tour(db_session: AsyncSession) -> Tour:
    return await create_tour(
        db_session,
        start_location={"type": "Point", "coordinates": [-115.570154, 51.178456], "address": "Banff, CAN"},
        start_dates=["2021-04-25T09:00:00", "2021-07-20T09:00:00", "2021-10-05T09:00:00"],
    )


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def an_hour_ago() -> datetime:
    return datetime.now(timezone.utc) - timedelta(hours=1)


def png_bytes(size: tuple[int, int] = (64, 48)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color=(40, 160, 90)).save(buffer, format="PNG")
    return buffer.getvalue()
