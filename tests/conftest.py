"""Pytest fixtures for testing."""
import os

# Must be set before any app import triggers Settings validation. Tests run in
# dev mode (bypasses auth) against throwaway in-memory SQLite databases.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["DEV_MODE"] = "true"
os.environ["LLM_API_KEY"] = ""

from collections.abc import AsyncGenerator, Awaitable, Callable  # noqa: E402
from datetime import UTC, datetime  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from models.base import Base  # noqa: E402
from models.bookmark import Bookmark, BookmarkKind  # noqa: E402
from models.user import User  # noqa: E402

BookmarkFactory = Callable[..., Awaitable[Bookmark]]


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """
    Create a fresh in-memory database for one test.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Create an async session on the per-test database."""
    session_factory = async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    """A user owning the bookmarks created in service tests."""
    user = User(external_id="test|service-user", email="service@example.com")
    db_session.add(user)
    await db_session.flush()
    return user


@pytest.fixture
async def other_user(db_session: AsyncSession) -> User:
    """A second user, for ownership checks."""
    user = User(external_id="test|other-user", email="other@example.com")
    db_session.add(user)
    await db_session.flush()
    return user


@pytest.fixture
def make_bookmark(db_session: AsyncSession) -> BookmarkFactory:
    """
    Factory inserting a bookmark row directly.

    Unlike the service, it accepts any created_at so tests can place
    bookmarks in specific date buckets.
    """
    counter = 0

    async def _make(
        user: User,
        *,
        url: str | None = None,
        title: str = "Article",
        content: str | None = None,
        categories: list[str] | None = None,
        created_at: datetime | None = None,
        kind: BookmarkKind = BookmarkKind.LINK,
        is_read: bool = False,
        is_favorite: bool = False,
    ) -> Bookmark:
        nonlocal counter
        counter += 1
        bookmark = Bookmark(
            user_id=user.id,
            url=url or f"https://example.com/article-{counter}",
            title=title,
            content=content,
            domain="summary" if kind == BookmarkKind.SUMMARY else "example.com",
            categories=categories or [],
            kind=kind.value,
            is_read=is_read,
            is_favorite=is_favorite,
        )
        if created_at is not None:
            bookmark.created_at = created_at
        db_session.add(bookmark)
        await db_session.flush()
        await db_session.refresh(bookmark)
        return bookmark

    return _make


@pytest.fixture
def now() -> datetime:
    """Fixed reference time for date-relative tests."""
    return datetime(2025, 6, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
async def client(
    db_session: AsyncSession,
) -> AsyncGenerator[AsyncClient]:
    """Create a test client with database session override."""
    # Clear the settings cache so it picks up DATABASE_URL from environment
    from core.config import get_settings

    get_settings.cache_clear()

    from api.main import app
    from db.session import get_async_session

    async def override_get_async_session() -> AsyncGenerator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_async_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
