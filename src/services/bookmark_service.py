"""Service layer for bookmark CRUD operations."""
import logging
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.bookmark import Bookmark, BookmarkKind
from schemas.bookmark import (
    BookmarkCreate,
    BookmarkFilter,
    BookmarkUpdate,
    SummaryBookmarkCreate,
    normalize_category_key,
)
from services.exceptions import DuplicateUrlError
from services.utils import escape_ilike, extract_domain

logger = logging.getLogger(__name__)

SUMMARY_DOMAIN = "summary"

DATE_RANGE_DAYS = {
    "week": 7,
    "month": 30,
    "year": 365,
}


async def _check_url_exists(
    db: AsyncSession,
    user_id: int,
    url: str,
) -> Bookmark | None:
    """Return the user's bookmark with this URL, if any."""
    result = await db.execute(
        select(Bookmark).where(
            Bookmark.user_id == user_id,
            Bookmark.url == url,
        ),
    )
    return result.scalar_one_or_none()


async def create_bookmark(
    db: AsyncSession,
    user_id: int,
    data: BookmarkCreate | SummaryBookmarkCreate,
    created_at: datetime | None = None,
) -> Bookmark:
    """
    Create a new bookmark for a user.

    Saves exactly what is provided - no automatic URL scraping.

    Args:
        db: Database session.
        user_id: User ID to create the bookmark for.
        data:
            BookmarkCreate for user-saved links, SummaryBookmarkCreate for AI
            summary artifacts.
        created_at:
            Caller-supplied creation time. Only accepted for summary artifacts,
            which inherit the date of their most recent source so that date
            clustering places them next to their sources.

    Returns:
        The created bookmark.

    Raises:
        DuplicateUrlError: If the URL already exists for this user.
        ValueError: If created_at is supplied for a regular bookmark.

    Note:
        Does not commit. Caller (session generator) handles commit at request end.
    """
    is_summary = isinstance(data, SummaryBookmarkCreate)
    if created_at is not None and not is_summary:
        raise ValueError("created_at can only be overridden for summary artifacts")

    url_str = str(data.url)

    existing = await _check_url_exists(db, user_id, url_str)
    if existing:
        raise DuplicateUrlError(url_str)

    bookmark = Bookmark(
        user_id=user_id,
        url=url_str,
        title=data.title,
        content=data.content,
        domain=SUMMARY_DOMAIN if is_summary else extract_domain(url_str),
        categories=list(data.categories),
        kind=BookmarkKind.SUMMARY.value if is_summary else BookmarkKind.LINK.value,
    )
    if is_summary:
        bookmark.ai_analysis = data.ai_analysis
    if created_at is not None:
        bookmark.created_at = created_at

    db.add(bookmark)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        # Fallback for race condition on the (user_id, url) constraint
        if "uq_bookmark_user_url" in str(e) or "UNIQUE constraint failed" in str(e):
            raise DuplicateUrlError(url_str) from e
        raise
    await db.refresh(bookmark)
    return bookmark


async def get_bookmark(
    db: AsyncSession,
    user_id: int,
    bookmark_id: int,
) -> Bookmark | None:
    """Get a bookmark by ID, scoped to user. Returns None if not found or wrong user."""
    result = await db.execute(
        select(Bookmark).where(
            Bookmark.id == bookmark_id,
            Bookmark.user_id == user_id,
        ),
    )
    return result.scalar_one_or_none()


async def get_bookmarks_by_ids(
    db: AsyncSession,
    user_id: int,
    bookmark_ids: Sequence[int],
) -> list[Bookmark | None]:
    """
    Resolve bookmark IDs for a user, one entry per requested ID.

    Entries are None for IDs that do not exist or belong to another user; the
    caller filters them out. Output order matches input order.
    """
    if not bookmark_ids:
        return []
    result = await db.execute(
        select(Bookmark).where(
            Bookmark.user_id == user_id,
            Bookmark.id.in_(set(bookmark_ids)),
        ),
    )
    by_id = {bookmark.id: bookmark for bookmark in result.scalars().all()}
    return [by_id.get(bookmark_id) for bookmark_id in bookmark_ids]


async def get_bookmarks(
    db: AsyncSession,
    user_id: int,
    filters: BookmarkFilter | None = None,
    now: datetime | None = None,
) -> list[Bookmark]:
    """
    Get a user's bookmarks, newest first, with each filter field applied independently.

    Args:
        db: Database session.
        user_id: User ID to scope bookmarks.
        filters: Optional BookmarkFilter; unset fields are ignored.
        now: Reference time for date_range (defaults to current UTC time).

    Returns:
        Matching bookmarks ordered by created_at descending.
    """
    filters = filters or BookmarkFilter()
    query = select(Bookmark).where(Bookmark.user_id == user_id)

    if filters.is_read is not None:
        query = query.where(Bookmark.is_read == filters.is_read)

    if filters.is_favorite is not None:
        query = query.where(Bookmark.is_favorite == filters.is_favorite)

    if filters.search_query:
        search_pattern = f"%{escape_ilike(filters.search_query)}%"
        query = query.where(
            or_(
                Bookmark.title.ilike(search_pattern, escape="\\"),
                Bookmark.content.ilike(search_pattern, escape="\\"),
                Bookmark.url.ilike(search_pattern, escape="\\"),
            ),
        )

    if filters.date_range and filters.date_range != "all":
        reference = now or datetime.now(UTC)
        start = reference - timedelta(days=DATE_RANGE_DAYS[filters.date_range])
        query = query.where(Bookmark.created_at >= start)

    query = query.order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
    result = await db.execute(query)
    bookmarks = list(result.scalars().all())

    # Categories live in a JSON column; match them here so the same query
    # works on every backend.
    if filters.categories:
        wanted = {normalize_category_key(c) for c in filters.categories}
        bookmarks = [
            b for b in bookmarks
            if any(normalize_category_key(c) in wanted for c in b.categories or [])
        ]

    return bookmarks


async def update_bookmark(
    db: AsyncSession,
    user_id: int,
    bookmark_id: int,
    data: BookmarkUpdate,
) -> Bookmark | None:
    """
    Update a bookmark. Returns None if not found or wrong user.

    created_at is never touched here.

    Note: Does not commit. Caller (session generator) handles commit at request end.
    """
    bookmark = await get_bookmark(db, user_id, bookmark_id)
    if bookmark is None:
        return None

    update_data = data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if value is None and field != "content":
            continue
        setattr(bookmark, field, value)

    await db.flush()
    await db.refresh(bookmark)
    return bookmark


async def delete_bookmark(
    db: AsyncSession,
    user_id: int,
    bookmark_id: int,
) -> bool:
    """
    Delete a bookmark. Returns True if deleted, False if not found.

    Note: Does not commit. Caller (session generator) handles commit at request end.
    """
    bookmark = await get_bookmark(db, user_id, bookmark_id)
    if bookmark is None:
        return False

    await db.delete(bookmark)
    await db.flush()
    return True


async def toggle_favorite(
    db: AsyncSession,
    user_id: int,
    bookmark_id: int,
) -> Bookmark | None:
    """Flip is_favorite. Returns None if not found."""
    bookmark = await get_bookmark(db, user_id, bookmark_id)
    if bookmark is None:
        return None

    bookmark.is_favorite = not bookmark.is_favorite
    await db.flush()
    await db.refresh(bookmark)
    return bookmark


async def mark_as_read(
    db: AsyncSession,
    user_id: int,
    bookmark_id: int,
) -> Bookmark | None:
    """Set is_read. Idempotent. Returns None if not found."""
    bookmark = await get_bookmark(db, user_id, bookmark_id)
    if bookmark is None:
        return None

    if not bookmark.is_read:
        bookmark.is_read = True
        await db.flush()
        await db.refresh(bookmark)
    return bookmark


async def get_categories(db: AsyncSession, user_id: int) -> list[str]:
    """
    Distinct categories across the user's bookmarks, sorted case-insensitively.

    Spellings that differ only in case are reported once, using the spelling
    of the most recently created bookmark.
    """
    result = await db.execute(
        select(Bookmark.categories)
        .where(Bookmark.user_id == user_id)
        .order_by(Bookmark.created_at.desc(), Bookmark.id.desc()),
    )
    labels: dict[str, str] = {}
    for categories in result.scalars().all():
        for category in categories or []:
            labels.setdefault(normalize_category_key(category), category.strip())
    return sorted(labels.values(), key=str.casefold)


async def bulk_delete(
    db: AsyncSession,
    user_id: int,
    bookmark_ids: Sequence[int],
) -> int:
    """
    Delete several bookmarks of a user. IDs of other users are ignored.

    Returns:
        Number of bookmarks deleted.

    Note:
        Does not commit. Caller (session generator) handles commit at request end.
    """
    result = await db.execute(
        delete(Bookmark).where(
            Bookmark.user_id == user_id,
            Bookmark.id.in_(set(bookmark_ids)),
        ),
    )
    deleted = result.rowcount or 0
    logger.info("Bulk deleted %s of %s bookmarks for user %s", deleted, len(bookmark_ids), user_id)
    return deleted
