"""Bookmark CRUD endpoints."""
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user
from models.user import User
from schemas.bookmark import (
    BookmarkCreate,
    BookmarkFilter,
    BookmarkListResponse,
    BookmarkResponse,
    BookmarkUpdate,
    BulkDeleteRequest,
    BulkDeleteResponse,
    CategoryListResponse,
)
from services import bookmark_service
from services.exceptions import DuplicateUrlError

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])


@router.post("/", response_model=BookmarkResponse, status_code=201)
async def create_bookmark(
    data: BookmarkCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkResponse:
    """Create a new bookmark."""
    try:
        bookmark = await bookmark_service.create_bookmark(db, current_user.id, data)
    except DuplicateUrlError as e:
        raise HTTPException(
            status_code=409,
            detail={"message": str(e), "error_code": "DUPLICATE_URL"},
        )
    return BookmarkResponse.model_validate(bookmark)


@router.get("/", response_model=BookmarkListResponse)
async def list_bookmarks(
    q: str | None = Query(default=None, description="Search title, content and url (case-insensitive)"),  # noqa: E501
    categories: list[str] = Query(default=[], description="Bookmark carries any of these categories"),  # noqa: E501
    is_read: bool | None = Query(default=None, description="Filter by read state"),
    is_favorite: bool | None = Query(default=None, description="Filter by favorite state"),
    date_range: Literal["all", "week", "month", "year"] = Query(default="all", description="Created within the last 7/30/365 days"),  # noqa: E501
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkListResponse:
    """
    List bookmarks for the current user, newest first.

    - **q**: Text search across title, content, and url (case-insensitive)
    - **categories**: Match bookmarks carrying any of the categories (case-insensitive)
    - **is_read** / **is_favorite**: Exact match on the flag
    - **date_range**: 'week', 'month' or 'year' back from now; 'all' disables
    """
    try:
        filters = BookmarkFilter(
            is_read=is_read,
            is_favorite=is_favorite,
            categories=categories,
            date_range=date_range,
            search_query=q,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    bookmarks = await bookmark_service.get_bookmarks(db, current_user.id, filters)
    items = [BookmarkResponse.model_validate(b) for b in bookmarks]
    return BookmarkListResponse(items=items, total=len(items))


@router.get("/categories", response_model=CategoryListResponse)
async def list_categories(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> CategoryListResponse:
    """Distinct categories of the current user, sorted case-insensitively."""
    categories = await bookmark_service.get_categories(db, current_user.id)
    return CategoryListResponse(categories=categories)


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_bookmarks(
    data: BulkDeleteRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BulkDeleteResponse:
    """Delete several bookmarks. Unknown ids are ignored."""
    deleted = await bookmark_service.bulk_delete(db, current_user.id, data.ids)
    return BulkDeleteResponse(deleted_count=deleted)


@router.get("/{bookmark_id}", response_model=BookmarkResponse)
async def get_bookmark(
    bookmark_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkResponse:
    """Get a single bookmark by ID."""
    bookmark = await bookmark_service.get_bookmark(db, current_user.id, bookmark_id)
    if bookmark is None:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    return BookmarkResponse.model_validate(bookmark)


@router.patch("/{bookmark_id}", response_model=BookmarkResponse)
async def update_bookmark(
    bookmark_id: int,
    data: BookmarkUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkResponse:
    """Update a bookmark."""
    bookmark = await bookmark_service.update_bookmark(
        db, current_user.id, bookmark_id, data,
    )
    if bookmark is None:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    return BookmarkResponse.model_validate(bookmark)


@router.delete("/{bookmark_id}", status_code=204)
async def delete_bookmark(
    bookmark_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> None:
    """Delete a bookmark."""
    deleted = await bookmark_service.delete_bookmark(db, current_user.id, bookmark_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Bookmark not found")


@router.patch("/{bookmark_id}/favorite", response_model=BookmarkResponse)
async def toggle_favorite(
    bookmark_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkResponse:
    """Flip the favorite flag of a bookmark."""
    bookmark = await bookmark_service.toggle_favorite(db, current_user.id, bookmark_id)
    if bookmark is None:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    return BookmarkResponse.model_validate(bookmark)


@router.patch("/{bookmark_id}/read", response_model=BookmarkResponse)
async def mark_as_read(
    bookmark_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkResponse:
    """Mark a bookmark as read."""
    bookmark = await bookmark_service.mark_as_read(db, current_user.id, bookmark_id)
    if bookmark is None:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    return BookmarkResponse.model_validate(bookmark)
