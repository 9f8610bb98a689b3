"""Pydantic schemas for bookmark endpoints."""
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

MAX_CATEGORY_LENGTH = 100
MAX_CONTENT_LENGTH = 10_000


def normalize_category_key(category: str) -> str:
    """Grouping key for a category: trimmed and case-folded."""
    return category.strip().casefold()


def normalize_categories(categories: list[str]) -> list[str]:
    """
    Normalize a category list while keeping insertion order.

    Categories are trimmed and empty entries dropped. Duplicates that differ
    only in case collapse onto the first-seen spelling, which is kept for
    display ("AI" and "ai" are the same category).
    """
    normalized: list[str] = []
    seen: set[str] = set()
    for category in categories:
        label = category.strip()
        if not label:
            continue
        if len(label) > MAX_CATEGORY_LENGTH:
            raise ValueError(
                f"Category too long: '{label[:20]}...'. "
                f"Categories must be at most {MAX_CATEGORY_LENGTH} characters.",
            )
        key = normalize_category_key(label)
        if key in seen:
            continue
        seen.add(key)
        normalized.append(label)
    return normalized


class BookmarkCreate(BaseModel):
    """Schema for creating a new bookmark."""

    url: HttpUrl
    title: str = Field(min_length=1, max_length=500)
    content: str | None = Field(default=None, max_length=MAX_CONTENT_LENGTH)
    categories: list[str] = []

    @field_validator("categories", mode="before")
    @classmethod
    def validate_categories(cls, v: list[str] | None) -> list[str]:
        """Normalize and validate categories."""
        if v is None:
            return []
        return normalize_categories(v)


class SummaryBookmarkCreate(BaseModel):
    """
    Internal schema for persisting an AI summary artifact.

    Not exposed on the API: the url is a reserved ``summary:`` marker rather
    than an HTTP URL, and the writer supplies created_at separately.
    """

    url: str = Field(pattern=r"^summary:")
    title: str = Field(min_length=1, max_length=500)
    content: str
    categories: list[str]
    ai_analysis: dict[str, Any]


class BookmarkUpdate(BaseModel):
    """Schema for updating an existing bookmark."""

    title: str | None = Field(default=None, min_length=1, max_length=500)
    content: str | None = Field(default=None, max_length=MAX_CONTENT_LENGTH)
    is_read: bool | None = None
    is_favorite: bool | None = None
    categories: list[str] | None = None

    @field_validator("categories", mode="before")
    @classmethod
    def validate_categories(cls, v: list[str] | None) -> list[str] | None:
        """Normalize and validate categories if provided."""
        if v is None:
            return None
        return normalize_categories(v)


class BookmarkFilter(BaseModel):
    """
    Every recognized listing filter. Unset fields are not applied.

    - is_read / is_favorite: exact match on the flag.
    - categories: bookmark carries at least one of them (case-insensitive).
    - date_range: created within the last 7 / 30 / 365 days ("all" disables).
    - search_query: case-insensitive substring of title, content or url.
    """

    is_read: bool | None = None
    is_favorite: bool | None = None
    categories: list[str] | None = None
    date_range: Literal["all", "week", "month", "year"] | None = None
    search_query: str | None = None

    @field_validator("categories", mode="before")
    @classmethod
    def validate_categories(cls, v: list[str] | None) -> list[str] | None:
        """Normalize categories; an empty list means no category filter."""
        if not v:
            return None
        return normalize_categories(v) or None


class BookmarkResponse(BaseModel):
    """Schema for bookmark responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    url: str
    title: str
    content: str | None
    domain: str
    is_read: bool
    is_favorite: bool
    categories: list[str]
    kind: Literal["link", "summary"]
    ai_analysis: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime


class BookmarkListResponse(BaseModel):
    """Schema for bookmark list responses."""

    items: list[BookmarkResponse]
    total: int


class CategoryListResponse(BaseModel):
    """Distinct categories used by the current user."""

    categories: list[str]


class BulkDeleteRequest(BaseModel):
    """Schema for deleting several bookmarks at once."""

    ids: list[int] = Field(min_length=1)


class BulkDeleteResponse(BaseModel):
    """Number of bookmarks actually deleted."""

    deleted_count: int
