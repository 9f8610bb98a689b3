"""Bookmark model for storing user bookmarks and AI summary artifacts."""
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Boolean, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from models.user import User


class BookmarkKind(StrEnum):
    """Discriminates saved links from AI summary artifacts."""

    LINK = "link"
    SUMMARY = "summary"


class Bookmark(Base, TimestampMixin):
    """
    Bookmark model - stores URLs with metadata and categories.

    Summary artifacts are regular rows with kind=summary. Their url uses the
    reserved ``summary:`` scheme so the (user_id, url) uniqueness still holds,
    but callers should branch on ``kind``/``is_summary`` rather than the url.
    """

    __tablename__ = "bookmarks"
    __table_args__ = (
        UniqueConstraint("user_id", "url", name="uq_bookmark_user_url"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, default="unknown")
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_favorite: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Ordered, case-insensitively unique; see schemas.bookmark.normalize_categories
    categories: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    kind: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BookmarkKind.LINK.value,
    )
    # Structured model output kept alongside summary artifacts only
    ai_analysis: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    user: Mapped["User"] = relationship(back_populates="bookmarks")

    @property
    def is_summary(self) -> bool:
        """True for AI summary artifacts."""
        return self.kind == BookmarkKind.SUMMARY
