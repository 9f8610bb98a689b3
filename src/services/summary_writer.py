"""
Persists an AI summary as a bookmark of its own.

The artifact's metadata is synthesized from its sources so that it lands in
the same clusters they do: it carries every source category (plus
``ai-summary``) and the creation date of the most recent source.
"""
import logging
import time
import uuid
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from models.bookmark import Bookmark
from schemas.bookmark import SummaryBookmarkCreate, normalize_categories
from services import bookmark_service
from services.summarization_service import SummaryResult
from services.utils import as_utc

logger = logging.getLogger(__name__)

AI_SUMMARY_CATEGORY = "ai-summary"
SUMMARY_URL_SCHEME = "summary:"


def summary_url(now_ms: int | None = None) -> str:
    """Reserved, non-browsable url for a summary: ``summary:<unixMillis>-<8 hex>``."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{SUMMARY_URL_SCHEME}{now_ms}-{uuid.uuid4().hex[:8]}"


def summary_title(sources: Sequence[Bookmark]) -> str:
    """``Summary: <title>`` for one source, ``Summary of <N> articles`` otherwise."""
    if len(sources) == 1:
        return f"Summary: {sources[0].title or 'Article'}"
    return f"Summary of {len(sources)} articles"


def summary_categories(sources: Sequence[Bookmark]) -> list[str]:
    """``ai-summary`` followed by the distinct source categories, in first-seen order."""
    combined = [AI_SUMMARY_CATEGORY]
    for source in sources:
        combined.extend(source.categories or [])
    return normalize_categories(combined)


def build_summary_artifact(
    sources: Sequence[Bookmark],
    result: SummaryResult,
    now_ms: int | None = None,
) -> SummaryBookmarkCreate:
    """
    Synthesize the bookmark data for a summary of the given sources.

    The model's suggested categories are recorded in ai_analysis only; the
    artifact's own categories come from its sources so category clusters
    pick it up.
    """
    if not sources:
        raise ValueError("A summary needs at least one source bookmark")
    return SummaryBookmarkCreate(
        url=summary_url(now_ms),
        title=summary_title(sources)[:500],
        content=result.summary_text,
        categories=summary_categories(sources),
        ai_analysis={
            "key_points": result.key_points,
            "sentiment": result.sentiment,
            "suggested_categories": result.categories,
            "words_processed": result.words_processed,
            "estimated_reading_minutes": result.estimated_reading_minutes,
            "source_ids": [source.id for source in sources],
        },
    )


async def write_summary_artifact(
    db: AsyncSession,
    user_id: int,
    sources: Sequence[Bookmark],
    result: SummaryResult,
) -> Bookmark:
    """
    Create the summary bookmark, dated like its most recent source.

    Note: Does not commit. Caller (session generator) handles commit at request end.
    """
    data = build_summary_artifact(sources, result)
    created_at = max(as_utc(source.created_at) for source in sources)
    bookmark = await bookmark_service.create_bookmark(db, user_id, data, created_at=created_at)
    logger.info(
        "Saved summary bookmark %s for user %s from %s sources", bookmark.id, user_id, len(sources),
    )
    return bookmark
