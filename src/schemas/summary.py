"""Pydantic schemas for the AI summary endpoint."""
from enum import StrEnum

from pydantic import BaseModel, Field

from schemas.bookmark import BookmarkResponse


class SummaryStyle(StrEnum):
    """How the language model should shape the summary."""

    BRIEF = "brief"
    DETAILED = "detailed"
    BULLET_POINTS = "bullet-points"


class SummaryOptions(BaseModel):
    """Caller-tunable summary options."""

    style: SummaryStyle = SummaryStyle.DETAILED
    max_words: int = Field(default=500, ge=100, le=2000)
    include_key_points: bool = True


class SummarizeRequest(BaseModel):
    """
    Request body for POST /bookmarks/ai-summarize.

    api_key is optional here; it may also arrive in the X-OpenAI-API-Key header
    or fall back to the server-wide key.
    """

    bookmark_ids: list[int] = Field(min_length=1)
    options: SummaryOptions = Field(default_factory=SummaryOptions)
    api_key: str | None = None


class ExtractionFailureResponse(BaseModel):
    """A source URL that was skipped because no content could be extracted."""

    url: str
    reason: str
    message: str | None = None


class SummarizeResponse(BaseModel):
    """The persisted summary bookmark plus a report of what was summarized."""

    bookmark: BookmarkResponse
    sources_requested: int
    sources_summarized: int
    failures: list[ExtractionFailureResponse]
    message: str
