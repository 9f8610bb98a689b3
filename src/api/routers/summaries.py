"""AI summary endpoint."""
import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user, get_settings
from core.config import Settings
from models.user import User
from schemas.bookmark import BookmarkResponse
from schemas.summary import ExtractionFailureResponse, SummarizeRequest, SummarizeResponse
from services import summary_pipeline
from services.exceptions import (
    ContentExtractionFailedError,
    InvalidCredentialError,
    NoValidSourcesError,
    SummarizationFailedError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookmarks", tags=["summaries"])


@router.post("/ai-summarize", response_model=SummarizeResponse, status_code=201)
async def summarize_bookmarks(
    data: SummarizeRequest,
    x_openai_api_key: str | None = Header(default=None, alias="X-OpenAI-API-Key"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> SummarizeResponse:
    """
    Summarize several bookmarks with a language model and save the summary as a bookmark.

    The API key comes from the request body, the X-OpenAI-API-Key header, or
    the server-wide fallback, in that order. Sources whose content cannot be
    extracted are skipped as long as at least one succeeds.
    """
    try:
        generation = await summary_pipeline.generate_summary(
            db,
            current_user.id,
            data.bookmark_ids,
            data.options,
            data.api_key or x_openai_api_key,
            settings=settings,
        )
    except InvalidCredentialError as e:
        raise HTTPException(
            status_code=400,
            detail={"message": e.message, "error_code": e.error_code},
        )
    except NoValidSourcesError as e:
        raise HTTPException(
            status_code=404,
            detail={"message": e.message, "error_code": e.error_code},
        )
    except ContentExtractionFailedError as e:
        raise HTTPException(
            status_code=422,
            detail={
                "message": e.message,
                "error_code": e.error_code,
                "attempted": e.attempted,
                "reasons": e.reasons,
            },
        )
    except SummarizationFailedError as e:
        logger.warning("Summarization failed for user %s: %s", current_user.id, e.message)
        raise HTTPException(
            status_code=502,
            detail={"message": e.message, "error_code": e.error_code},
        )

    return SummarizeResponse(
        bookmark=BookmarkResponse.model_validate(generation.artifact),
        sources_requested=generation.sources_requested,
        sources_summarized=generation.sources_summarized,
        failures=[
            ExtractionFailureResponse(
                url=failure.url,
                reason=str(failure.reason),
                message=failure.message,
            )
            for failure in generation.failures
        ],
        message=generation.message,
    )
