"""
End-to-end AI summary generation for a set of bookmarks.

Steps, in order:
1. resolve and shape-check the language-model credential
2. load the source bookmarks of the user
3. extract readable text from every source concurrently
4. summarize the extracted text in one model call
5. persist the summary as a bookmark placed in its sources' clusters

Each step fails with a typed SummaryPipelineError subclass. Nothing is
written unless every step succeeds.
"""
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from models.bookmark import Bookmark
from schemas.summary import SummaryOptions
from services import bookmark_service
from services.batch_extraction import (
    Fetcher,
    extract_all,
    fetcher_from_settings,
    require_successes,
)
from services.content_extractor import ExtractionOutcome, build_outcome
from services.exceptions import NoValidSourcesError
from services.summarization_service import SummarizationClient, validate_api_key
from services.summary_writer import write_summary_artifact

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], SummarizationClient]


@dataclass
class SummaryGeneration:
    """Outcome of a successful summary request."""

    artifact: Bookmark
    sources_requested: int
    sources_summarized: int
    failures: list[ExtractionOutcome] = field(default_factory=list)

    @property
    def message(self) -> str:
        """Human-readable account of how many sources made it into the summary."""
        return f"Summarized {self.sources_summarized} of {self.sources_requested} articles"


def client_factory_from_settings(settings: Settings) -> ClientFactory:
    """Build SummarizationClients for a request key using the configured endpoint."""
    def factory(api_key: str) -> SummarizationClient:
        return SummarizationClient(
            api_key,
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            timeout=settings.llm_timeout,
            max_tokens=settings.llm_max_tokens,
        )
    return factory


async def extract_sources(
    sources: Sequence[Bookmark],
    fetch: Fetcher,
    max_chars: int,
) -> list[ExtractionOutcome]:
    """
    One outcome per source, in source order.

    Summary bookmarks have no browsable url; their stored summary text is
    used as their content, subject to the same minimum-length rule as
    fetched pages. Every other source is fetched.
    """
    links = [source for source in sources if not source.is_summary]
    fetched = iter(await extract_all([(s.url, s.title) for s in links], fetch))

    outcomes: list[ExtractionOutcome] = []
    for source in sources:
        if source.is_summary:
            outcomes.append(
                build_outcome(source.url, source.content or "", source.title, max_chars),
            )
        else:
            outcomes.append(next(fetched))
    return outcomes


async def generate_summary(
    db: AsyncSession,
    user_id: int,
    bookmark_ids: Sequence[int],
    options: SummaryOptions | None,
    api_key: str | None,
    *,
    settings: Settings,
    fetch: Fetcher | None = None,
    client_factory: ClientFactory | None = None,
) -> SummaryGeneration:
    """
    Summarize the given bookmarks and save the summary as a new bookmark.

    Args:
        db: Database session. The artifact is flushed, not committed.
        user_id: Owner of the source bookmarks and of the artifact.
        bookmark_ids: Requested sources. Unknown ids and ids of other users
            are skipped.
        options: Summary style options.
        api_key: Request-scoped credential; falls back to settings.llm_api_key.
        settings: Extraction and language-model configuration.
        fetch: Per-URL fetcher override (defaults to the configured mode).
        client_factory: SummarizationClient factory override.

    Raises:
        InvalidCredentialError: Missing or malformed credential, or the
            model endpoint rejected it.
        NoValidSourcesError: None of the ids resolves to a bookmark of the user.
        ContentExtractionFailedError: No source yielded readable content.
        SummarizationFailedError: The language model call failed.
    """
    key = validate_api_key(api_key or settings.llm_api_key, settings.llm_api_key_prefix)

    resolved = await bookmark_service.get_bookmarks_by_ids(db, user_id, bookmark_ids)
    # Repeated ids are summarized once
    sources = list({b.id: b for b in resolved if b is not None}.values())
    if not sources:
        raise NoValidSourcesError(len(bookmark_ids))
    if len(sources) < len(bookmark_ids):
        logger.info(
            "Skipping %s unknown or repeated bookmark ids for user %s",
            len(bookmark_ids) - len(sources), user_id,
        )

    outcomes = await extract_sources(
        sources,
        fetch or fetcher_from_settings(settings),
        settings.max_article_chars,
    )
    contents = require_successes(outcomes)

    factory = client_factory or client_factory_from_settings(settings)
    result = await factory(key).summarize(contents, options or SummaryOptions())

    artifact = await write_summary_artifact(db, user_id, sources, result)
    return SummaryGeneration(
        artifact=artifact,
        sources_requested=len(sources),
        sources_summarized=len(contents),
        failures=[outcome for outcome in outcomes if not outcome.ok],
    )
