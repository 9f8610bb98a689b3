"""
Concurrent content extraction for a batch of URLs.

Every URL is fetched in its own task; the batch waits for all of them and
reports one ExtractionOutcome per input, in input order. A failing URL never
aborts the others.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from functools import partial

from core.config import Settings
from services.content_extractor import (
    ExtractedContent,
    ExtractionOutcome,
    FailureReason,
    fetch_content,
)
from services.exceptions import ContentExtractionFailedError

logger = logging.getLogger(__name__)

# Number of distinct failure messages reported when a whole batch fails
MAX_REPORTED_REASONS = 3

Fetcher = Callable[[str, str | None], Awaitable[ExtractionOutcome]]


def fetcher_from_settings(settings: Settings) -> Fetcher:
    """Bind fetch_content to the configured extraction mode and limits."""
    mode = settings.extraction_mode
    timeout = settings.direct_fetch_timeout if mode == 'direct' else settings.reader_fetch_timeout
    return partial(
        fetch_content,
        mode=mode,
        reader_base_url=settings.reader_base_url,
        timeout=timeout,
        max_chars=settings.max_article_chars,
    )


async def _fetch_into_slot(
    fetch: Fetcher,
    url: str,
    title: str | None,
    slots: list[ExtractionOutcome | None],
    index: int,
) -> None:
    try:
        slots[index] = await fetch(url, title)
    except Exception as e:
        # Fetchers report failures as values; anything raised is a bug in the
        # fetcher and only affects this URL.
        logger.exception("Unexpected error extracting %s", url)
        slots[index] = ExtractionOutcome.failure(
            url, FailureReason.UNKNOWN, f"Unexpected error: {e}",
        )


async def extract_all(
    sources: Sequence[tuple[str, str | None]],
    fetch: Fetcher = fetch_content,
) -> list[ExtractionOutcome]:
    """
    Fetch every (url, title) pair concurrently.

    All fetches start together and the call returns once every one of them
    has settled. Cancelling the caller cancels every outstanding fetch.

    Args:
        sources: (url, fallback title) pairs.
        fetch: Per-URL fetcher; defaults to fetch_content with its defaults.

    Returns:
        One outcome per source, in the same order as ``sources``.
    """
    slots: list[ExtractionOutcome | None] = [None] * len(sources)
    async with asyncio.TaskGroup() as tg:
        for index, (url, title) in enumerate(sources):
            tg.create_task(_fetch_into_slot(fetch, url, title, slots, index))

    outcomes = [slot for slot in slots if slot is not None]
    succeeded = sum(1 for outcome in outcomes if outcome.ok)
    logger.info("Extracted content from %s of %s URLs", succeeded, len(outcomes))
    for outcome in outcomes:
        if not outcome.ok:
            logger.warning(
                "Extraction failed for %s: %s (%s)", outcome.url, outcome.reason, outcome.message,
            )
    return outcomes


def require_successes(outcomes: Sequence[ExtractionOutcome]) -> list[ExtractedContent]:
    """
    Keep the successful extractions of a batch.

    Failed URLs are dropped without retry as long as at least one URL
    succeeded.

    Raises:
        ContentExtractionFailedError: If no outcome succeeded. Carries up to
            MAX_REPORTED_REASONS distinct failure messages.
    """
    contents = [outcome.content for outcome in outcomes if outcome.content is not None]
    if contents:
        return contents

    reasons: list[str] = []
    for outcome in outcomes:
        message = outcome.message or str(outcome.reason or FailureReason.UNKNOWN)
        if message not in reasons:
            reasons.append(message)
        if len(reasons) == MAX_REPORTED_REASONS:
            break
    raise ContentExtractionFailedError(len(outcomes), reasons)
