"""
Multi-article summarization through an OpenAI-compatible chat completions API.

The client sends one prompt containing the full text of every extracted
article and parses the model's JSON answer into a SummaryResult. A reply that
is not valid JSON degrades to a plain-text summary instead of failing.
"""
import json
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal, get_args

import httpx
from pydantic import BaseModel, Field, ValidationError, field_validator

from schemas.summary import SummaryOptions, SummaryStyle
from services.content_extractor import ExtractedContent, count_words
from services.exceptions import InvalidCredentialError, SummarizationFailedError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"
DEFAULT_TIMEOUT = 60.0
DEFAULT_MAX_TOKENS = 4000
TEMPERATURE = 0.3

# Characters of raw model output kept when the reply cannot be parsed
FALLBACK_SUMMARY_CHARS = 1000
READING_WORDS_PER_MINUTE = 200

ARTICLE_SEPARATOR = "\n\n" + "=" * 80 + "\n\n"

SYSTEM_PROMPT = (
    "You are an expert content analyst. Analyze the provided article content and create "
    "intelligent summaries that capture research findings, methodologies, key insights, "
    "and conclusions."
)

STYLE_INSTRUCTIONS = {
    SummaryStyle.BRIEF: "Create a concise summary focusing on the main points from each article",
    SummaryStyle.DETAILED: (
        "Create a comprehensive summary that covers the key insights from each article"
    ),
    SummaryStyle.BULLET_POINTS: (
        "Create a summary using bullet points that clearly separates insights from each article"
    ),
}

Sentiment = Literal["positive", "neutral", "negative"]
SENTIMENTS = get_args(Sentiment)


@dataclass
class SummaryResult:
    """Parsed model answer plus statistics about the summarized input."""

    summary_text: str
    key_points: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    sentiment: Sentiment = "neutral"
    words_processed: int = 0
    estimated_reading_minutes: int = 0


class ModelSummary(BaseModel):
    """Shape of the JSON object the model is asked to return."""

    summary: str = Field(min_length=1)
    key_points: list[str] = Field(default_factory=list, alias="keyPoints")
    categories: list[str] = Field(default_factory=list)
    sentiment: Sentiment = "neutral"

    @field_validator("summary")
    @classmethod
    def summary_not_blank(cls, v: str) -> str:
        """Reject whitespace-only summaries."""
        if not v.strip():
            raise ValueError("summary must not be blank")
        return v

    @field_validator("key_points", "categories", mode="before")
    @classmethod
    def coerce_string_list(cls, v: object) -> list[str]:
        """Anything but a list becomes empty; non-string and blank items are dropped."""
        if not isinstance(v, list):
            return []
        return [item.strip() for item in v if isinstance(item, str) and item.strip()]

    @field_validator("sentiment", mode="before")
    @classmethod
    def coerce_sentiment(cls, v: object) -> str:
        """Unknown sentiments read as neutral."""
        if isinstance(v, str) and v.strip().lower() in SENTIMENTS:
            return v.strip().lower()
        return "neutral"



def validate_api_key(api_key: str | None, prefix: str = "sk-") -> str:
    """
    Check the shape of a language-model API key.

    Returns:
        The key, unchanged.

    Raises:
        InvalidCredentialError: If the key is missing or does not start with prefix.
    """
    if not api_key:
        raise InvalidCredentialError(
            "An OpenAI API key is required. Provide it in the request body or the "
            "X-OpenAI-API-Key header.",
            missing=True,
        )
    if not api_key.startswith(prefix):
        raise InvalidCredentialError(
            f'Invalid OpenAI API key. API key must start with "{prefix}"',
        )
    return api_key


def _format_article(index: int, content: ExtractedContent) -> str:
    return (
        f"=== ARTICLE {index}: {content.title} ===\n"
        f"URL: {content.source_url}\n"
        f"Word Count: {content.word_count}\n\n"
        f"CONTENT:\n{content.text}"
    )


def build_summary_prompt(
    contents: Sequence[ExtractedContent],
    options: SummaryOptions,
) -> str:
    """
    Build the user prompt for a batch of extracted articles.

    Every article contributes its title, source URL, word count and full text.
    Prompts covering several articles ask the model to attribute each point
    to the article it came from.
    """
    multiple = len(contents) > 1
    subject = f"{len(contents)} articles" if multiple else "article"
    if multiple:
        summary_format = (
            "For each article, provide a separate paragraph or section summarizing its main "
            "content, findings, and conclusions. Clearly identify which points come from which "
            'article (e.g., "Article 1 - [Title]: ...", "Article 2 - [Title]: ...").'
        )
    else:
        summary_format = (
            "Provide a comprehensive summary of the article's main content, findings, "
            "and conclusions."
        )

    articles = ARTICLE_SEPARATOR.join(
        _format_article(i, content) for i, content in enumerate(contents, start=1)
    )

    json_lines = [
        f'  "summary": "Your {options.style.value} summary of the article content here",',
    ]
    if options.include_key_points:
        json_lines.append('  "keyPoints": ["key insight 1", "key insight 2", "key insight 3"],')
    json_lines.append('  "categories": ["research-field", "methodology", "topic"],')
    json_lines.append('  "sentiment": "positive|neutral|negative"')

    guidelines = [
        "- Focus on the ACTUAL CONTENT of the articles, not metadata",
        "- Summarize research findings, methodologies, conclusions, and key insights",
        "- If multiple articles: clearly separate insights from each article with proper "
        "attribution",
        "- Extract 3-5 relevant categories based on the content",
        "- Analyze sentiment based on the content and findings",
    ]
    if options.include_key_points:
        guidelines.append("- Include 3-5 key insights from the actual content")
    guidelines.append("- Respond with the JSON object only and make sure all text is escaped")

    return (
        f"Please analyze the following {subject} and create an intelligent summary that "
        "captures the essence of the ACTUAL ARTICLE CONTENT.\n\n"
        "IMPORTANT: The text below was extracted from web pages. Focus on the substance, "
        "research findings, methodologies, conclusions, and key insights of the articles "
        "themselves.\n\n"
        f"{STYLE_INSTRUCTIONS[options.style]} (approximately {options.max_words} words).\n\n"
        f"{summary_format}\n\n"
        f"Content to analyze:\n{articles}\n\n"
        "Please respond with a JSON object containing:\n"
        "{\n" + "\n".join(json_lines) + "\n}\n\n"
        "Guidelines:\n" + "\n".join(guidelines)
    )


def find_first_json_object(text: str) -> str | None:
    """
    Return the first balanced ``{...}`` block of text, or None.

    Braces inside JSON string literals (including escaped quotes) do not count
    towards the balance.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def parse_summary_response(raw: str) -> ModelSummary:
    """
    Parse the model's reply.

    The first balanced JSON object is validated against ModelSummary, which
    tolerates malformed optional fields: an unknown sentiment reads as neutral
    and non-list keyPoints or categories read as empty. Only a missing object,
    invalid JSON or a missing or blank summary falls back to the first
    FALLBACK_SUMMARY_CHARS characters of the raw reply as the summary, with
    no key points or categories and a neutral sentiment.
    """
    candidate = find_first_json_object(raw)
    if candidate is not None:
        try:
            return ModelSummary.model_validate(json.loads(candidate))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Model reply failed validation, using raw text: %s", e)
    else:
        logger.warning("Model reply contained no JSON object, using raw text")
    return ModelSummary.model_construct(
        summary=raw[:FALLBACK_SUMMARY_CHARS], categories=[], sentiment="neutral",
    )


class SummarizationClient:
    """
    Request-scoped client for an OpenAI-compatible chat completions endpoint.

    The API key belongs to the caller of one request and is never stored
    beyond the lifetime of this object.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = DEFAULT_TIMEOUT,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens

    async def _complete(self, prompt: str) -> str:
        """Send one chat completion request and return the reply text."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "model": self.model,
                        "messages": [
                            {"role": "system", "content": SYSTEM_PROMPT},
                            {"role": "user", "content": prompt},
                        ],
                        "max_tokens": self.max_tokens,
                        "temperature": TEMPERATURE,
                    },
                )
        except httpx.TimeoutException as e:
            raise SummarizationFailedError(
                "AI summarization failed: the language model took too long to respond",
            ) from e
        except httpx.RequestError as e:
            raise SummarizationFailedError(f"AI summarization failed: {e}") from e

        if response.status_code == 401:
            raise InvalidCredentialError("The OpenAI API rejected the provided API key")
        if not response.is_success:
            raise SummarizationFailedError(
                f"AI summarization failed: language model returned HTTP {response.status_code}",
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise SummarizationFailedError(
                "AI summarization failed: malformed response from the language model",
            ) from e
        if not content or not content.strip():
            raise SummarizationFailedError(
                "AI summarization failed: no response received from the language model",
            )
        return content

    async def summarize(
        self,
        contents: Sequence[ExtractedContent],
        options: SummaryOptions | None = None,
    ) -> SummaryResult:
        """
        Summarize extracted articles in a single model call.

        Raises:
            ValueError: If contents is empty.
            InvalidCredentialError: If the endpoint rejects the API key.
            SummarizationFailedError: On timeout, transport errors, non-2xx
                responses or an empty completion.
        """
        if not contents:
            raise ValueError("At least one extracted article is required")
        options = options or SummaryOptions()

        prompt = build_summary_prompt(contents, options)
        logger.info(
            "Requesting %s summary of %s articles from %s", options.style.value, len(contents),
            self.model,
        )
        raw = await self._complete(prompt)
        parsed = parse_summary_response(raw)

        return SummaryResult(
            summary_text=parsed.summary,
            key_points=list(parsed.key_points),
            categories=list(parsed.categories),
            sentiment=parsed.sentiment,
            words_processed=sum(content.word_count for content in contents),
            estimated_reading_minutes=math.ceil(
                count_words(parsed.summary) / READING_WORDS_PER_MINUTE,
            ),
        )
