"""
Readable-text extraction for bookmarked URLs.

Two interchangeable modes produce the same ExtractionOutcome:

- direct: fetch the page ourselves and run a chain of HTML content-selection
  strategies over it.
- reader: delegate to an external reader endpoint that returns pre-cleaned
  plain text for a URL.

Extraction never raises for network or content problems; every failure is
reported as an ExtractionOutcome with a FailureReason.
"""
import asyncio
import ipaddress
import logging
import re
import socket
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Literal
from urllib.parse import urlparse

import httpx
import trafilatura
from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

USER_AGENT = 'Mozilla/5.0 (compatible; Clustermark/1.0)'
DEFAULT_DIRECT_TIMEOUT = 30.0
DEFAULT_READER_TIMEOUT = 60.0
DEFAULT_READER_BASE_URL = 'https://r.jina.ai/'
DEFAULT_MAX_ARTICLE_CHARS = 8000

# Extracted text shorter than this is a failed extraction, not a thin success
MIN_CONTENT_CHARS = 200
# A content-selection strategy wins once it yields more than this
STRATEGY_MIN_CHARS = 300

UNSUPPORTED_EXTENSIONS = (
    '.pdf', '.doc', '.docx', '.ppt', '.pptx', '.xls', '.xlsx',
    '.zip', '.gz', '.tar', '.rar', '.7z',
    '.png', '.jpg', '.jpeg', '.gif', '.webp', '.svg',
    '.mp3', '.wav', '.mp4', '.mov', '.avi', '.webm',
)

BROWSER_HEADERS = {
    'User-Agent': USER_AGENT,
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.5',
}

NOISE_SELECTORS = (
    'script, style, noscript, nav, header, footer, aside, form, iframe, '
    '.advertisement, .ads, .social-share'
)

BLOCK_TAGS = ['p', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'li', 'pre', 'blockquote']


class SSRFBlockedError(Exception):
    """Raised when a URL targets a private/internal network address."""

    pass


class FailureReason(StrEnum):
    """Why a URL produced no usable content."""

    TIMEOUT = 'timeout'
    ACCESS_DENIED = 'access_denied'
    NOT_FOUND = 'not_found'
    SERVER_ERROR = 'server_error'
    INSUFFICIENT_CONTENT = 'insufficient_content'
    UNSUPPORTED_FORMAT = 'unsupported_format'
    UNKNOWN = 'unknown'


@dataclass
class ExtractedContent:
    """Readable article text. Only exists when text has at least MIN_CONTENT_CHARS."""

    source_url: str
    title: str
    text: str
    word_count: int


@dataclass
class ExtractionOutcome:
    """Per-URL result: either content or a failure reason with a message."""

    url: str
    content: ExtractedContent | None = None
    reason: FailureReason | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        """True when content was extracted."""
        return self.content is not None

    @classmethod
    def success(cls, content: ExtractedContent) -> 'ExtractionOutcome':
        """Build a successful outcome."""
        return cls(url=content.source_url, content=content)

    @classmethod
    def failure(
        cls, url: str, reason: FailureReason, message: str,
    ) -> 'ExtractionOutcome':
        """Build a failed outcome."""
        return cls(url=url, reason=reason, message=message)


def is_private_ip(ip_str: str) -> bool:
    """
    Check if an IP address is private, loopback, or otherwise internal.

    Args:
        ip_str: IP address string (IPv4 or IPv6).

    Returns:
        True if the IP is private/internal, False if public.
    """
    try:
        ip = ipaddress.ip_address(ip_str)
        return (
            ip.is_private
            or ip.is_loopback
            or ip.is_link_local
            or ip.is_multicast
            or ip.is_reserved
            or ip.is_unspecified
        )
    except ValueError:
        # If we can't parse it, block it to be safe
        return True


def validate_url_not_private(url: str) -> None:
    """
    Validate that a URL does not target a private/internal network.

    Resolves the hostname to check the actual IP address, preventing
    DNS rebinding attacks where a hostname resolves to an internal IP.

    Raises:
        SSRFBlockedError: If the URL targets a private network.
        ValueError: If the URL is malformed or the host cannot be resolved.
    """
    hostname = urlparse(url).hostname

    if not hostname:
        raise ValueError(f"Invalid URL (no hostname): {url}")

    if hostname.lower() in ('localhost', 'localhost.localdomain'):
        raise SSRFBlockedError(f"Blocked request to localhost: {url}")

    try:
        addrinfo = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
    except socket.gaierror as e:
        raise ValueError(f"Could not resolve hostname: {hostname}") from e

    for _, _, _, _, sockaddr in addrinfo:
        ip_str = sockaddr[0]
        if is_private_ip(ip_str):
            raise SSRFBlockedError(
                f"Blocked request to private/internal address: {url} resolves to {ip_str}",
            )


def has_unsupported_extension(url: str) -> bool:
    """True when the URL path ends in a known non-text format (e.g. .pdf)."""
    path = urlparse(url).path.lower().rstrip('/')
    return path.endswith(UNSUPPORTED_EXTENSIONS)


def failure_reason_for_status(status_code: int) -> FailureReason:
    """Map an HTTP error status to a FailureReason."""
    if status_code in (401, 403):
        return FailureReason.ACCESS_DENIED
    if status_code in (404, 410):
        return FailureReason.NOT_FOUND
    if status_code >= 500:
        return FailureReason.SERVER_ERROR
    return FailureReason.UNKNOWN


def clean_text(text: str) -> str:
    """
    Normalize extracted text.

    - collapses runs of spaces/tabs and trims every line
    - collapses three or more line breaks into one blank line
    - joins sentences that HTML line-wrapping split across lines
    - drops spaces before punctuation and restores the space after a
      sentence end ("end.Next" -> "end. Next")
    """
    text = text.replace('\r\n', '\n').replace('\r', '\n')
    text = re.sub(r'[ \t\f\v\u00a0]+', ' ', text)
    text = '\n'.join(line.strip() for line in text.split('\n'))
    text = re.sub(r'\n{3,}', '\n\n', text)
    text = re.sub(r'([.!?])\n(?!\n)(?=[A-Z])', r'\1 ', text)
    text = re.sub(r' +([.!?,:;])', r'\1', text)
    text = re.sub(r'([a-z0-9)"][.!?])([A-Z])', r'\1 \2', text)
    return text.strip()


def count_words(text: str) -> int:
    """Number of whitespace-separated words."""
    return len(text.split())


def extract_title(soup: BeautifulSoup) -> str | None:
    """
    Page title from HTML.

    Priority: og:title, twitter:title, first <h1>, <title>.
    """
    og_title = soup.find('meta', property='og:title')
    if og_title and og_title.get('content', '').strip():
        return og_title['content'].strip()
    twitter_title = soup.find('meta', attrs={'name': 'twitter:title'})
    if twitter_title and twitter_title.get('content', '').strip():
        return twitter_title['content'].strip()
    h1 = soup.find('h1')
    if h1 and h1.get_text(strip=True):
        return h1.get_text(' ', strip=True)
    title_tag = soup.find('title')
    if title_tag and title_tag.get_text(strip=True):
        return title_tag.get_text(strip=True)
    return None


def _inline_text(element: Tag) -> str:
    """Element text on one line; inline tags do not add spaces."""
    return ' '.join(element.get_text().split())


def _element_text(element: Tag) -> str:
    """Text of an element with one paragraph per block-level descendant."""
    blocks = element.find_all(BLOCK_TAGS)
    if not blocks:
        return _inline_text(element)
    # Skip blocks nested in other blocks (e.g. <p> inside <blockquote>)
    block_ids = {id(b) for b in blocks}
    outer = [b for b in blocks if id(b.find_parent(BLOCK_TAGS)) not in block_ids]
    return '\n\n'.join(t for b in outer if (t := _inline_text(b)))


def _select_text(soup: BeautifulSoup, selector: str) -> str:
    """Concatenated text of every outermost element matching a CSS selector."""
    matches = soup.select(selector)
    match_ids = {id(el) for el in matches}
    outermost = [
        el for el in matches
        if not any(id(parent) in match_ids for parent in el.parents)
    ]
    return '\n\n'.join(_element_text(el) for el in outermost)


def _academic_text(soup: BeautifulSoup) -> str:
    abstract = _select_text(soup, '.abstract, .ltx_abstract, #abstract')
    body = _select_text(soup, '.ltx_document, .paper-content')
    if abstract and body:
        return f"{abstract}\n\n{body}"
    return body or abstract


def _paragraph_text(soup: BeautifulSoup) -> str:
    """Paragraphs longer than 30 characters outside navigation-like containers."""
    paragraphs = []
    for p in soup.find_all('p'):
        if p.find_parent(class_=re.compile(r'\b(nav|footer|sidebar|advertisement)\b')):
            continue
        text = _inline_text(p)
        if len(text) > 30:
            paragraphs.append(text)
    return '\n\n'.join(paragraphs)


def _content_strategies(
    soup: BeautifulSoup, html: str,
) -> list[tuple[str, Callable[[], str | None]]]:
    """Content-selection strategies in the order they are tried."""
    return [
        ('article', lambda: _select_text(soup, 'article')),
        ('main', lambda: _select_text(soup, 'main, [role="main"]')),
        ('cms-body', lambda: _select_text(
            soup,
            '.post-content, .entry-content, .article-content, .article-body, .post-body, '
            '[itemprop="articleBody"], section[data-field="body"], .markup',
        )),
        ('academic', lambda: _academic_text(soup)),
        ('readability', lambda: trafilatura.extract(html)),
        ('paragraphs', lambda: _paragraph_text(soup)),
    ]


def extract_main_text(html: str) -> tuple[str | None, str]:
    """
    Extract the page title and main readable text from HTML.

    Pure function with no I/O. Noise elements (scripts, navigation, footers,
    ad blocks) are removed, then content-selection strategies are tried in
    order; the first yielding more than STRATEGY_MIN_CHARS characters wins.
    If none does, the longest candidate is returned and the caller's
    sufficiency check decides.

    Returns:
        (title or None, text - possibly empty)
    """
    soup = BeautifulSoup(html, 'lxml')
    title = extract_title(soup)

    for element in soup.select(NOISE_SELECTORS):
        element.decompose()

    longest = ''
    for name, strategy in _content_strategies(soup, html):
        text = (strategy() or '').strip()
        if len(text) > STRATEGY_MIN_CHARS:
            logger.debug("Content strategy '%s' matched (%s chars)", name, len(text))
            return title, text
        if len(text) > len(longest):
            longest = text

    return title, longest


def parse_reader_response(body: str) -> tuple[str | None, str]:
    """
    Split a reader endpoint response into (title, text).

    Reader responses start with header lines (``Title:``, ``URL Source:``,
    ``Published Time:``) followed by ``Markdown Content:`` and the body. A
    response without that marker is treated as plain text.
    """
    marker = 'Markdown Content:'
    if marker not in body:
        return None, body

    head, _, text = body.partition(marker)
    title = None
    for line in head.splitlines():
        if line.startswith('Title:'):
            title = line[len('Title:'):].strip() or None
    return title, text


def build_outcome(
    url: str,
    raw_text: str,
    title: str | None,
    max_chars: int = DEFAULT_MAX_ARTICLE_CHARS,
) -> ExtractionOutcome:
    """
    Validate extracted text and wrap it in an outcome.

    Text under MIN_CONTENT_CHARS after cleaning is an INSUFFICIENT_CONTENT
    failure. Longer text is truncated to max_chars; word_count counts the
    text that is kept.
    """
    text = clean_text(raw_text)
    if len(text) < MIN_CONTENT_CHARS:
        return ExtractionOutcome.failure(
            url,
            FailureReason.INSUFFICIENT_CONTENT,
            f"Insufficient content extracted ({len(text)} characters)",
        )
    text = text[:max_chars].rstrip()
    return ExtractionOutcome.success(
        ExtractedContent(
            source_url=url,
            title=title or 'Untitled',
            text=text,
            word_count=count_words(text),
        ),
    )


async def fetch_direct(
    url: str,
    title: str | None = None,
    timeout: float = DEFAULT_DIRECT_TIMEOUT,  # noqa: ASYNC109
    max_chars: int = DEFAULT_MAX_ARTICLE_CHARS,
) -> ExtractionOutcome:
    """
    Fetch a page directly and extract its main text from the HTML.

    Security: Validates that the URL (and the final URL after redirects) does
    not target private/internal networks to prevent SSRF attacks.
    """
    try:
        async with asyncio.timeout(timeout):
            await asyncio.to_thread(validate_url_not_private, url)
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=timeout,
                headers=BROWSER_HEADERS,
                http2=True,
            ) as client:
                response = await client.get(url)
    except SSRFBlockedError as e:
        return ExtractionOutcome.failure(url, FailureReason.ACCESS_DENIED, str(e))
    except ValueError as e:
        return ExtractionOutcome.failure(url, FailureReason.UNKNOWN, str(e))
    except (TimeoutError, httpx.TimeoutException):
        return ExtractionOutcome.failure(
            url, FailureReason.TIMEOUT, "Request timeout - URL took too long to respond",
        )
    except httpx.RequestError as e:
        return ExtractionOutcome.failure(url, FailureReason.UNKNOWN, f"Request failed: {e}")

    final_url = str(response.url)
    try:
        await asyncio.to_thread(validate_url_not_private, final_url)
    except (SSRFBlockedError, ValueError) as e:
        return ExtractionOutcome.failure(
            url, FailureReason.ACCESS_DENIED, f"Redirect blocked: {e}",
        )

    if not response.is_success:
        return ExtractionOutcome.failure(
            url,
            failure_reason_for_status(response.status_code),
            f"HTTP {response.status_code}",
        )

    content_type = response.headers.get('content-type', '').lower()
    if 'html' not in content_type and 'text/plain' not in content_type:
        return ExtractionOutcome.failure(
            url,
            FailureReason.UNSUPPORTED_FORMAT,
            f"Unsupported content type: {content_type or 'unknown'}",
        )

    if 'html' in content_type:
        page_title, text = extract_main_text(response.text)
    else:
        page_title, text = None, response.text
    return build_outcome(url, text, page_title or title, max_chars)


async def fetch_via_reader(
    url: str,
    title: str | None = None,
    reader_base_url: str = DEFAULT_READER_BASE_URL,
    timeout: float = DEFAULT_READER_TIMEOUT,  # noqa: ASYNC109
    max_chars: int = DEFAULT_MAX_ARTICLE_CHARS,
) -> ExtractionOutcome:
    """Extract text through an external reader endpoint (``<reader_base_url><url>``)."""
    reader_url = f"{reader_base_url}{url}"
    try:
        async with asyncio.timeout(timeout), httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout,
            headers={'Accept': 'text/plain', 'User-Agent': USER_AGENT},
        ) as client:
            response = await client.get(reader_url)
    except (TimeoutError, httpx.TimeoutException):
        return ExtractionOutcome.failure(
            url, FailureReason.TIMEOUT, "Request timeout - reader took too long to respond",
        )
    except httpx.RequestError as e:
        return ExtractionOutcome.failure(url, FailureReason.UNKNOWN, f"Request failed: {e}")

    if not response.is_success:
        return ExtractionOutcome.failure(
            url,
            failure_reason_for_status(response.status_code),
            f"HTTP {response.status_code}",
        )

    reader_title, text = parse_reader_response(response.text)
    return build_outcome(url, text, reader_title or title, max_chars)


async def fetch_content(
    url: str,
    title: str | None = None,
    *,
    mode: Literal['direct', 'reader'] = 'reader',
    reader_base_url: str = DEFAULT_READER_BASE_URL,
    timeout: float | None = None,  # noqa: ASYNC109
    max_chars: int = DEFAULT_MAX_ARTICLE_CHARS,
) -> ExtractionOutcome:
    """
    Fetch readable text for a URL.

    Main entry point. Rejects malformed URLs and known non-text formats
    before any network call, then dispatches to the configured mode.

    Args:
        url: The URL to extract.
        title: Title to report if the page itself has none. Never used as content.
        mode: 'direct' (HTML strategy chain) or 'reader' (external endpoint).
        reader_base_url: Reader endpoint prefix for reader mode.
        timeout: Seconds; defaults to 30 for direct and 60 for reader mode.
        max_chars: Maximum characters of text kept per article.
    """
    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https') or not parsed.hostname:
        return ExtractionOutcome.failure(
            url, FailureReason.UNKNOWN, f"Invalid URL: {url}",
        )

    if has_unsupported_extension(url):
        return ExtractionOutcome.failure(
            url,
            FailureReason.UNSUPPORTED_FORMAT,
            "Content extraction not supported for this format. "
            "Please use the HTML version of the article if available.",
        )

    if mode == 'direct':
        return await fetch_direct(
            url, title, timeout=timeout or DEFAULT_DIRECT_TIMEOUT, max_chars=max_chars,
        )
    return await fetch_via_reader(
        url,
        title,
        reader_base_url=reader_base_url,
        timeout=timeout or DEFAULT_READER_TIMEOUT,
        max_chars=max_chars,
    )
