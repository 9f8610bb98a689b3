"""
Tests for content extraction.

Tests cover:
- clean_text / extract_title / extract_main_text: pure HTML and text handling
- parse_reader_response: reader header parsing
- build_outcome: minimum length, truncation, word counts
- fetch_direct / fetch_via_reader / fetch_content: mocked HTTP, failure mapping
"""
import time
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from bs4 import BeautifulSoup

from services.content_extractor import (
    BROWSER_HEADERS,
    DEFAULT_READER_TIMEOUT,
    MIN_CONTENT_CHARS,
    FailureReason,
    SSRFBlockedError,
    build_outcome,
    clean_text,
    extract_main_text,
    extract_title,
    failure_reason_for_status,
    fetch_content,
    fetch_direct,
    fetch_via_reader,
    has_unsupported_extension,
    is_private_ip,
    parse_reader_response,
    validate_url_not_private,
)

LONG_PARAGRAPH = (
    "Researchers measured how sleep affects memory consolidation in adults. "
    "Participants who slept eight hours recalled forty percent more word pairs "
    "than those kept awake, and the effect persisted a week later. "
)


def _article_html(paragraphs: int = 3) -> str:
    body = ''.join(f'<p>{LONG_PARAGRAPH}</p>' for _ in range(paragraphs))
    return f"""
    <html>
      <head>
        <title>Sleep Study | Example News</title>
        <meta property="og:title" content="Sleep and Memory">
      </head>
      <body>
        <nav><a href="/">Home</a> <a href="/about">About us and our many sections</a></nav>
        <article>{body}</article>
        <footer>Copyright Example News. All rights reserved forever and ever.</footer>
        <script>var tracking = "do not include me";</script>
      </body>
    </html>
    """


def _mock_client(response: MagicMock | None = None, side_effect: Exception | None = None):
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.get.side_effect = side_effect
    else:
        mock_client.get.return_value = response
    mock_client.__aenter__.return_value = mock_client
    mock_client.__aexit__.return_value = None
    return mock_client


def _response(
    text: str,
    status_code: int = 200,
    content_type: str = 'text/html; charset=utf-8',
    url: str = 'https://example.com/article',
) -> MagicMock:
    response = MagicMock()
    response.text = text
    response.url = url
    response.status_code = status_code
    response.is_success = 200 <= status_code < 300
    response.headers = {'content-type': content_type}
    return response


@pytest.fixture
def allow_public_urls():
    """Skip DNS resolution in the SSRF guard."""
    with patch('services.content_extractor.validate_url_not_private') as mock_validate:
        mock_validate.return_value = None
        yield mock_validate


class TestCleanText:
    """Tests for clean_text."""

    def test__clean_text__collapses_horizontal_whitespace(self) -> None:
        assert clean_text('a  \t b  c') == 'a b c'

    def test__clean_text__collapses_blank_lines(self) -> None:
        assert clean_text('First paragraph\n\n\n\n\nSecond paragraph') == (
            'First paragraph\n\nSecond paragraph'
        )

    def test__clean_text__joins_sentences_split_across_lines(self) -> None:
        assert clean_text('The study ended.\nThe results follow.') == (
            'The study ended. The results follow.'
        )

    def test__clean_text__keeps_paragraph_breaks(self) -> None:
        assert clean_text('The study ended.\n\nThe results follow.') == (
            'The study ended.\n\nThe results follow.'
        )

    def test__clean_text__removes_space_before_punctuation(self) -> None:
        assert clean_text('Hello , world .') == 'Hello, world.'

    def test__clean_text__adds_space_after_sentence_end(self) -> None:
        assert clean_text('It worked.Then it failed.') == 'It worked. Then it failed.'

    def test__clean_text__trims_lines_and_ends(self) -> None:
        assert clean_text('  \r\n  line one  \r\n  line two  \n ') == 'line one\nline two'


class TestExtractTitle:
    """Tests for extract_title priority order."""

    def test__extract_title__prefers_og_title(self) -> None:
        soup = BeautifulSoup(
            '<html><head><title>Page</title><meta property="og:title" content="OG">'
            '</head><body><h1>Heading</h1></body></html>',
            'lxml',
        )
        assert extract_title(soup) == 'OG'

    def test__extract_title__twitter_title_before_h1(self) -> None:
        soup = BeautifulSoup(
            '<html><head><meta name="twitter:title" content="Tweet title"></head>'
            '<body><h1>Heading</h1></body></html>',
            'lxml',
        )
        assert extract_title(soup) == 'Tweet title'

    def test__extract_title__h1_before_title_tag(self) -> None:
        soup = BeautifulSoup(
            '<html><head><title>Page</title></head><body><h1>Heading</h1></body></html>',
            'lxml',
        )
        assert extract_title(soup) == 'Heading'

    def test__extract_title__title_tag(self) -> None:
        soup = BeautifulSoup('<html><head><title> Page </title></head></html>', 'lxml')
        assert extract_title(soup) == 'Page'

    def test__extract_title__none(self) -> None:
        soup = BeautifulSoup('<html><body><p>text</p></body></html>', 'lxml')
        assert extract_title(soup) is None


class TestExtractMainText:
    """Tests for the HTML content-selection chain."""

    def test__extract_main_text__article_wins_and_noise_removed(self) -> None:
        title, text = extract_main_text(_article_html())

        assert title == 'Sleep and Memory'
        assert 'memory consolidation' in text
        assert 'tracking' not in text
        assert 'Copyright' not in text
        assert 'About us' not in text

    def test__extract_main_text__paragraphs_kept_separate(self) -> None:
        _, text = extract_main_text(_article_html(paragraphs=2))
        assert text.count('\n\n') == 1

    def test__extract_main_text__inline_markup_does_not_split_sentences(self) -> None:
        html = (
            '<html><body><article><p>'
            + LONG_PARAGRAPH * 2
            + 'The <em>effect</em> was <a href="#">significant</a>.</p></article></body></html>'
        )
        _, text = extract_main_text(html)
        assert 'The effect was significant.' in text

    def test__extract_main_text__main_role(self) -> None:
        html = (
            '<html><body><div role="main"><p>'
            + LONG_PARAGRAPH * 3
            + '</p></div></body></html>'
        )
        _, text = extract_main_text(html)
        assert 'memory consolidation' in text

    def test__extract_main_text__cms_body_class(self) -> None:
        html = (
            '<html><body><div class="sidebar-links">Links</div>'
            '<div class="entry-content"><p>'
            + LONG_PARAGRAPH * 3
            + '</p></div></body></html>'
        )
        _, text = extract_main_text(html)
        assert 'memory consolidation' in text
        assert 'Links' not in text

    def test__extract_main_text__academic_abstract_and_body(self) -> None:
        html = (
            '<html><body>'
            '<div class="ltx_abstract"><p>We study sleep and memory in adults.</p></div>'
            '<div class="ltx_document"><p>' + LONG_PARAGRAPH * 2 + '</p></div>'
            '</body></html>'
        )
        _, text = extract_main_text(html)
        assert text.startswith('We study sleep and memory in adults.')
        assert 'memory consolidation' in text

    def test__extract_main_text__paragraph_fallback(self) -> None:
        html = (
            '<html><body>'
            '<div><p>short</p></div>'
            + ''.join(f'<div><p>{LONG_PARAGRAPH}</p></div>' for _ in range(3))
            + '</body></html>'
        )
        with patch('services.content_extractor.trafilatura.extract', return_value=None):
            _, text = extract_main_text(html)
        assert 'memory consolidation' in text
        assert 'short' not in text

    def test__extract_main_text__thin_page_returns_short_text(self) -> None:
        html = '<html><body><article><p>Just a teaser.</p></article></body></html>'
        with patch('services.content_extractor.trafilatura.extract', return_value=None):
            _, text = extract_main_text(html)
        assert len(text) < MIN_CONTENT_CHARS


class TestParseReaderResponse:
    """Tests for reader endpoint response parsing."""

    def test__parse_reader_response__headers_parsed(self) -> None:
        body = (
            'Title: Sleep and Memory\n'
            'URL Source: https://example.com/article\n'
            'Published Time: 2025-01-01\n\n'
            'Markdown Content:\n'
            'The body text.'
        )
        title, text = parse_reader_response(body)
        assert title == 'Sleep and Memory'
        assert text.strip() == 'The body text.'
        assert 'URL Source' not in text

    def test__parse_reader_response__plain_text(self) -> None:
        title, text = parse_reader_response('Just text without headers')
        assert title is None
        assert text == 'Just text without headers'


class TestBuildOutcome:
    """Tests for build_outcome."""

    def test__build_outcome__success(self) -> None:
        outcome = build_outcome('https://example.com', LONG_PARAGRAPH * 2, 'Title')

        assert outcome.ok
        assert outcome.content.title == 'Title'
        assert outcome.content.source_url == 'https://example.com'
        assert outcome.content.word_count == len(outcome.content.text.split())

    def test__build_outcome__under_minimum_is_insufficient(self) -> None:
        outcome = build_outcome('https://example.com', 'x' * (MIN_CONTENT_CHARS - 1), 'T')

        assert not outcome.ok
        assert outcome.reason == FailureReason.INSUFFICIENT_CONTENT

    def test__build_outcome__whitespace_does_not_count(self) -> None:
        raw = 'word ' + ' ' * 500
        outcome = build_outcome('https://example.com', raw, 'T')
        assert outcome.reason == FailureReason.INSUFFICIENT_CONTENT

    def test__build_outcome__exactly_minimum_succeeds(self) -> None:
        outcome = build_outcome('https://example.com', 'y' * MIN_CONTENT_CHARS, 'T')
        assert outcome.ok

    def test__build_outcome__truncates_and_counts_kept_words(self) -> None:
        outcome = build_outcome('https://example.com', 'word ' * 1000, 'T', max_chars=500)

        assert len(outcome.content.text) <= 500
        assert outcome.content.word_count == 100

    def test__build_outcome__untitled_fallback(self) -> None:
        outcome = build_outcome('https://example.com', LONG_PARAGRAPH * 2, None)
        assert outcome.content.title == 'Untitled'


class TestHelpers:
    """Tests for URL and status helpers."""

    @pytest.mark.parametrize('url', [
        'https://arxiv.org/pdf/2401.00001.pdf',
        'https://example.com/files/REPORT.PDF',
        'https://example.com/image.png',
        'https://example.com/archive.zip',
    ])
    def test__has_unsupported_extension__true(self, url: str) -> None:
        assert has_unsupported_extension(url)

    @pytest.mark.parametrize('url', [
        'https://example.com/article',
        'https://example.com/post.html',
        'https://example.com/pdf-guide',
        'https://example.com/?file=doc.pdf',
    ])
    def test__has_unsupported_extension__false(self, url: str) -> None:
        assert not has_unsupported_extension(url)

    @pytest.mark.parametrize(('status', 'reason'), [
        (401, FailureReason.ACCESS_DENIED),
        (403, FailureReason.ACCESS_DENIED),
        (404, FailureReason.NOT_FOUND),
        (410, FailureReason.NOT_FOUND),
        (500, FailureReason.SERVER_ERROR),
        (503, FailureReason.SERVER_ERROR),
        (429, FailureReason.UNKNOWN),
    ])
    def test__failure_reason_for_status(self, status: int, reason: FailureReason) -> None:
        assert failure_reason_for_status(status) == reason

    def test__is_private_ip(self) -> None:
        assert is_private_ip('127.0.0.1')
        assert is_private_ip('10.0.0.5')
        assert is_private_ip('169.254.169.254')
        assert is_private_ip('not-an-ip')
        assert not is_private_ip('93.184.216.34')

    def test__validate_url_not_private__localhost_blocked(self) -> None:
        with pytest.raises(SSRFBlockedError):
            validate_url_not_private('http://localhost:8000/admin')

    def test__validate_url_not_private__private_resolution_blocked(self) -> None:
        with patch('services.content_extractor.socket.getaddrinfo') as mock_getaddrinfo:
            mock_getaddrinfo.return_value = [(2, 1, 6, '', ('192.168.1.10', 0))]
            with pytest.raises(SSRFBlockedError):
                validate_url_not_private('https://intranet.example.com')


class TestFetchDirect:
    """Tests for fetch_direct with mocked HTTP."""

    async def test__fetch_direct__success(self, allow_public_urls: MagicMock) -> None:
        with patch('services.content_extractor.httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value = _mock_client(_response(_article_html()))

            outcome = await fetch_direct('https://example.com/article', 'Bookmark title')

            assert outcome.ok
            assert outcome.content.title == 'Sleep and Memory'
            assert 'memory consolidation' in outcome.content.text
            mock_client_class.assert_called_once_with(
                follow_redirects=True,
                timeout=30.0,
                headers=BROWSER_HEADERS,
                http2=True,
            )

    async def test__fetch_direct__falls_back_to_caller_title(
        self, allow_public_urls: MagicMock,
    ) -> None:
        html = '<html><body><article><p>' + LONG_PARAGRAPH * 3 + '</p></article></body></html>'
        with patch('services.content_extractor.httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value = _mock_client(_response(html))
            outcome = await fetch_direct('https://example.com/article', 'Bookmark title')
        assert outcome.content.title == 'Bookmark title'

    async def test__fetch_direct__timeout(self, allow_public_urls: MagicMock) -> None:
        with patch('services.content_extractor.httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value = _mock_client(
                side_effect=httpx.TimeoutException('timed out'),
            )
            outcome = await fetch_direct('https://example.com/article')

        assert outcome.reason == FailureReason.TIMEOUT
        assert outcome.content is None

    async def test__fetch_direct__slow_dns_counts_against_timeout(self) -> None:
        def slow_validate(url: str) -> None:
            time.sleep(0.5)

        with (
            patch('services.content_extractor.validate_url_not_private', side_effect=slow_validate),
            patch('services.content_extractor.httpx.AsyncClient') as mock_client_class,
        ):
            outcome = await fetch_direct('https://example.com/article', timeout=0.05)

        assert outcome.reason == FailureReason.TIMEOUT
        mock_client_class.assert_not_called()

    async def test__fetch_direct__connection_error(self, allow_public_urls: MagicMock) -> None:
        with patch('services.content_extractor.httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value = _mock_client(
                side_effect=httpx.ConnectError('refused'),
            )
            outcome = await fetch_direct('https://example.com/article')

        assert outcome.reason == FailureReason.UNKNOWN
        assert 'Request failed' in outcome.message

    @pytest.mark.parametrize(('status', 'reason'), [
        (403, FailureReason.ACCESS_DENIED),
        (404, FailureReason.NOT_FOUND),
        (502, FailureReason.SERVER_ERROR),
    ])
    async def test__fetch_direct__http_errors(
        self, allow_public_urls: MagicMock, status: int, reason: FailureReason,
    ) -> None:
        with patch('services.content_extractor.httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value = _mock_client(_response('error', status_code=status))
            outcome = await fetch_direct('https://example.com/article')

        assert outcome.reason == reason
        assert outcome.message == f'HTTP {status}'

    async def test__fetch_direct__non_html_content_type(
        self, allow_public_urls: MagicMock,
    ) -> None:
        with patch('services.content_extractor.httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value = _mock_client(
                _response('%PDF-1.4', content_type='application/pdf'),
            )
            outcome = await fetch_direct('https://example.com/download')

        assert outcome.reason == FailureReason.UNSUPPORTED_FORMAT

    async def test__fetch_direct__thin_page_is_insufficient(
        self, allow_public_urls: MagicMock,
    ) -> None:
        html = '<html><body><article><p>Subscribe to read.</p></article></body></html>'
        with (
            patch('services.content_extractor.httpx.AsyncClient') as mock_client_class,
            patch('services.content_extractor.trafilatura.extract', return_value=None),
        ):
            mock_client_class.return_value = _mock_client(_response(html))
            outcome = await fetch_direct('https://example.com/paywalled', 'A long bookmark title')

        assert outcome.reason == FailureReason.INSUFFICIENT_CONTENT
        assert outcome.content is None

    async def test__fetch_direct__ssrf_blocked(self) -> None:
        with patch('services.content_extractor.httpx.AsyncClient') as mock_client_class:
            outcome = await fetch_direct('http://localhost/admin')

        assert outcome.reason == FailureReason.ACCESS_DENIED
        mock_client_class.assert_not_called()

    async def test__fetch_direct__redirect_to_private_blocked(self) -> None:
        def validate(url: str) -> None:
            if '10.0.0.1' in url:
                raise SSRFBlockedError('private')

        with (
            patch('services.content_extractor.validate_url_not_private', side_effect=validate),
            patch('services.content_extractor.httpx.AsyncClient') as mock_client_class,
        ):
            mock_client_class.return_value = _mock_client(
                _response(_article_html(), url='http://10.0.0.1/internal'),
            )
            outcome = await fetch_direct('https://example.com/redirect')

        assert outcome.reason == FailureReason.ACCESS_DENIED
        assert 'Redirect blocked' in outcome.message


class TestFetchViaReader:
    """Tests for reader mode."""

    async def test__fetch_via_reader__success(self) -> None:
        body = (
            'Title: Reader Title\nURL Source: https://example.com/a\n\n'
            'Markdown Content:\n' + LONG_PARAGRAPH * 2
        )
        with patch('services.content_extractor.httpx.AsyncClient') as mock_client_class:
            mock_client = _mock_client(_response(body, content_type='text/plain'))
            mock_client_class.return_value = mock_client

            outcome = await fetch_via_reader(
                'https://example.com/a', 'Bookmark', reader_base_url='https://reader.test/',
            )

            mock_client.get.assert_called_once_with('https://reader.test/https://example.com/a')
            headers = mock_client_class.call_args.kwargs['headers']
            assert headers['Accept'] == 'text/plain'

        assert outcome.ok
        assert outcome.content.title == 'Reader Title'
        assert 'Markdown Content' not in outcome.content.text

    async def test__fetch_via_reader__short_body_is_insufficient(self) -> None:
        with patch('services.content_extractor.httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value = _mock_client(
                _response('Title: X\n\nMarkdown Content:\nToo short', content_type='text/plain'),
            )
            outcome = await fetch_via_reader('https://example.com/a', 'A very descriptive title')

        assert outcome.reason == FailureReason.INSUFFICIENT_CONTENT

    async def test__fetch_via_reader__timeout(self) -> None:
        with patch('services.content_extractor.httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value = _mock_client(
                side_effect=httpx.ReadTimeout('slow'),
            )
            outcome = await fetch_via_reader('https://example.com/a')

        assert outcome.reason == FailureReason.TIMEOUT

    async def test__fetch_via_reader__forbidden(self) -> None:
        with patch('services.content_extractor.httpx.AsyncClient') as mock_client_class:
            mock_client_class.return_value = _mock_client(_response('no', status_code=403))
            outcome = await fetch_via_reader('https://example.com/a')

        assert outcome.reason == FailureReason.ACCESS_DENIED


class TestFetchContent:
    """Tests for the fetch_content entry point."""

    async def test__fetch_content__pdf_rejected_before_network(self) -> None:
        with patch('services.content_extractor.httpx.AsyncClient') as mock_client_class:
            outcome = await fetch_content('https://arxiv.org/pdf/2401.00001.pdf')

        assert outcome.reason == FailureReason.UNSUPPORTED_FORMAT
        mock_client_class.assert_not_called()

    async def test__fetch_content__malformed_url(self) -> None:
        with patch('services.content_extractor.httpx.AsyncClient') as mock_client_class:
            outcome = await fetch_content('not a url')

        assert outcome.reason == FailureReason.UNKNOWN
        mock_client_class.assert_not_called()

    async def test__fetch_content__reader_mode_default(self) -> None:
        with patch(
            'services.content_extractor.fetch_via_reader', new_callable=AsyncMock,
        ) as mock_reader:
            await fetch_content('https://example.com/a', 'T')

        mock_reader.assert_awaited_once()
        assert mock_reader.call_args.kwargs['timeout'] == DEFAULT_READER_TIMEOUT

    async def test__fetch_content__direct_mode(self) -> None:
        with patch(
            'services.content_extractor.fetch_direct', new_callable=AsyncMock,
        ) as mock_direct:
            await fetch_content('https://example.com/a', 'T', mode='direct', timeout=5)

        mock_direct.assert_awaited_once_with(
            'https://example.com/a', 'T', timeout=5, max_chars=8000,
        )
