"""Tests for the adaptive content fetcher."""

import aiohttp
import pytest
from aiohttp import http_exceptions
from unittest.mock import AsyncMock, MagicMock, Mock, patch

from newsdesk.core.errors import (
    AccessDenied,
    NetworkTransient,
    ProtocolOversize,
    ResourceError,
)
from newsdesk.fetchers import extraction
from newsdesk.fetchers.content_fetcher import ContentFetcher
from newsdesk.fetchers.headers import curl_profile
from newsdesk.models.content import ArticleImage, DocumentRecord

ARTICLE_URL = "https://news.example.com/2024/markets.html"

PARAGRAPH = "Stocks climbed for a third straight session as inflation cooled. " * 8

ARTICLE_HTML = f"""
<html>
  <head>
    <title>Markets</title>
    <meta property="og:image" content="/images/markets-hero.jpg">
    <meta name="description" content="Markets summary">
  </head>
  <body>
    <header><img src="/static/logo.svg"></header>
    <article>
      <p>{PARAGRAPH}</p>
      <img src="/images/chart.png" alt="Chart of the day">
    </article>
  </body>
</html>
"""


@pytest.fixture(autouse=True)
def no_readability():
    """Run extraction through the selector path for predictable output."""
    with patch.object(extraction, "Document", None):
        yield


@pytest.fixture
def fetcher(mock_settings, rng, fake_sleep):
    return ContentFetcher(mock_settings, session_manager=Mock(), rng=rng, sleep=fake_sleep)


@pytest.fixture
def record():
    return DocumentRecord(url=ARTICLE_URL, title="Markets rally")


def _profiles(request_mock):
    return [c.args[1].name for c in request_mock.await_args_list]


class TestFetchEnriched:
    """Test enrichment and graceful degradation."""

    @pytest.mark.asyncio
    async def test_success_fills_content_and_images(self, fetcher, record):
        with patch.object(fetcher, "_request", AsyncMock(return_value=(200, ARTICLE_HTML))):
            result = await fetcher.fetch_enriched(record)

        assert result.content.startswith("Stocks climbed")
        assert [img.url for img in result.images] == [
            "https://news.example.com/images/markets-hero.jpg",
            "https://news.example.com/images/chart.png",
        ]
        assert result.images[1].alt == "Chart of the day"
        assert result.url == record.url
        assert result.title == record.title

    @pytest.mark.asyncio
    async def test_input_record_not_mutated(self, fetcher, record):
        with patch.object(fetcher, "_request", AsyncMock(return_value=(200, ARTICLE_HTML))):
            result = await fetcher.fetch_enriched(record)

        assert result is not record
        assert record.content is None
        assert record.images == []

    @pytest.mark.asyncio
    async def test_content_is_capped(self, mock_settings, rng, fake_sleep, record):
        mock_settings.max_content_chars = 150
        fetcher = ContentFetcher(
            mock_settings, session_manager=Mock(), rng=rng, sleep=fake_sleep
        )
        with patch.object(fetcher, "_request", AsyncMock(return_value=(200, ARTICLE_HTML))):
            result = await fetcher.fetch_enriched(record)

        assert len(result.content) == 150

    @pytest.mark.asyncio
    async def test_caller_content_is_kept(self, fetcher):
        record = DocumentRecord(url=ARTICLE_URL, title="t", content="From the RSS feed")
        with patch.object(fetcher, "_request", AsyncMock(return_value=(200, ARTICLE_HTML))):
            result = await fetcher.fetch_enriched(record)

        assert result.content == "From the RSS feed"
        assert len(result.images) == 2

    @pytest.mark.asyncio
    async def test_nothing_to_fill_skips_network(self, fetcher):
        record = DocumentRecord(
            url=ARTICLE_URL,
            content="Already here",
            images=[ArticleImage(url="https://cdn.example.com/a.jpg")],
        )
        request = AsyncMock()
        with patch.object(fetcher, "_request", request):
            result = await fetcher.fetch_enriched(record)

        assert result is record
        request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_access_denied_everywhere_degrades(self, fetcher, fake_sleep):
        """Test repeated 403s return the caller's record untouched."""
        record = DocumentRecord(url=ARTICLE_URL, title="t", content="", excerpt="keep")
        request = AsyncMock(return_value=(403, "Forbidden" * 100))
        with patch.object(fetcher, "_request", request):
            result = await fetcher.fetch_enriched(record)

        assert result is record
        assert result.content == ""
        assert result.images == []
        assert _profiles(request) == ["browser", "minimal"]

    @pytest.mark.asyncio
    async def test_access_denied_then_identity_switch_succeeds(self, fetcher, record):
        request = AsyncMock(side_effect=[(403, "Forbidden"), (200, ARTICLE_HTML)])
        with patch.object(fetcher, "_request", request):
            result = await fetcher.fetch_enriched(record)

        assert result.content
        assert _profiles(request) == ["browser", "minimal"]

    @pytest.mark.asyncio
    async def test_rate_limit_escalates_delay(self, fetcher, fake_sleep, record):
        request = AsyncMock(side_effect=[(429, "slow down"), (200, ARTICLE_HTML)])
        with patch.object(fetcher, "_request", request):
            result = await fetcher.fetch_enriched(record)

        assert result.content
        (delay,) = fake_sleep.await_args.args
        # base 1.0s, up to 30% jitter, plus the 5s rate-limit increment
        assert 6.0 <= delay <= 6.3

    @pytest.mark.asyncio
    async def test_oversized_headers_retry_immediately(self, fetcher, fake_sleep, record):
        request = AsyncMock(
            side_effect=[http_exceptions.LineTooLong("Set-Cookie"), (200, ARTICLE_HTML)]
        )
        with patch.object(fetcher, "_request", request):
            result = await fetcher.fetch_enriched(record)

        assert result.content
        assert _profiles(request) == ["browser", "curl"]
        fake_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transient_errors_back_off_then_degrade(self, fetcher, fake_sleep, record):
        request = AsyncMock(side_effect=aiohttp.ClientConnectionError("reset"))
        with patch.object(fetcher, "_request", request):
            result = await fetcher.fetch_enriched(record)

        assert result is record
        assert request.await_count == 3
        delays = [c.args[0] for c in fake_sleep.await_args_list]
        assert len(delays) == 2
        assert 1.0 <= delays[0] <= 1.3
        assert 2.0 <= delays[1] <= 2.6

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [(404, "x" * 1000), (500, "x" * 1000), (200, "tiny")])
    async def test_resource_problems_are_not_retried(self, fetcher, fake_sleep, record, response):
        request = AsyncMock(return_value=response)
        with patch.object(fetcher, "_request", request):
            result = await fetcher.fetch_enriched(record)

        assert result is record
        assert request.await_count == 1
        fake_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_extraction_error_degrades(self, fetcher, record):
        with patch.object(fetcher, "_request", AsyncMock(return_value=(200, ARTICLE_HTML))):
            with patch(
                "newsdesk.fetchers.content_fetcher.extract_images",
                side_effect=RuntimeError("parser exploded"),
            ):
                result = await fetcher.fetch_enriched(record)

        assert result is record


class TestFetchHtml:
    """Test the typed errors raised by the fetch loop."""

    @pytest.mark.asyncio
    async def test_raises_access_denied(self, fetcher):
        with patch.object(fetcher, "_request", AsyncMock(return_value=(401, "no"))):
            with pytest.raises(AccessDenied):
                await fetcher.fetch_html(ARTICLE_URL)

    @pytest.mark.asyncio
    async def test_raises_network_transient(self, fetcher):
        with patch.object(
            fetcher, "_request", AsyncMock(side_effect=aiohttp.ServerDisconnectedError())
        ):
            with pytest.raises(NetworkTransient):
                await fetcher.fetch_html(ARTICLE_URL)

    @pytest.mark.asyncio
    async def test_raises_resource_error_for_thin_page(self, fetcher):
        with patch.object(fetcher, "_request", AsyncMock(return_value=(200, "<html></html>"))):
            with pytest.raises(ResourceError):
                await fetcher.fetch_html(ARTICLE_URL)


class TestImagesOnlyAndBatches:
    """Test the backfill path and batch scheduling."""

    @pytest.mark.asyncio
    async def test_images_only_leaves_text(self, fetcher, record):
        with patch.object(fetcher, "_request", AsyncMock(return_value=(200, ARTICLE_HTML))):
            result = await fetcher.fetch_images_only(record)

        assert result.content is None
        assert len(result.images) == 2

    @pytest.mark.asyncio
    async def test_scrape_articles_batches_and_pauses(self, fetcher, fake_sleep):
        records = [DocumentRecord(url=f"https://x.com/{i}") for i in range(3)]
        enriched = [r.model_copy(update={"content": "done"}) for r in records]
        fetch = AsyncMock(side_effect=[enriched[0], RuntimeError("boom"), enriched[2]])

        with patch.object(fetcher, "fetch_enriched", fetch):
            results = await fetcher.scrape_articles(records)

        assert [r.url for r in results] == [r.url for r in records]
        assert results[0].content == "done"
        assert results[1] is records[1]
        assert results[2].content == "done"
        # Two batches of size 2 and 1, one pause in between
        fake_sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_scrape_articles_images_only(self, fetcher):
        records = [DocumentRecord(url="https://x.com/a")]
        fetch = AsyncMock(side_effect=lambda r: r)

        with patch.object(fetcher, "fetch_images_only", fetch):
            await fetcher.scrape_articles(records, images_only=True)

        fetch.assert_awaited_once_with(records[0])


class TestRequestAndOversize:
    """Test the raw request path and repeated oversize headers."""

    @pytest.fixture
    def session(self):
        return MagicMock()

    @pytest.fixture
    def session_fetcher(self, mock_settings, rng, fake_sleep, session):
        manager = Mock()
        manager.get_session = AsyncMock(return_value=session)
        manager.config.max_redirects = 3
        return ContentFetcher(mock_settings, session_manager=manager, rng=rng, sleep=fake_sleep)

    @pytest.mark.asyncio
    async def test_request_decodes_text(self, session_fetcher, session):
        response = MagicMock(status=200)
        response.text = AsyncMock(return_value="<html>ok</html>")
        session.get.return_value.__aenter__.return_value = response

        profile = curl_profile()
        status, body = await session_fetcher._request(ARTICLE_URL, profile)

        assert (status, body) == (200, "<html>ok</html>")
        session.get.assert_called_once_with(
            ARTICLE_URL, headers=profile.headers, max_redirects=3
        )

    @pytest.mark.asyncio
    async def test_request_falls_back_to_latin1(self, session_fetcher, session):
        response = MagicMock(status=200)
        response.text = AsyncMock(
            side_effect=UnicodeDecodeError("utf-8", b"\xe9", 0, 1, "invalid start byte")
        )
        response.read = AsyncMock(return_value="Café société".encode("latin-1"))
        session.get.return_value.__aenter__.return_value = response

        status, body = await session_fetcher._request(ARTICLE_URL, curl_profile())

        assert status == 200
        assert body == "Café société"

    @pytest.mark.asyncio
    async def test_second_oversize_failure_ends_fetch(self, fetcher, fake_sleep, record):
        request = AsyncMock(side_effect=http_exceptions.LineTooLong("Set-Cookie"))
        with patch.object(fetcher, "_request", request):
            with pytest.raises(ProtocolOversize):
                await fetcher.fetch_html(ARTICLE_URL)

            result = await fetcher.fetch_enriched(record)

        assert result is record
        assert _profiles(request) == ["browser", "curl", "browser", "curl"]
        fake_sleep.assert_not_awaited()
