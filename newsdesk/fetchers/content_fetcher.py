"""Adaptive article fetcher that enriches documents with body text and images."""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import aiohttp

from newsdesk.core.errors import FetchError
from newsdesk.core.retry import JITTER_FRACTION, RetryPolicy, compute_delay
from newsdesk.models.content import DocumentRecord
from newsdesk.models.fetch import FetchAttempt, FetchErrorKind

from .classifier import classify_exception, classify_response, error_for
from .extraction import extract_body
from .headers import HeaderProfile, browser_profile, curl_profile, minimal_profile
from .http_session import HTTPSessionManager
from .images import extract_images

logger = logging.getLogger(__name__)


class ContentFetcher:
    """Fetches third-party pages politely and degrades instead of raising."""

    def __init__(
        self,
        settings=None,
        session_manager: Optional[HTTPSessionManager] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the fetcher.

        Args:
            settings: Settings instance for configuration values
            session_manager: Shared HTTP session manager; one is created from
                ``settings.transport_config()`` if omitted
            rng: Random source for jitter and User-Agent choice
            sleep: Coroutine used for every delay
        """
        self.max_attempts = settings.fetch_max_attempts if settings else 3
        self.min_body_bytes = settings.min_body_bytes if settings else 512
        self.max_content_chars = settings.max_content_chars if settings else 5000
        self.max_images = settings.max_images if settings else 3
        self.rate_limit_extra_delay = settings.rate_limit_extra_delay if settings else 5.0
        self.batch_size = settings.scrape_batch_size if settings else 5
        self.batch_pause = settings.scrape_batch_pause if settings else 0.5
        self.user_agent = settings.default_user_agent if settings else "Newsdesk-Bot/1.0"
        self.backoff = RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=settings.fetch_base_delay if settings else 1.0,
            backoff_multiplier=2.0,
            max_delay=settings.fetch_max_delay if settings else 8.0,
        )

        if session_manager is None:
            transport = settings.transport_config() if settings else None
            session_manager = HTTPSessionManager(transport)
            self._owns_session = True
        else:
            self._owns_session = False
        self.session_manager = session_manager

        self.rng = rng or random.Random()
        self.sleep = sleep

    async def close(self) -> None:
        """Close the HTTP session if this fetcher created it."""
        if self._owns_session:
            await self.session_manager.close()

    async def __aenter__(self) -> "ContentFetcher":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _retry_delay(self, attempt: int) -> float:
        delay = compute_delay(self.backoff, attempt)
        return delay + self.rng.random() * JITTER_FRACTION * delay

    async def _request(self, url: str, profile: HeaderProfile) -> Tuple[int, str]:
        """Issue one GET and return status and decoded body."""
        session = await self.session_manager.get_session()
        async with session.get(
            url,
            headers=profile.headers,
            max_redirects=self.session_manager.config.max_redirects,
        ) as response:
            try:
                body = await response.text()
            except UnicodeDecodeError:
                raw_content = await response.read()
                body = raw_content.decode("latin-1", errors="ignore")
            return response.status, body

    async def fetch_html(self, url: str) -> str:
        """Fetch a page, adapting to the failures it runs into.

        Rate limiting backs off with an extra delay, access denial switches
        once to a plain bot identity, oversized headers retry immediately
        with bare headers, and network errors back off normally. Other
        errors and thin bodies end the fetch at once.

        Returns:
            The page HTML

        Raises:
            FetchError: subclass matching the last classified failure
        """
        profile = browser_profile(self.rng)
        switched_identity = False
        retried_oversize = False
        attempts: List[FetchAttempt] = []

        for index in range(1, self.max_attempts + 1):
            status: Optional[int] = None
            detail: Optional[str] = None
            body = ""
            try:
                status, body = await self._request(url, profile)
                kind = classify_response(
                    status, len(body.encode("utf-8")), self.min_body_bytes
                )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                kind = classify_exception(e)
                detail = str(e) or type(e).__name__
            except Exception as e:
                kind = classify_exception(e)
                detail = f"{type(e).__name__}: {e}"

            attempts.append(
                FetchAttempt(
                    index=index, profile=profile.name, kind=kind, status=status, detail=detail
                )
            )

            if kind is FetchErrorKind.SUCCESS:
                if index > 1:
                    logger.info(f"✅ Fetched {url} on attempt {index} ({profile.name})")
                return body

            logger.warning(
                f"Fetch attempt {index}/{self.max_attempts} for {url} failed: "
                f"{kind.value}" + (f" (HTTP {status})" if status is not None else "")
            )

            if index == self.max_attempts:
                break

            if kind is FetchErrorKind.RATE_LIMITED:
                delay = self._retry_delay(index) + self.rate_limit_extra_delay
            elif kind is FetchErrorKind.ACCESS_DENIED:
                if switched_identity:
                    break
                switched_identity = True
                profile = minimal_profile(self.user_agent)
                delay = self._retry_delay(index)
            elif kind is FetchErrorKind.PROTOCOL_OVERSIZE:
                if retried_oversize:
                    break
                retried_oversize = True
                profile = curl_profile()
                delay = 0.0
            elif kind is FetchErrorKind.NETWORK_TRANSIENT:
                delay = self._retry_delay(index)
            else:
                # The resource itself is the problem; waiting will not help
                break

            if delay > 0:
                logger.debug(f"Retrying {url} in {delay:.1f}s with {profile.name} headers")
                await self.sleep(delay)

        last = attempts[-1]
        raise error_for(last.kind, url, status=last.status, detail=last.detail)

    async def fetch_enriched(self, record: DocumentRecord) -> DocumentRecord:
        """Return a copy of ``record`` with empty body, excerpt and images filled.

        Never raises. When the page cannot be fetched or yields nothing, the
        caller's record is returned unchanged. Non-empty caller fields are
        never overwritten.
        """
        needs_content = not record.content
        needs_images = not record.images
        if not needs_content and not needs_images:
            return record

        logger.info(f"Scraping full content for: {record.title or record.url}")
        try:
            html = await self.fetch_html(record.url)
            updates = self._extract_updates(record, html, needs_content, needs_images)
        except FetchError as e:
            logger.warning(f"⚠️ Keeping original record for {record.url}: {e}")
            return record
        except Exception as e:
            logger.error(f"Unexpected error enriching {record.url}: {e}")
            return record

        if not updates:
            logger.info(f"No extractable content found for {record.url}")
            return record
        return record.model_copy(update=updates, deep=True)

    def _extract_updates(
        self,
        record: DocumentRecord,
        html: str,
        needs_content: bool,
        needs_images: bool,
    ) -> Dict[str, Any]:
        updates: Dict[str, Any] = {}

        if needs_images:
            images = extract_images(html, record.url, self.max_images)
            if images:
                updates["images"] = images

        if needs_content:
            body = extract_body(html, self.max_content_chars)
            if body:
                logger.debug(f"Extracted {len(body.text)} chars via {body.method}")
                updates["content"] = body.text
                if body.excerpt and not record.excerpt:
                    updates["excerpt"] = body.excerpt

        return updates

    async def fetch_images_only(self, record: DocumentRecord) -> DocumentRecord:
        """Fill only ``images``, leaving every text field untouched."""
        if record.images:
            return record
        try:
            html = await self.fetch_html(record.url)
            images = extract_images(html, record.url, self.max_images)
        except FetchError as e:
            logger.warning(f"⚠️ No images for {record.url}: {e}")
            return record
        except Exception as e:
            logger.error(f"Unexpected error extracting images for {record.url}: {e}")
            return record

        if not images:
            return record
        return record.model_copy(update={"images": images}, deep=True)

    async def scrape_articles(
        self, records: List[DocumentRecord], images_only: bool = False
    ) -> List[DocumentRecord]:
        """Enrich records in fixed-size batches with a pause between batches.

        Records inside one batch are fetched concurrently. The output keeps
        input order and always has one record per input.
        """
        fetch = self.fetch_images_only if images_only else self.fetch_enriched
        results: List[DocumentRecord] = []
        total_batches = (len(records) + self.batch_size - 1) // self.batch_size

        for start in range(0, len(records), self.batch_size):
            batch = records[start : start + self.batch_size]
            logger.info(
                f"📦 Processing batch {start // self.batch_size + 1}/{total_batches} "
                f"({len(batch)} articles)"
            )

            batch_results = await asyncio.gather(
                *(fetch(record) for record in batch), return_exceptions=True
            )
            for record, result in zip(batch, batch_results):
                if isinstance(result, BaseException):
                    logger.error(f"Failed to scrape {record.url}: {result}")
                    results.append(record)
                else:
                    results.append(result)

            if start + self.batch_size < len(records):
                await self.sleep(self.batch_pause)

        return results
