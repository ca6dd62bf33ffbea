"""HTTP session management with connection pooling."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportConfig:
    """Transport tuning applied when a session is created.

    ``max_header_size`` raises aiohttp's default 8190-byte limit on header
    lines and fields. Some sites send oversized cookie headers that would
    otherwise fail the whole response.
    """

    timeout: float = 15.0
    connect_timeout: float = 10.0
    max_header_size: int = 81920
    total_limit: int = 100
    per_host_limit: int = 10
    dns_cache_ttl: int = 300
    keepalive_timeout: float = 30.0
    max_redirects: int = 3


class HTTPSessionManager:
    """Owns one pooled aiohttp session built from a ``TransportConfig``."""

    def __init__(self, config: Optional[TransportConfig] = None):
        self.config = config or TransportConfig()
        self._session: Optional[aiohttp.ClientSession] = None
        self._lock = asyncio.Lock()

    async def get_session(self) -> aiohttp.ClientSession:
        """
        Get or create the pooled HTTP session.

        Returns:
            Configured aiohttp.ClientSession instance
        """
        if self._session is None or self._session.closed:
            async with self._lock:
                if self._session is None or self._session.closed:
                    await self._create_session()

        assert self._session is not None
        return self._session

    async def _create_session(self) -> None:
        """Create a new HTTP session from the transport config."""
        config = self.config
        connector = aiohttp.TCPConnector(
            limit=config.total_limit,
            limit_per_host=config.per_host_limit,
            ttl_dns_cache=config.dns_cache_ttl,
            use_dns_cache=True,
            force_close=False,
            keepalive_timeout=config.keepalive_timeout,
        )

        timeout = aiohttp.ClientTimeout(
            total=config.timeout,
            connect=config.connect_timeout,
        )

        # Request headers come from the fetcher's header profiles.
        self._session = aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            raise_for_status=False,  # Handle status codes manually
            auto_decompress=True,
            trust_env=True,  # Respect environment proxy settings
            max_line_size=config.max_header_size,
            max_field_size=config.max_header_size,
        )

        logger.info(
            f"HTTP session created with connection pool limits: "
            f"total={connector.limit}, per_host={connector.limit_per_host}, "
            f"max_header_size={config.max_header_size}"
        )

    async def close(self) -> None:
        """Close the HTTP session and clean up resources."""
        if self._session and not self._session.closed:
            await self._session.close()
            # Wait for connections to close
            await asyncio.sleep(0.1)
            self._session = None
            logger.info("HTTP session closed")

    async def __aenter__(self) -> "HTTPSessionManager":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
