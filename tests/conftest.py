import random

import pytest
from unittest.mock import AsyncMock


@pytest.fixture
def rng():
    """Seeded random source so jitter and User-Agent choice are repeatable."""
    return random.Random(1234)


@pytest.fixture
def fake_sleep():
    """Async stand-in for asyncio.sleep that records requested delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def mock_settings(monkeypatch):
    """Settings with fast fetch delays for testing."""
    from newsdesk.models.settings import Settings

    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    return Settings(
        openrouter_api_key="test_key",
        fetch_max_attempts=3,
        fetch_base_delay=1.0,
        fetch_max_delay=8.0,
        rate_limit_extra_delay=5.0,
        min_body_bytes=200,
        scrape_batch_size=2,
        scrape_batch_pause=0.5,
    )
