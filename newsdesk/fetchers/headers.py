"""Request header profiles used when fetching third-party pages."""

import random
from dataclasses import dataclass, field
from typing import Dict, Optional

BROWSER_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_2) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

CURL_USER_AGENT = "curl/7.68.0"


@dataclass(frozen=True)
class HeaderProfile:
    """A named set of request headers."""

    name: str
    headers: Dict[str, str] = field(default_factory=dict)


def browser_profile(rng: Optional[random.Random] = None) -> HeaderProfile:
    """Plausible desktop browser headers with a randomly chosen User-Agent."""
    rng = rng or random.Random()
    return HeaderProfile(
        name="browser",
        headers={
            "User-Agent": rng.choice(BROWSER_USER_AGENTS),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
            "Accept-Encoding": "gzip, deflate",
            "DNT": "1",
            "Connection": "keep-alive",
            "Upgrade-Insecure-Requests": "1",
        },
    )


def minimal_profile(user_agent: str = "Newsdesk-Bot/1.0") -> HeaderProfile:
    """An honest bot identity, tried after a browser identity is refused."""
    return HeaderProfile(
        name="minimal",
        headers={
            "User-Agent": user_agent,
            "Accept": "text/html,*/*;q=0.8",
        },
    )


def curl_profile() -> HeaderProfile:
    """Bare headers for servers that choke on verbose browser requests."""
    return HeaderProfile(name="curl", headers={"User-Agent": CURL_USER_AGENT})
