"""Body text extraction from article HTML."""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup

try:
    from readability import Document

    READABILITY_AVAILABLE = True
except ImportError:
    Document = None
    READABILITY_AVAILABLE = False

logger = logging.getLogger(__name__)

if not READABILITY_AVAILABLE:
    logger.info("readability-lxml not installed - using selector extraction only")

# Content containers in priority order.
CONTENT_SELECTORS = [
    "article",
    '[role="main"]',
    ".post-content",
    ".entry-content",
    ".article-body",
    ".story-body",
    ".content",
    "main",
]

MIN_CONTAINER_CHARS = 200
MIN_READABILITY_CHARS = 100
EXCERPT_CHARS = 280

# Forms stay: some CMSs wrap the whole page in one.
_NOISE_TAGS = ["script", "style", "noscript", "nav", "footer", "aside", "iframe"]


@dataclass
class ExtractedBody:
    """Body text plus how it was found."""

    text: str
    method: str
    excerpt: Optional[str] = None


def _normalize_whitespace(text: str) -> str:
    text = re.sub(r"[ \t\r\f\v]+", " ", text)
    text = re.sub(r"\s*\n\s*", "\n", text)
    text = re.sub(r"\n{2,}", "\n\n", text)
    return text.strip()


def _excerpt(text: str) -> str:
    first_paragraph = text.split("\n", 1)[0]
    if len(first_paragraph) <= EXCERPT_CHARS:
        return first_paragraph
    return first_paragraph[: EXCERPT_CHARS - 3].rsplit(" ", 1)[0] + "..."


def _readability_text(html: str) -> Optional[str]:
    if Document is None:
        return None
    try:
        summary_html = Document(html).summary(html_partial=True)
    except Exception as e:
        # readability raises its own Unparseable plus assorted lxml errors
        logger.debug(f"Readability failed, falling back to selectors: {e}")
        return None
    summary = BeautifulSoup(summary_html, "html.parser")
    text = _normalize_whitespace(summary.get_text("\n"))
    return text if len(text) >= MIN_READABILITY_CHARS else None


def _selector_text(soup: BeautifulSoup) -> Optional[str]:
    for selector in CONTENT_SELECTORS:
        for element in soup.select(selector):
            text = _normalize_whitespace(element.get_text("\n"))
            if len(text) > MIN_CONTAINER_CHARS:
                logger.debug(f"Content found with selector '{selector}'")
                return text
    return None


def _meta_description(soup: BeautifulSoup) -> Optional[str]:
    for selector in ('meta[property="og:description"]', 'meta[name="description"]'):
        tag = soup.select_one(selector)
        if tag and tag.get("content", "").strip():
            return tag["content"].strip()
    return None


def extract_body(html: str, max_chars: int = 5000) -> Optional[ExtractedBody]:
    """Extract the main readable text of a page.

    Tries readability first, then the content selectors, then the meta
    description. Returns None when none of them yields text.
    """
    if not html:
        return None

    text = _readability_text(html)
    if text:
        return ExtractedBody(text=text[:max_chars], method="readability", excerpt=_excerpt(text))

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_NOISE_TAGS):
        tag.decompose()

    text = _selector_text(soup)
    if text:
        return ExtractedBody(text=text[:max_chars], method="selector")

    description = _meta_description(soup)
    if description:
        return ExtractedBody(text=description[:max_chars], method="meta_description")

    return None
