"""Primary image extraction from article HTML."""

import logging
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple
from urllib.parse import parse_qs, urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from newsdesk.models.content import ArticleImage

logger = logging.getLogger(__name__)

# Meta sources in priority order; the first usable one wins.
META_IMAGE_SELECTORS: List[Tuple[str, str]] = [
    ('meta[property="og:image"]', "content"),
    ('meta[property="og:image:url"]', "content"),
    ('meta[name="twitter:image"]', "content"),
    ('meta[name="twitter:image:src"]', "content"),
    ('meta[property="article:image"]', "content"),
    ('link[rel="image_src"]', "href"),
]

META_ALT_SELECTORS = [
    'meta[property="og:image:alt"]',
    'meta[name="twitter:image:alt"]',
]

# Content scopes searched for <img> elements, most specific first.
CONTENT_IMAGE_SCOPES = [
    "article img",
    ".post-content img",
    ".entry-content img",
    ".content img",
    "main img",
    ".story-body img",
    ".article-body img",
    ".news-content img",
    ".body img",
    "img",
]

LAZY_SOURCE_ATTRIBUTES = ["data-src", "data-lazy-src", "data-original"]

_JUNK_PATTERN = re.compile(
    r"logo|icon|avatar|profile|1x1|pixel|spacer|blank\.gif|tracking|badge|sprite"
)
_SRCSET_DESCRIPTOR = re.compile(r"^(\d+(?:\.\d+)?)([wx])$")


@dataclass
class ImageCandidate:
    """An image source found while scanning markup."""

    raw_source: str
    url: str
    alt: str = ""


def make_absolute_url(url: str, base_url: str) -> Optional[str]:
    """Resolve ``url`` against ``base_url``; None unless the result is http(s)."""
    if not url:
        return None
    url = url.strip()
    if url.startswith("data:"):
        return None
    try:
        absolute = urljoin(base_url, url)
        parsed = urlparse(absolute)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return absolute


def iter_srcset(srcset: str) -> Iterator[Tuple[str, str]]:
    """Yield ``(url, descriptor)`` pairs from a ``srcset`` value.

    A URL runs up to the next whitespace, so image CDN paths such as
    ``/w_800,h_600,c_fill/photo.jpg`` keep their commas. A URL that ends
    in a comma has no descriptor.
    """
    length = len(srcset)
    position = 0
    while position < length:
        while position < length and (srcset[position].isspace() or srcset[position] == ","):
            position += 1
        if position >= length:
            return

        start = position
        while position < length and not srcset[position].isspace():
            position += 1
        url = srcset[start:position]

        descriptor = ""
        if url.endswith(","):
            url = url.rstrip(",")
        else:
            start = position
            while position < length and srcset[position] != ",":
                position += 1
            descriptor = srcset[start:position].strip()

        if url:
            yield url, descriptor


def pick_srcset_url(srcset: str) -> Optional[str]:
    """Pick the highest-resolution URL from a ``srcset`` value.

    Entries with a width or density descriptor are compared by it; without
    descriptors the last entry wins, as srcsets usually ascend.
    """
    best_url = None
    best_size = -1.0
    last_url = None

    for url, descriptor in iter_srcset(srcset):
        if url.startswith("data:"):
            continue
        last_url = url
        parts = descriptor.split()
        if parts:
            match = _SRCSET_DESCRIPTOR.match(parts[-1])
            if match:
                size = float(match.group(1))
                if size > best_size:
                    best_url, best_size = url, size

    return best_url or last_url


def is_junk_image(source: str, absolute_url: str) -> bool:
    """True for logos, icons, avatars and tracking pixels."""
    parsed = urlparse(absolute_url)
    filename_part = (parsed.netloc + parsed.path).lower()
    if _JUNK_PATTERN.search(source.lower()) or _JUNK_PATTERN.search(filename_part):
        return True

    query = parse_qs(parsed.query)
    for dimension in ("width", "height", "w", "h"):
        if any(value.strip() == "1" for value in query.get(dimension, [])):
            return True
    return False


def _element_source(img: Tag) -> Optional[str]:
    """Best source for an <img>: srcsets, then src, then lazy-load attributes."""
    for attribute in ("srcset", "data-srcset"):
        srcset = img.get(attribute)
        if srcset:
            picked = pick_srcset_url(srcset)
            if picked:
                return picked

    src = img.get("src")
    if src and "data:image" not in src:
        return src

    for attribute in LAZY_SOURCE_ATTRIBUTES:
        lazy = img.get(attribute)
        if lazy and "data:image" not in lazy:
            return lazy
    return None


def _meta_image(soup: BeautifulSoup, base_url: str) -> Optional[ImageCandidate]:
    for selector, attribute in META_IMAGE_SELECTORS:
        tag = soup.select_one(selector)
        value = tag.get(attribute) if tag else None
        if not value:
            continue
        absolute = make_absolute_url(value, base_url)
        if not absolute:
            continue

        alt = ""
        for alt_selector in META_ALT_SELECTORS:
            alt_tag = soup.select_one(alt_selector)
            if alt_tag and alt_tag.get("content"):
                alt = alt_tag["content"].strip()
                break
        return ImageCandidate(raw_source=value, url=absolute, alt=alt)
    return None


def _content_images(soup: BeautifulSoup, base_url: str):
    seen_elements = set()
    for selector in CONTENT_IMAGE_SCOPES:
        for img in soup.select(selector):
            if id(img) in seen_elements:
                continue
            seen_elements.add(id(img))

            source = _element_source(img)
            if not source:
                continue
            absolute = make_absolute_url(source, base_url)
            if not absolute:
                continue
            alt = (img.get("alt") or img.get("title") or "").strip()
            yield ImageCandidate(raw_source=source, url=absolute, alt=alt)


def extract_images(html: str, base_url: str, max_images: int = 3) -> List[ArticleImage]:
    """Extract up to ``max_images`` article images from ``html``.

    The first usable meta image (og:image and friends) leads, followed by
    in-content images. URLs are absolute, deduplicated and junk-filtered.
    """
    if not html or max_images <= 0:
        return []

    soup = BeautifulSoup(html, "html.parser")
    images: List[ArticleImage] = []
    seen_urls = set()

    def promote(candidate: Optional[ImageCandidate]) -> None:
        if candidate is None or candidate.url in seen_urls:
            return
        if is_junk_image(candidate.raw_source, candidate.url):
            logger.debug(f"Skipping junk image: {candidate.url}")
            return
        seen_urls.add(candidate.url)
        alt = candidate.alt or None
        images.append(ArticleImage(url=candidate.url, alt=alt, caption=alt))

    promote(_meta_image(soup, base_url))
    for candidate in _content_images(soup, base_url):
        if len(images) >= max_images:
            break
        promote(candidate)

    return images[:max_images]
