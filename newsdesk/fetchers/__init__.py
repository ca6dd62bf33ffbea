"""Adaptive fetching and extraction of third-party article pages."""

from .content_fetcher import ContentFetcher
from .extraction import ExtractedBody, extract_body
from .http_session import HTTPSessionManager, TransportConfig
from .images import extract_images, is_junk_image, make_absolute_url

__all__ = [
    "ContentFetcher",
    "ExtractedBody",
    "HTTPSessionManager",
    "TransportConfig",
    "extract_body",
    "extract_images",
    "is_junk_image",
    "make_absolute_url",
]
