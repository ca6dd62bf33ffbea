"""Data models for newsdesk."""

from .content import ArticleImage, DocumentRecord, ParseOutcome
from .fetch import FetchAttempt, FetchErrorKind

__all__ = [
    "ArticleImage",
    "DocumentRecord",
    "FetchAttempt",
    "FetchErrorKind",
    "ParseOutcome",
]
