"""Classification of fetch outcomes into the retry state machine's kinds.

Everything transport-specific lives here: the fetch loop only ever sees a
``FetchErrorKind``. Supporting another HTTP library means teaching these two
functions its exception types.
"""

import asyncio
from typing import Dict, Optional, Type

import aiohttp
from aiohttp import http_exceptions

from newsdesk.core.errors import (
    AccessDenied,
    FetchError,
    NetworkTransient,
    ProtocolOversize,
    RateLimited,
    ResourceError,
)
from newsdesk.models.fetch import FetchErrorKind

# Substrings aiohttp uses when a header line or field overflows the parser.
_OVERSIZE_MARKERS = (
    "header value is too long",
    "line is too long",
    "got more than",
    "header overflow",
    "header_overflow",
    "too many headers",
)

ERROR_FOR_KIND: Dict[FetchErrorKind, Type[FetchError]] = {
    FetchErrorKind.RATE_LIMITED: RateLimited,
    FetchErrorKind.ACCESS_DENIED: AccessDenied,
    FetchErrorKind.PROTOCOL_OVERSIZE: ProtocolOversize,
    FetchErrorKind.NETWORK_TRANSIENT: NetworkTransient,
    FetchErrorKind.RESOURCE_ERROR: ResourceError,
    FetchErrorKind.THIN_CONTENT: ResourceError,
}


def classify_response(status: int, body_size: int, min_body_bytes: int) -> FetchErrorKind:
    """Classify a completed HTTP response by status and body size."""
    if status == 429:
        return FetchErrorKind.RATE_LIMITED
    if status in (401, 403):
        return FetchErrorKind.ACCESS_DENIED
    if status >= 400:
        return FetchErrorKind.RESOURCE_ERROR
    if body_size < min_body_bytes:
        # Block and challenge pages are usually tiny
        return FetchErrorKind.THIN_CONTENT
    return FetchErrorKind.SUCCESS


def _looks_oversize(error: BaseException) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _OVERSIZE_MARKERS)


def classify_exception(error: BaseException) -> FetchErrorKind:
    """Classify an exception raised while issuing a request."""
    if isinstance(error, http_exceptions.LineTooLong):
        return FetchErrorKind.PROTOCOL_OVERSIZE
    if isinstance(error, http_exceptions.HttpProcessingError):
        if _looks_oversize(error):
            return FetchErrorKind.PROTOCOL_OVERSIZE
        return FetchErrorKind.RESOURCE_ERROR
    if isinstance(error, aiohttp.ClientResponseError):
        if _looks_oversize(error):
            return FetchErrorKind.PROTOCOL_OVERSIZE
        if error.status and error.status >= 400:
            return classify_response(error.status, 0, 0)
        return FetchErrorKind.RESOURCE_ERROR
    if isinstance(error, (aiohttp.ClientConnectionError, asyncio.TimeoutError)):
        return FetchErrorKind.NETWORK_TRANSIENT
    if isinstance(error, (ConnectionError, OSError)):
        return FetchErrorKind.NETWORK_TRANSIENT
    if isinstance(error, (aiohttp.InvalidURL, ValueError)):
        return FetchErrorKind.RESOURCE_ERROR
    return FetchErrorKind.RESOURCE_ERROR


def error_for(
    kind: FetchErrorKind,
    url: str,
    status: Optional[int] = None,
    detail: Optional[str] = None,
) -> FetchError:
    """Build the typed exception for a terminal fetch outcome."""
    error_cls = ERROR_FOR_KIND.get(kind, ResourceError)
    message = f"{kind.value} fetching {url}"
    if status is not None:
        message += f" (HTTP {status})"
    if detail:
        message += f": {detail}"
    return error_cls(message, url=url, status=status)
