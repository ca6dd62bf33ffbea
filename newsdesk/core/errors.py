"""Exception hierarchy shared by the recovery, retry and fetch layers."""

from typing import Any, Optional


class NewsdeskError(Exception):
    """Base class for newsdesk errors."""


class ParseFailure(NewsdeskError):
    """No structured value could be recovered from the text."""

    def __init__(self, reason: str, original_text: Any = None):
        super().__init__(reason)
        self.reason = reason
        self.original_text = original_text


class ValidationFailure(NewsdeskError):
    """A result parsed fine but the caller's predicate rejected it."""

    def __init__(self, message: str = "Generated output failed validation", value: Any = None):
        super().__init__(message)
        self.value = value


class FetchError(NewsdeskError):
    """Base class for classified fetch failures."""

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class NetworkTransient(FetchError):
    """Connection reset, DNS failure or timeout."""


class RateLimited(FetchError):
    """HTTP 429."""


class AccessDenied(FetchError):
    """HTTP 401 or 403."""


class ProtocolOversize(FetchError):
    """Response headers exceeded the transport's size limit."""


class ResourceError(FetchError):
    """Any other 4xx/5xx, or a 2xx body too thin to be real content."""


class CompletionError(NewsdeskError):
    """The text-generation service returned no usable completion."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
