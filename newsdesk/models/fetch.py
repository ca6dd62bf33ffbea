"""Data models for the adaptive content fetcher."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FetchErrorKind(str, Enum):
    """Classified outcome of a single fetch attempt."""

    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    ACCESS_DENIED = "access_denied"
    PROTOCOL_OVERSIZE = "protocol_oversize"
    NETWORK_TRANSIENT = "network_transient"
    RESOURCE_ERROR = "resource_error"
    THIN_CONTENT = "thin_content"


class FetchAttempt(BaseModel):
    """State of one try inside a single document fetch."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=1, description="1-based attempt number")
    profile: str = Field(..., description="Header profile name used")
    kind: Optional[FetchErrorKind] = Field(None, description="Classified outcome")
    status: Optional[int] = Field(None, description="HTTP status if any")
    detail: Optional[str] = Field(None, description="Error detail")
