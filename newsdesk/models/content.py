"""Content models for document enrichment and structured output recovery."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ArticleImage(BaseModel):
    """An image attached to a document."""

    url: str = Field(..., description="Absolute image URL")
    alt: Optional[str] = Field(None, description="Alt text")
    caption: Optional[str] = Field(None, description="Caption")


class DocumentRecord(BaseModel):
    """A remote document owned by the caller and enriched by the fetcher."""

    id: Optional[str] = Field(None, description="Caller identifier")
    url: str = Field(..., description="Document URL")
    title: str = Field("", description="Document title")
    source: Optional[str] = Field(None, description="Source name")
    content: Optional[str] = Field(None, description="Body text")
    excerpt: Optional[str] = Field(None, description="Short summary")
    images: List[ArticleImage] = Field(default_factory=list, description="Images")
    published_at: Optional[datetime] = Field(None, description="Publication time")


class ParseOutcome(BaseModel):
    """Result of recovering a structured value from text.

    ``success`` implies ``value`` is set and ``failure_reason`` is empty;
    a failed outcome always keeps ``original_text`` for diagnostics.
    """

    model_config = ConfigDict(frozen=True)

    success: bool = Field(..., description="Whether a value was recovered")
    value: Any = Field(None, description="Recovered value")
    failure_reason: Optional[str] = Field(None, description="Why recovery failed")
    original_text: Optional[Any] = Field(
        None, description="Input text, kept verbatim on failure"
    )

    @model_validator(mode="after")
    def check_consistency(self) -> "ParseOutcome":
        """Enforce the success/failure field invariant."""
        if self.success and self.failure_reason is not None:
            raise ValueError("successful outcome cannot carry a failure reason")
        if not self.success and self.failure_reason is None:
            raise ValueError("failed outcome needs a failure reason")
        return self

    @classmethod
    def ok(cls, value: Any) -> "ParseOutcome":
        return cls(success=True, value=value)

    @classmethod
    def failed(cls, reason: str, original_text: Any) -> "ParseOutcome":
        return cls(success=False, failure_reason=reason, original_text=original_text)
