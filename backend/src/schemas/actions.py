"""Pydantic schemas for server action requests and responses."""
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")

AUDIENCE_SUGGESTION_COUNT = 4


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys to match the browser client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AudienceSuggestionsInput(CamelModel):
    """Brand context used to suggest target audiences."""

    brand_name: str = Field(..., min_length=1, max_length=100)
    elevator_pitch: str = Field(..., min_length=1, max_length=500)

    @field_validator("brand_name", "elevator_pitch")
    @classmethod
    def strip_whitespace(cls, value: str) -> str:
        """Reject whitespace-only values."""
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class AudienceSuggestionsOutput(CamelModel):
    """Exactly four short audience suggestions."""

    suggestions: list[str] = Field(
        ...,
        min_length=AUDIENCE_SUGGESTION_COUNT,
        max_length=AUDIENCE_SUGGESTION_COUNT,
        description="Exactly 4 concise target audience suggestions (2-4 words each)",
    )

    @field_validator("suggestions")
    @classmethod
    def clean_suggestions(cls, value: list[str]) -> list[str]:
        """Strip each suggestion and reject empty ones."""
        cleaned = [item.strip() for item in value]
        if any(not item for item in cleaned):
            raise ValueError("suggestions must not be blank")
        return cleaned


class VectoriseLogoInput(CamelModel):
    """The raster logo to convert to SVG."""

    logo_url: str = Field(
        ...,
        min_length=1,
        description="The URL of the logo to be vectorized.",
    )


class VectoriseLogoOutput(CamelModel):
    """The vectorised logo as an SVG data URI."""

    vector_logo_url: str
    credits_remaining: int | None = None


class ActionResult(CamelModel, Generic[T]):
    """
    Envelope returned by every server action.

    Action failures are reported with ``success=False`` and a user-safe message
    instead of an HTTP error status, so the client can fall back gracefully.
    """

    success: bool
    data: T | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: T) -> "ActionResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ActionResult[T]":
        return cls(success=False, error=error)
