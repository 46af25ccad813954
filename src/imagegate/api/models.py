"""Pydantic models for the JSON error envelopes of the Imagegate API.

The success response is a raw ``image/png`` body, so only failures have a
JSON shape.

Models
------
ErrorResponse
    Body of an HTTP 400 response (request rejected before the backend call).
GenerationFailure
    Body of an HTTP 500 response (the backend call failed).
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Body of a rejected request.

    Attributes:
        error: Human-readable reason, shown to the user as-is.
    """

    error: str = Field(
        ...,
        description="Human-readable reason the request was rejected.",
    )


class GenerationFailure(ErrorResponse):
    """Body returned when the backend fails to produce an image.

    Attributes:
        error: Always ``"Failed to generate image"``.
        details: Stringified cause, for diagnostics.
    """

    details: str = Field(
        ...,
        description="Stringified backend error.",
    )
