"""Pydantic request and response models for the Promixel API.

``POST /api/generate`` parses its body by hand so that malformed JSON is
answered with the uniform ``{success, message}`` shape and a 400 rather than
FastAPI's 422.  The models below document the wire format in the OpenAPI
schema and are used by the UI client to build request bodies.

Models
------
GenerateRequest
    Payload for ``POST /api/generate``.
GenerateResponse
    Body returned by ``POST /api/generate`` for success and failure alike.
HealthResponse
    Body returned by ``GET /api/health``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GenerateRequest(BaseModel):
    """Request body for the ``POST /api/generate`` endpoint.

    Attributes:
        prompt: Text description of the image (1-1000 characters).
        request_id: Client-generated opaque id used for duplicate
            suppression.  Also accepted as the ``X-Request-ID`` header.
    """

    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(..., description="Text prompt for the pixel-art image.")
    request_id: str | None = Field(
        default=None,
        alias="requestId",
        description="Client-generated request id for duplicate suppression.",
    )


class GenerateResponse(BaseModel):
    """Response body for ``POST /api/generate``.

    Attributes:
        success: Whether an image was generated.
        imageUrl: ``data:image/png;base64,...`` URL, remote URL, or a
            placeholder image on failure.
        message: Human-readable status or error.
        prompt: Sanitised prompt that was sent upstream.
        remainingCredits: Upstream credit balance, when reported.
    """

    success: bool
    imageUrl: str = ""
    message: str | None = None
    prompt: str | None = None
    remainingCredits: int | None = None


class HealthResponse(BaseModel):
    """Response body for ``GET /api/health``."""

    status: str = Field(default="ok")
    version: str
    configured: bool = Field(..., description="Whether an upstream credential is set.")
    environment: str
