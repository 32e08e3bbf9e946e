"""Data models shared by the gateway and the client request guard."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any

# 1x1 dark PNG rendered whenever a request fails, so the UI always has an image.
FALLBACK_IMAGE_URL = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


def normalize_prompt(prompt: str) -> str:
    """Return the cache/pending key for a prompt (trimmed and lowercased)."""
    return (prompt or "").strip().lower()


@dataclass
class GenerationRequest:
    """One user submission.

    The original prompt is kept for display and for the outbound payload;
    ``normalized_prompt`` is only used as a key.
    """

    prompt: str
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    submitted_at: float = field(default_factory=time.time)

    @property
    def normalized_prompt(self) -> str:
        return normalize_prompt(self.prompt)


@dataclass(frozen=True)
class GenerationResult:
    """Uniform outcome of a generation attempt, success or failure.

    Attributes:
        success: Whether an image was produced.
        image_url: Remote URL or ``data:image/png;base64,...`` URL.  Failed
            results carry a placeholder image.
        message: Optional human-readable status or error.
        prompt: Prompt the result belongs to.
        remaining_credits: Upstream credit balance, when reported.
    """

    success: bool
    image_url: str = ""
    message: str | None = None
    prompt: str = ""
    remaining_credits: int | None = None

    @classmethod
    def failure(
        cls, message: str, *, prompt: str = "", image_url: str = FALLBACK_IMAGE_URL
    ) -> GenerationResult:
        return cls(success=False, image_url=image_url, message=message, prompt=prompt)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the JSON wire shape used by ``POST /api/generate``."""
        data: dict[str, Any] = {"success": self.success, "imageUrl": self.image_url}
        if self.message is not None:
            data["message"] = self.message
        if self.prompt:
            data["prompt"] = self.prompt
        if self.remaining_credits is not None:
            data["remainingCredits"] = self.remaining_credits
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GenerationResult:
        """Build a result from the wire shape produced by :meth:`to_dict`."""
        credits = data.get("remainingCredits")
        return cls(
            success=bool(data.get("success")),
            image_url=data.get("imageUrl") or "",
            message=data.get("message"),
            prompt=data.get("prompt") or "",
            remaining_credits=credits if isinstance(credits, int) else None,
        )


@dataclass
class CacheEntry:
    """A cached result and the time it was stored."""

    result: GenerationResult
    timestamp: float


@dataclass
class RateLimitRecord:
    """Per-client sliding window counters kept by the gateway."""

    request_count: int = 0
    window_start: float = 0.0
    blocked: bool = False
    blocked_until: float = 0.0
    consecutive_failures: int = 0
    last_seen: float = 0.0

    def __repr__(self) -> str:
        return (
            f"RateLimitRecord(count={self.request_count}, "
            f"blocked={self.blocked}, failures={self.consecutive_failures})"
        )
