"""Client-side request guard.

The guard sits between the terminal UI and the Promixel API and stops
redundant or abusive calls before they reach the network:

1. empty prompts are rejected locally;
2. a cached, unexpired result for the same normalized prompt is returned
   directly;
3. a prompt that is already in flight is not submitted twice;
4. requests closer together than ``min_request_interval_seconds`` are
   rejected with the remaining wait;
5. once ``session_quota`` requests have been sent the session is refused.

Every path returns a :class:`~promixel.core.models.GenerationResult`; no
expected failure raises.  Timing state lives in a :class:`SessionStore` that
the UI persists in browser storage, so reloading the page does not reset the
cooldown or the quota.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from promixel.api.models import GenerateRequest
from promixel.core.cache import ResultCache
from promixel.core.config import PromixelConfig
from promixel.core.models import FALLBACK_IMAGE_URL, GenerationRequest, GenerationResult
from promixel.core.pending import AlreadyPendingError, PendingSet

logger = logging.getLogger(__name__)

EMPTY_PROMPT_MESSAGE = "Please enter a prompt to generate pixel art"
PENDING_MESSAGE = "A request for this prompt is already in progress. Please wait."
SESSION_LIMIT_MESSAGE = (
    "Session limit reached ({quota} generations). Please come back later."
)
NETWORK_ERROR_MESSAGE = "Failed to generate pixel art. Please try again."


def cooldown_message(seconds: int) -> str:
    unit = "second" if seconds == 1 else "seconds"
    return f"Please wait {seconds} {unit} before generating again"


@dataclass
class SessionStore:
    """Per-session guard state that survives a page reload.

    Attributes:
        last_request_at: Epoch seconds of the last request sent, or None.
        request_count: Requests sent during this session.
        cache: Cached result snapshot (see :meth:`ResultCache.snapshot`).
    """

    last_request_at: float | None = None
    request_count: int = 0
    cache: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_request_at": self.last_request_at,
            "request_count": self.request_count,
            "cache": list(self.cache),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SessionStore:
        """Rebuild from :meth:`to_dict` output, tolerating missing or bad fields."""
        if not isinstance(data, dict):
            return cls()
        last = data.get("last_request_at")
        count = data.get("request_count")
        cache = data.get("cache")
        return cls(
            last_request_at=float(last) if isinstance(last, (int, float)) else None,
            request_count=count if isinstance(count, int) and count >= 0 else 0,
            cache=cache if isinstance(cache, list) else [],
        )


class RequestGuard:
    """Throttling, caching and de-duplication in front of ``POST /api/generate``.

    Args:
        config: Application configuration (cooldown, quota, cache policy).
        http_client: Client whose base URL points at the Promixel API.
        session: Restored session state; a fresh one when omitted.
        cache: Result cache; built from ``config`` when omitted.
        pending: Shared pending set; a private one when omitted.
        clock: Time source returning seconds.
    """

    def __init__(
        self,
        config: PromixelConfig,
        *,
        http_client: httpx.Client,
        session: SessionStore | None = None,
        cache: ResultCache | None = None,
        pending: PendingSet | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.http_client = http_client
        self.session = session if session is not None else SessionStore()
        self._clock = clock
        if cache is None:
            cache = ResultCache(
                ttl_seconds=config.cache_ttl_seconds,
                max_entries=config.cache_max_entries,
                clock=clock,
            )
        self.cache = cache
        if self.session.cache:
            self.cache.restore(self.session.cache)
        self.pending = pending if pending is not None else PendingSet()

    def cooldown_remaining(self) -> float:
        """Seconds left before another request may be sent (0 when ready)."""
        if self.session.last_request_at is None:
            return 0.0
        elapsed = self._clock() - self.session.last_request_at
        return max(0.0, self.config.min_request_interval_seconds - elapsed)

    @property
    def quota_remaining(self) -> int:
        return max(0, self.config.session_quota - self.session.request_count)

    def request_generation(self, prompt: str) -> GenerationResult:
        """Return a result for ``prompt``, from cache or from the API.

        Args:
            prompt: Prompt as typed by the user.  The original text is sent
                upstream; the normalized form is only used as a key.

        Returns:
            The generation result.  Local rejections (empty, pending,
            cooldown, quota) never touch the network.
        """
        if not prompt or not prompt.strip():
            return GenerationResult.failure(EMPTY_PROMPT_MESSAGE)

        request = GenerationRequest(prompt, submitted_at=self._clock())
        key = request.normalized_prompt

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for prompt of length {len(key)}")
            return cached

        if self.pending.is_pending(key):
            return GenerationResult.failure(PENDING_MESSAGE, prompt=prompt)

        remaining = self.cooldown_remaining()
        if remaining > 0:
            return GenerationResult.failure(cooldown_message(math.ceil(remaining)), prompt=prompt)

        if self.session.request_count >= self.config.session_quota:
            return GenerationResult.failure(
                SESSION_LIMIT_MESSAGE.format(quota=self.config.session_quota), prompt=prompt
            )

        try:
            with self.pending.hold(key):
                self.session.last_request_at = request.submitted_at
                self.session.request_count += 1
                result = self._send(request)
        except AlreadyPendingError:
            # Lost the race against a concurrent submission of the same prompt.
            return GenerationResult.failure(PENDING_MESSAGE, prompt=prompt)

        if result.success:
            self.cache.put(key, result)
            self.session.cache = self.cache.snapshot()
        return result

    def _send(self, request: GenerationRequest) -> GenerationResult:
        prompt = request.prompt
        body = GenerateRequest(prompt=prompt, request_id=request.request_id).model_dump(
            by_alias=True
        )
        try:
            response = self.http_client.post(
                "/api/generate",
                json=body,
                headers={"X-Request-ID": request.request_id},
                timeout=self.config.client_timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.error(f"Error generating pixel art: {e}")
            return GenerationResult.failure(NETWORK_ERROR_MESSAGE, prompt=prompt)

        try:
            data = response.json()
        except ValueError:
            logger.error(f"Non-JSON response from API (status {response.status_code})")
            return GenerationResult.failure(
                f"Error: {response.status_code} {response.reason_phrase}", prompt=prompt
            )

        if not isinstance(data, dict):
            return GenerationResult.failure(NETWORK_ERROR_MESSAGE, prompt=prompt)

        if not response.is_success or not data.get("success"):
            message = data.get("message") or f"Error: {response.status_code}"
            logger.info(f"Generation failed with status {response.status_code}: {message}")
            return GenerationResult.failure(
                message, prompt=prompt, image_url=data.get("imageUrl") or FALLBACK_IMAGE_URL
            )

        result = GenerationResult.from_dict(data)
        if not result.image_url:
            return GenerationResult.failure(
                "API response did not include an image URL", prompt=prompt
            )
        return result
