"""Server-side gatekeeper for ``POST /api/generate``.

:class:`GenerationGateway` owns every piece of per-process state the
endpoint needs (rate limit records, processed request digests) and runs each
inbound request through a fixed sequence of checks.  The first failing check
ends the request; nothing is retried.

Request lifecycle
-----------------
::

    received
      -> origin-checked      403  origin not allow-listed
      -> parsed              400  body is not a JSON object
      -> dedup-checked       429  same request id + prompt within the window
      -> validated           400  missing / too long / suspicious prompt,
                                  or nothing left after sanitising
      -> rate-limit-checked  429  client over the window ceiling (Retry-After)
      -> configured          500  no upstream credential
      -> upstream-called     mapped upstream status (401/403/429/5xx/503/504)
      -> normalised          500  unrecognised upstream body
      -> responded           200

Every response, success or failure, carries :data:`SECURITY_HEADERS`, and
every failure body has the same ``{success, message, imageUrl}`` shape as a
success so the UI always has something to render.

Usage
-----
::

    gateway = GenerationGateway(config)
    response = await gateway.handle_generate(
        body=b'{"prompt": "pixel cat"}',
        origin=None,
        client_ip="203.0.113.7",
        request_id=None,
    )
    response.status_code, response.payload["imageUrl"]
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from promixel.api.dedup import DuplicateTracker
from promixel.api.rate_limit import RateLimiter
from promixel.api.security import (
    SECURITY_HEADERS,
    PromptValidationError,
    is_origin_allowed,
    sanitize_prompt,
    validate_prompt,
)
from promixel.api.upstream import RetroDiffusionClient, UpstreamError
from promixel.core.config import PromixelConfig
from promixel.core.models import GenerationResult
from promixel.core.normalizer import INVALID_RESPONSE_MESSAGE, normalize

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Pixel art generated successfully!"
UNAUTHORIZED_ORIGIN_MESSAGE = "Unauthorized origin"
INVALID_FORMAT_MESSAGE = "Invalid request format"
MISSING_PROMPT_MESSAGE = "Missing prompt"
DUPLICATE_MESSAGE = "Duplicate request. Please wait before submitting the same prompt again."
RATE_LIMITED_MESSAGE = "Rate limit exceeded. Please try again later."
NOT_CONFIGURED_MESSAGE = "API key not configured on server. Please contact support."
GENERIC_ERROR_MESSAGE = "An error occurred while processing your request"


@dataclass
class GatewayResponse:
    """HTTP-agnostic response produced by the gateway."""

    status_code: int
    payload: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def result(self) -> GenerationResult:
        return GenerationResult.from_dict(self.payload)


class GenerationGateway:
    """Validation, dedup and rate limiting in front of the upstream API.

    Args:
        config: Application configuration.
        upstream: Upstream client; built from ``config`` when omitted and a
            credential is configured.
        rate_limiter: Limiter instance; built from ``config`` when omitted.
        duplicates: Duplicate tracker; built from ``config`` when omitted.
        clock: Time source, shared with the stores built here.
    """

    def __init__(
        self,
        config: PromixelConfig,
        *,
        upstream: RetroDiffusionClient | None = None,
        rate_limiter: RateLimiter | None = None,
        duplicates: DuplicateTracker | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self._clock = clock
        if upstream is None and config.is_upstream_configured:
            upstream = RetroDiffusionClient.from_config(config)
        self.upstream = upstream
        if rate_limiter is None:
            rate_limiter = RateLimiter(
                max_requests=config.rate_limit_max_requests,
                window_seconds=config.rate_limit_window_seconds,
                block_seconds=config.rate_limit_block_seconds,
                max_consecutive_failures=config.max_consecutive_failures,
                clock=clock,
            )
        self.rate_limiter = rate_limiter
        if duplicates is None:
            duplicates = DuplicateTracker(window_seconds=config.dedup_window_seconds, clock=clock)
        self.duplicates = duplicates
        self._last_sweep = clock()

    # ------------------------------------------------------------------
    # Response helpers
    # ------------------------------------------------------------------

    def _respond(
        self,
        status_code: int,
        result: GenerationResult,
        extra_headers: dict[str, str] | None = None,
    ) -> GatewayResponse:
        headers = dict(SECURITY_HEADERS)
        if extra_headers:
            headers.update(extra_headers)
        return GatewayResponse(status_code=status_code, payload=result.to_dict(), headers=headers)

    def _fail(
        self,
        status_code: int,
        message: str,
        *,
        prompt: str = "",
        extra_headers: dict[str, str] | None = None,
    ) -> GatewayResponse:
        return self._respond(
            status_code, GenerationResult.failure(message, prompt=prompt), extra_headers
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def maybe_sweep(self) -> None:
        """Sweep idle rate limit and dedup entries at most once per interval."""
        now = self._clock()
        if now - self._last_sweep < self.config.sweep_interval_seconds:
            return
        self._last_sweep = now
        swept = self.rate_limiter.sweep() + self.duplicates.sweep()
        if swept:
            logger.debug(f"Swept {swept} stale gateway entries")

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def handle_generate(
        self,
        *,
        body: bytes,
        origin: str | None,
        client_ip: str,
        request_id: str | None,
        path: str = "/api/generate",
    ) -> GatewayResponse:
        """Run one generation request through every check and the upstream call."""
        try:
            return await self._handle(
                body=body, origin=origin, client_ip=client_ip, request_id=request_id, path=path
            )
        except Exception as e:
            logger.error(f"Error generating pixel art: {e}", exc_info=True)
            message = GENERIC_ERROR_MESSAGE
            if not self.config.is_production:
                message = f"{GENERIC_ERROR_MESSAGE}: {e}"
            return self._fail(500, message)

    async def _handle(
        self,
        *,
        body: bytes,
        origin: str | None,
        client_ip: str,
        request_id: str | None,
        path: str,
    ) -> GatewayResponse:
        self.maybe_sweep()

        if not is_origin_allowed(origin, self.config.allowed_origins):
            logger.warning(f"Blocked request from unauthorized origin: {origin}")
            return self._fail(403, UNAUTHORIZED_ORIGIN_MESSAGE)

        try:
            data = json.loads(body or b"")
        except (ValueError, UnicodeDecodeError):
            return self._fail(400, INVALID_FORMAT_MESSAGE)
        if not isinstance(data, dict):
            return self._fail(400, INVALID_FORMAT_MESSAGE)

        prompt = data.get("prompt")
        raw_prompt = prompt if isinstance(prompt, str) else ""
        body_request_id = data.get("requestId")
        request_id = request_id or (
            body_request_id if isinstance(body_request_id, str) and body_request_id else None
        ) or str(uuid.uuid4())

        if self.duplicates.check_and_mark(request_id, raw_prompt):
            logger.info(f"Duplicate request {request_id} from {client_ip}")
            return self._fail(429, DUPLICATE_MESSAGE, prompt=raw_prompt)

        try:
            validate_prompt(prompt, self.config.max_prompt_length)
        except PromptValidationError as e:
            return self._fail(400, str(e))

        sanitized = sanitize_prompt(raw_prompt, self.config.max_prompt_length)
        if not sanitized:
            # Markup or quotes only: nothing left to send upstream.
            return self._fail(400, MISSING_PROMPT_MESSAGE)

        rate_key = f"{client_ip}:{path}"
        decision = self.rate_limiter.check(rate_key)
        if not decision.allowed:
            return self._fail(429, RATE_LIMITED_MESSAGE, extra_headers=decision.headers())
        rate_headers = decision.headers()

        if self.upstream is None:
            logger.error("Missing API key for Retro Diffusion")
            return self._fail(500, NOT_CONFIGURED_MESSAGE, extra_headers=rate_headers)

        logger.info(
            f"Generation request {request_id} from {client_ip} - prompt length: {len(sanitized)}"
        )

        try:
            upstream_body = await self.upstream.generate(sanitized)
        except UpstreamError as e:
            self.rate_limiter.record_failure(rate_key)
            return self._fail(e.status_code, e.message, prompt=sanitized, extra_headers=rate_headers)

        result = normalize(upstream_body, prompt=sanitized)
        if not result.success:
            self.rate_limiter.record_failure(rate_key)
            return self._fail(
                500, INVALID_RESPONSE_MESSAGE, prompt=sanitized, extra_headers=rate_headers
            )

        self.rate_limiter.record_success(rate_key)
        result = GenerationResult(
            success=True,
            image_url=result.image_url,
            message=SUCCESS_MESSAGE,
            prompt=sanitized,
            remaining_credits=result.remaining_credits,
        )
        return self._respond(200, result, rate_headers)
