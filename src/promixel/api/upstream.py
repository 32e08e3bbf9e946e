"""Client for the Retro Diffusion inference API.

:class:`RetroDiffusionClient` issues exactly one ``POST`` per call.  Failures
are raised as :class:`UpstreamError` carrying the HTTP status the gateway
should answer with and a message that is safe to show to users.  Diagnostic
detail (response bodies, credential prefix) only goes to the server log, and
only outside production.

Status mapping
--------------
========================  ======  ==========================================
Condition                 Status  Message
========================  ======  ==========================================
upstream 429              429     Credit limit reached...
upstream 401              401     Invalid API key...
upstream 403              403     Authentication failed...
other non-2xx             same    ``API error: <status>``
body is not JSON          500     Invalid response from the API
timeout                   504     The image service timed out...
connection / DNS failure  503     The image service is unavailable...
========================  ======  ==========================================

No branch retries; the caller sees each failure once.
"""

from __future__ import annotations

import logging
import random
import uuid
from typing import Any

import httpx

from promixel import __version__
from promixel.api.security import clean_api_key, mask_secret
from promixel.core.config import PromixelConfig
from promixel.core.normalizer import INVALID_RESPONSE_MESSAGE

logger = logging.getLogger(__name__)

CREDIT_LIMIT_MESSAGE = "Credit limit reached. Try again later or upgrade your plan."
INVALID_KEY_MESSAGE = "Invalid API key. Please check your configuration."
AUTH_FAILED_MESSAGE = "Authentication failed. Please verify your API key is valid and active."
TIMEOUT_MESSAGE = "The image service timed out. Please try again."
UNAVAILABLE_MESSAGE = "The image service is unavailable. Please try again later."

_STATUS_MESSAGES = {
    429: CREDIT_LIMIT_MESSAGE,
    401: INVALID_KEY_MESSAGE,
    403: AUTH_FAILED_MESSAGE,
}

MAX_SEED = 1_000_000


class UpstreamError(Exception):
    """A failed upstream call, already mapped to a caller-facing status."""

    def __init__(self, status_code: int, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.detail = detail


class RetroDiffusionClient:
    """Thin async wrapper around the inference endpoint.

    Args:
        api_key: Retro Diffusion credential (``rdpk-...``).
        endpoint: Inference URL.
        model: Upstream model identifier.
        width: Image width in pixels.
        height: Image height in pixels.
        prompt_style: Upstream style preset.
        timeout_seconds: Timeout for the whole call.
        http_client: Optional shared :class:`httpx.AsyncClient`.  When omitted
            a client is created per call.
        verbose_errors: Log upstream bodies and the credential prefix.
    """

    def __init__(
        self,
        api_key: str,
        endpoint: str,
        *,
        model: str = "RD_FLUX",
        width: int = 256,
        height: int = 256,
        prompt_style: str = "default",
        timeout_seconds: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
        verbose_errors: bool = False,
    ) -> None:
        self.api_key = clean_api_key(api_key)
        self.endpoint = endpoint
        self.model = model
        self.width = width
        self.height = height
        self.prompt_style = prompt_style
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client
        self.verbose_errors = verbose_errors

    @classmethod
    def from_config(
        cls, cfg: PromixelConfig, http_client: httpx.AsyncClient | None = None
    ) -> RetroDiffusionClient:
        return cls(
            cfg.rd_api_key or "",
            cfg.rd_api_endpoint,
            model=cfg.rd_model,
            width=cfg.image_width,
            height=cfg.image_height,
            prompt_style=cfg.prompt_style,
            timeout_seconds=cfg.upstream_timeout_seconds,
            http_client=http_client,
            verbose_errors=not cfg.is_production,
        )

    def build_payload(self, prompt: str, seed: int | None = None) -> dict[str, Any]:
        """Request body for one image with the fixed generation parameters."""
        return {
            "model": self.model,
            "width": self.width,
            "height": self.height,
            "prompt": prompt,
            "num_images": 1,
            "prompt_style": self.prompt_style,
            "seed": seed if seed is not None else random.randrange(MAX_SEED),
        }

    def build_headers(self, correlation_id: str | None = None) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-RD-Token": self.api_key,
            "User-Agent": f"Promixel/{__version__}",
            "X-Request-ID": correlation_id or str(uuid.uuid4()),
        }

    async def _post(self, client: httpx.AsyncClient, payload: dict, headers: dict) -> httpx.Response:
        return await client.post(
            self.endpoint,
            json=payload,
            headers=headers,
            timeout=httpx.Timeout(self.timeout_seconds),
        )

    async def generate(self, prompt: str, *, seed: int | None = None) -> dict[str, Any]:
        """Request one image for ``prompt`` and return the decoded JSON body.

        Raises:
            UpstreamError: For every non-2xx answer, unparsable body, timeout
                or transport failure.
        """
        payload = self.build_payload(prompt, seed)
        headers = self.build_headers()
        try:
            if self._http_client is not None:
                response = await self._post(self._http_client, payload, headers)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, payload, headers)
        except httpx.TimeoutException as e:
            logger.error(f"Upstream call timed out after {self.timeout_seconds}s")
            raise UpstreamError(504, TIMEOUT_MESSAGE, detail=str(e)) from e
        except httpx.TransportError as e:
            logger.error(f"Upstream call failed: {type(e).__name__}")
            raise UpstreamError(503, UNAVAILABLE_MESSAGE, detail=str(e)) from e

        if not response.is_success:
            self._log_error_response(response)
            message = _STATUS_MESSAGES.get(response.status_code, f"API error: {response.status_code}")
            raise UpstreamError(response.status_code, message, detail=response.text[:500])

        try:
            return response.json()
        except ValueError as e:
            logger.error("Failed to parse upstream response as JSON")
            raise UpstreamError(500, INVALID_RESPONSE_MESSAGE, detail=str(e)) from e

    def _log_error_response(self, response: httpx.Response) -> None:
        logger.error(
            f"Upstream API error: status={response.status_code} reason={response.reason_phrase}"
        )
        if self.verbose_errors:
            logger.error(
                f"Upstream API error details: body={response.text[:500]!r} "
                f"key={mask_secret(self.api_key)}"
            )
