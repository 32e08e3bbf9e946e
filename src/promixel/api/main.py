"""Promixel - FastAPI Application.

This module defines the FastAPI application factory, the REST routes, and the
``main()`` CLI function that launches the uvicorn server.

Architecture
------------
- **Configuration** comes from :class:`~promixel.core.config.PromixelConfig`.
- **Generation** is delegated to a
  :class:`~promixel.api.gateway.GenerationGateway` stored on ``app.state``;
  each app instance owns its own gateway and therefore its own rate limit
  and dedup stores.
- **Security headers** are attached to every response by an HTTP
  middleware, including errors raised by FastAPI itself.
- The upstream credential never leaves the server.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
POST      ``/api/generate``             Generate one pixel-art image
GET       ``/api/proxy-image``          Fetch an allow-listed remote image
GET       ``/api/health``               Liveness and configuration status
========  ============================  ====================================

Usage
-----
CLI (installed entry point)::

    promixel-api

Direct invocation::

    python -m promixel.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from promixel import __version__
from promixel.api.gateway import GenerationGateway
from promixel.api.models import GenerateRequest, GenerateResponse, HealthResponse
from promixel.api.security import SECURITY_HEADERS, client_ip
from promixel.core.config import PromixelConfig, config

logger = logging.getLogger(__name__)

# Hosts the image proxy may fetch from (exact match or any subdomain).
PROXY_ALLOWED_DOMAINS = (
    "api.retrodiffusion.ai",
    "da8ztllw6by0f.cloudfront.net",
    "cloudfront.net",
)


def is_proxy_domain_allowed(hostname: str | None) -> bool:
    if not hostname:
        return False
    return any(
        hostname == domain or hostname.endswith("." + domain) for domain in PROXY_ALLOWED_DOMAINS
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Log the effective configuration on startup.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    cfg: PromixelConfig = app.state.config
    if not cfg.is_upstream_configured:
        logger.warning("No Retro Diffusion API key configured; /api/generate will return 500.")
    logger.info(
        f"Promixel API started (environment={cfg.environment}, "
        f"rate limit={cfg.rate_limit_max_requests}/{cfg.rate_limit_window_seconds}s)."
    )

    yield

    logger.info("Promixel API shutting down.")


def create_app(
    app_config: PromixelConfig | None = None,
    *,
    gateway: GenerationGateway | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build a FastAPI application with its own gateway.

    Args:
        app_config: Configuration to use; defaults to the global ``config``.
        gateway: Pre-built gateway (tests inject one with a fake upstream).
        http_client: Client used by the image proxy; a client is created per
            request when omitted.

    Returns:
        The configured FastAPI application.
    """
    cfg = app_config if app_config is not None else config

    app = FastAPI(
        title="Promixel",
        description="Pixel-art generation gateway for the Retro Diffusion API.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.gateway = gateway if gateway is not None else GenerationGateway(cfg)
    app.state.http_client = http_client

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    @app.post(
        "/api/generate",
        response_model=GenerateResponse,
        openapi_extra={
            "requestBody": {
                "content": {"application/json": {"schema": GenerateRequest.model_json_schema()}},
                "required": True,
            }
        },
    )
    async def generate(request: Request) -> JSONResponse:
        """Generate a pixel-art image for the submitted prompt.

        The body is read raw so that every failure, malformed JSON included,
        is answered in the same ``{success, message, imageUrl}`` shape.

        Returns:
            JSON response with the gateway's status code and headers.
        """
        gw: GenerationGateway = request.app.state.gateway
        peer = request.client.host if request.client else None
        result = await gw.handle_generate(
            body=await request.body(),
            origin=request.headers.get("origin"),
            client_ip=client_ip(request.headers, peer),
            request_id=request.headers.get("x-request-id"),
            path=request.url.path,
        )
        return JSONResponse(
            content=result.payload, status_code=result.status_code, headers=result.headers
        )

    @app.get("/api/proxy-image")
    async def proxy_image(request: Request, url: str | None = None) -> Response:
        """Fetch a remote image from an allow-listed host for download.

        Args:
            url: Absolute URL of the image.

        Returns:
            The image bytes with a day-long public cache header, or a JSON
            error (400 missing url, 403 host not allowed, upstream status on
            fetch failure, 500 otherwise).
        """
        if not url:
            return JSONResponse({"error": "Missing URL parameter"}, status_code=400)

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return JSONResponse({"error": "Invalid URL"}, status_code=400)
        if not is_proxy_domain_allowed(parsed.hostname):
            return JSONResponse({"error": "Domain not allowed"}, status_code=403)

        shared: httpx.AsyncClient | None = request.app.state.http_client
        try:
            if shared is not None:
                upstream = await shared.get(url)
            else:
                async with httpx.AsyncClient(timeout=cfg.upstream_timeout_seconds) as client:
                    upstream = await client.get(url)
        except httpx.HTTPError as e:
            logger.error(f"Error proxying image: {e}")
            return JSONResponse({"error": "Failed to proxy image"}, status_code=500)

        if not upstream.is_success:
            return JSONResponse(
                {"error": f"Failed to fetch image: {upstream.status_code} {upstream.reason_phrase}"},
                status_code=upstream.status_code,
            )

        return Response(
            content=upstream.content,
            media_type=upstream.headers.get("content-type", "image/png"),
            headers={"Cache-Control": "public, max-age=86400"},
        )

    @app.get("/api/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Report liveness, version and whether the upstream is configured."""
        return HealthResponse(
            version=__version__,
            configured=cfg.is_upstream_configured,
            environment=cfg.environment,
        )

    return app


app = create_app()


def main() -> None:
    """Launch the uvicorn ASGI server.

    Host and port come from ``PROMIXEL_SERVER_HOST`` and
    ``PROMIXEL_SERVER_PORT`` (default ``0.0.0.0:8000``).  Registered as the
    ``promixel-api`` console script in ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.effective_log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "promixel.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
