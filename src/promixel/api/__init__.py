"""Promixel - FastAPI REST API layer.

This package contains the FastAPI application and the server-side
gatekeeping around the upstream image API.

Modules
-------
main
    FastAPI application factory, routes, and the ``main()`` CLI entry point.
gateway
    Request pipeline: origin, dedup, validation, rate limit, upstream call.
security
    Prompt validation and sanitisation, origin checks, security headers.
rate_limit
    Per-client sliding window limiter.
dedup
    Duplicate (request id, prompt) suppression.
upstream
    Retro Diffusion HTTP client and status mapping.
models
    Pydantic models for the API wire format.
"""
