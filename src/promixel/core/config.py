"""Configuration management for Promixel.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the PROMIXEL_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (PROMIXEL_* prefix)
2. .env file in the project root
3. Default values defined in PromixelConfig

The Retro Diffusion credential is also accepted under its historical name
``RETRODIFFUSION_API_KEY`` (and ``RETRODIFFUSION_API_ENDPOINT``) so an existing
deployment environment keeps working.

Example .env file:
    PROMIXEL_RD_API_KEY=rdpk-xxxxxxxx
    PROMIXEL_ALLOWED_ORIGINS=["https://promixel.app","http://localhost:7860"]
    PROMIXEL_RATE_LIMIT_MAX_REQUESTS=10
    PROMIXEL_ENVIRONMENT=production

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
Components that own state (the gateway, the request guard) take a config
object in their constructor instead of reading the global, so tests and
multiple workers can each build their own.

Policy Values
-------------
Cooldown interval, session quota and rate-limit ceiling have differed between
deployments (2s/3s cooldowns, 10/50 session quotas, 10/100 requests per
minute).  They are plain settings here; the defaults are the values used by
the current production deployment.
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PromixelConfig(BaseSettings):
    """Main configuration for Promixel.

    Attributes
    ----------
    Upstream API (server-only):
        rd_api_key : str | None
            Retro Diffusion credential, never sent to the browser
        rd_api_endpoint : str
            Inference endpoint URL
        rd_model, image_width, image_height, prompt_style : generation parameters
        upstream_timeout_seconds : float
            Timeout attached to the outbound call

    Gateway policy:
        allowed_origins : list[str]
            Origins accepted by ``POST /api/generate`` ("*" allows any)
        rate_limit_max_requests, rate_limit_window_seconds : sliding window
        rate_limit_block_seconds : cooldown once the window is exceeded
        max_consecutive_failures : upstream failures before a client is blocked
        dedup_window_seconds : duplicate (request id, prompt) window
        sweep_interval_seconds : minimum gap between store sweeps
        max_prompt_length : longest accepted prompt

    Client guard:
        min_request_interval_seconds, session_quota,
        cache_ttl_seconds, cache_max_entries, api_base_url,
        client_timeout_seconds

    Identity provider:
        supabase_url, supabase_anon_key

    Runtime:
        environment : Literal["development", "production"]
            Controls log verbosity and error detail exposure
        log_level : str | None
            Explicit log level override

    Examples
    --------
        >>> from promixel.core.config import config
        >>> config.rate_limit_max_requests
        10

        >>> custom = PromixelConfig(min_request_interval_seconds=2.0, _env_file=None)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PROMIXEL_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Upstream image API
    rd_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("rd_api_key", "PROMIXEL_RD_API_KEY", "RETRODIFFUSION_API_KEY"),
        description="Retro Diffusion API credential (server-only)",
    )
    rd_api_endpoint: str = Field(
        default="https://api.retrodiffusion.ai/v1/inferences",
        validation_alias=AliasChoices(
            "rd_api_endpoint", "PROMIXEL_RD_API_ENDPOINT", "RETRODIFFUSION_API_ENDPOINT"
        ),
        description="Retro Diffusion inference endpoint",
    )
    rd_model: str = Field(default="RD_FLUX", description="Upstream model identifier")
    image_width: int = Field(default=256, ge=64, le=1024)
    image_height: int = Field(default=256, ge=64, le=1024)
    prompt_style: str = Field(default="default", description="Upstream prompt style preset")
    upstream_timeout_seconds: float = Field(default=30.0, gt=0)

    # Gateway policy
    allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:7860"],
        description="Origins allowed to call the generation endpoint",
    )
    rate_limit_max_requests: int = Field(default=10, ge=1)
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)
    rate_limit_block_seconds: float = Field(default=600.0, ge=0)
    max_consecutive_failures: int = Field(default=5, ge=1)
    dedup_window_seconds: float = Field(default=10.0, ge=0)
    sweep_interval_seconds: float = Field(default=60.0, ge=0)
    max_prompt_length: int = Field(default=1000, ge=1)

    # Client request guard
    min_request_interval_seconds: float = Field(default=3.0, ge=0)
    session_quota: int = Field(default=50, ge=1)
    cache_ttl_seconds: float = Field(default=30 * 60, gt=0)
    cache_max_entries: int = Field(default=20, ge=1)
    api_base_url: str = Field(
        default="http://127.0.0.1:8000",
        description="Base URL of the Promixel API used by the UI",
    )
    client_timeout_seconds: float = Field(default=60.0, gt=0)

    # Identity provider
    supabase_url: str | None = Field(default=None, description="Supabase project URL")
    supabase_anon_key: str | None = Field(default=None, description="Supabase public anon key")

    # Runtime
    environment: Literal["development", "production"] = Field(default="development")
    log_level: str | None = Field(default=None, description="Override the log level")

    # API server settings
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8000, ge=1024, le=65535)

    # UI settings
    gradio_server_name: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    gradio_server_port: int = Field(default=7860, ge=1024, le=65535)
    gradio_share: bool = Field(
        default=False,
        description="Create public gradio.live link (keep False for local-only)",
    )
    downloads_dir: Path = Field(
        default=Path("downloads"),
        description="Directory where downloaded images are written",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_upstream_configured(self) -> bool:
        return bool(self.rd_api_key and self.rd_api_key.strip() and self.rd_api_endpoint)

    @property
    def effective_log_level(self) -> str:
        """Log level to configure: explicit override, else by environment."""
        if self.log_level:
            return self.log_level.upper()
        return "INFO" if self.is_production else "DEBUG"


# Global configuration instance
# Loaded from environment variables (PROMIXEL_* prefix) and the .env file.
config = PromixelConfig()
