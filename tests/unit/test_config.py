"""Tests for promixel.core.config."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from promixel.core.config import PromixelConfig


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("RETRODIFFUSION_API_KEY", "RETRODIFFUSION_API_ENDPOINT", "PROMIXEL_RD_API_KEY"):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_policy_defaults(self):
        cfg = PromixelConfig(_env_file=None)
        assert cfg.min_request_interval_seconds == 3.0
        assert cfg.session_quota == 50
        assert cfg.rate_limit_max_requests == 10
        assert cfg.rate_limit_window_seconds == 60.0
        assert cfg.cache_ttl_seconds == 1800
        assert cfg.cache_max_entries == 20
        assert cfg.dedup_window_seconds == 10.0
        assert cfg.max_prompt_length == 1000

    def test_upstream_defaults(self):
        cfg = PromixelConfig(_env_file=None)
        assert cfg.rd_api_endpoint == "https://api.retrodiffusion.ai/v1/inferences"
        assert cfg.rd_model == "RD_FLUX"
        assert (cfg.image_width, cfg.image_height) == (256, 256)
        assert cfg.rd_api_key is None
        assert cfg.is_upstream_configured is False

    def test_downloads_dir_is_path(self):
        assert isinstance(PromixelConfig(_env_file=None).downloads_dir, Path)


class TestEnvironment:
    def test_prefixed_env_override(self, monkeypatch):
        monkeypatch.setenv("PROMIXEL_SESSION_QUOTA", "10")
        monkeypatch.setenv("PROMIXEL_MIN_REQUEST_INTERVAL_SECONDS", "2")
        cfg = PromixelConfig(_env_file=None)
        assert cfg.session_quota == 10
        assert cfg.min_request_interval_seconds == 2.0

    def test_legacy_api_key_name(self, monkeypatch):
        monkeypatch.setenv("RETRODIFFUSION_API_KEY", "rdpk-legacy")
        cfg = PromixelConfig(_env_file=None)
        assert cfg.rd_api_key == "rdpk-legacy"
        assert cfg.is_upstream_configured is True

    def test_allowed_origins_from_json(self, monkeypatch):
        monkeypatch.setenv("PROMIXEL_ALLOWED_ORIGINS", '["https://promixel.app"]')
        assert PromixelConfig(_env_file=None).allowed_origins == ["https://promixel.app"]

    def test_blank_key_is_not_configured(self):
        assert PromixelConfig(_env_file=None, rd_api_key="   ").is_upstream_configured is False


class TestValidation:
    def test_rejects_zero_quota(self):
        with pytest.raises(ValidationError):
            PromixelConfig(_env_file=None, session_quota=0)

    def test_rejects_unknown_environment(self):
        with pytest.raises(ValidationError):
            PromixelConfig(_env_file=None, environment="staging")

    def test_rejects_privileged_port(self):
        with pytest.raises(ValidationError):
            PromixelConfig(_env_file=None, server_port=80)


class TestLogLevel:
    def test_development_is_debug(self):
        assert PromixelConfig(_env_file=None).effective_log_level == "DEBUG"

    def test_production_is_info(self):
        cfg = PromixelConfig(_env_file=None, environment="production")
        assert cfg.is_production
        assert cfg.effective_log_level == "INFO"

    def test_explicit_override(self):
        cfg = PromixelConfig(_env_file=None, environment="production", log_level="warning")
        assert cfg.effective_log_level == "WARNING"
