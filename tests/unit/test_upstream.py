"""Tests for promixel.api.upstream: Retro Diffusion client."""

from __future__ import annotations

import json

import httpx
import pytest

from promixel.api.upstream import (
    AUTH_FAILED_MESSAGE,
    CREDIT_LIMIT_MESSAGE,
    INVALID_KEY_MESSAGE,
    TIMEOUT_MESSAGE,
    UNAVAILABLE_MESSAGE,
    RetroDiffusionClient,
    UpstreamError,
)
from promixel.core.normalizer import INVALID_RESPONSE_MESSAGE


class TestPayload:
    def test_fixed_generation_parameters(self, upstream_client):
        payload = upstream_client.build_payload("pixel cat", seed=7)
        assert payload == {
            "model": "RD_FLUX",
            "width": 256,
            "height": 256,
            "prompt": "pixel cat",
            "num_images": 1,
            "prompt_style": "default",
            "seed": 7,
        }

    def test_random_seed_in_range(self, upstream_client):
        seed = upstream_client.build_payload("pixel cat")["seed"]
        assert 0 <= seed < 1_000_000

    def test_headers_carry_credential(self, upstream_client):
        headers = upstream_client.build_headers()
        assert headers["X-RD-Token"] == "rdpk-test-key"
        assert headers["User-Agent"].startswith("Promixel/")
        assert headers["X-Request-ID"]

    def test_key_is_cleaned(self):
        client = RetroDiffusionClient("  Bearer rdpk-abc ", "https://x.test")
        assert client.api_key == "rdpk-abc"


@pytest.mark.anyio
class TestGenerate:
    async def test_returns_decoded_body(self, upstream_client, fake_upstream):
        body = await upstream_client.generate("pixel cat", seed=1)

        assert body["remaining_credits"] == 42
        assert len(fake_upstream.calls) == 1
        sent = fake_upstream.calls[0]
        assert sent.method == "POST"
        assert str(sent.url) == "https://api.retrodiffusion.test/v1/inferences"
        assert sent.headers["X-RD-Token"] == "rdpk-test-key"
        assert json.loads(sent.content)["prompt"] == "pixel cat"

    @pytest.mark.parametrize(
        ("status", "expected_status", "message"),
        [
            (429, 429, CREDIT_LIMIT_MESSAGE),
            (401, 401, INVALID_KEY_MESSAGE),
            (403, 403, AUTH_FAILED_MESSAGE),
            (500, 500, "API error: 500"),
            (502, 502, "API error: 502"),
        ],
    )
    async def test_status_mapping(self, upstream_client, fake_upstream, status, expected_status, message):
        fake_upstream.status = status
        fake_upstream.body = {"error": "nope"}

        with pytest.raises(UpstreamError) as exc_info:
            await upstream_client.generate("pixel cat")

        assert exc_info.value.status_code == expected_status
        assert exc_info.value.message == message
        assert len(fake_upstream.calls) == 1  # never retried

    async def test_non_json_body(self, upstream_client, fake_upstream):
        fake_upstream.body = "<html>oops</html>"

        with pytest.raises(UpstreamError) as exc_info:
            await upstream_client.generate("pixel cat")

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == INVALID_RESPONSE_MESSAGE

    async def test_timeout(self, upstream_client, fake_upstream):
        fake_upstream.error = httpx.ReadTimeout("slow")

        with pytest.raises(UpstreamError) as exc_info:
            await upstream_client.generate("pixel cat")

        assert exc_info.value.status_code == 504
        assert exc_info.value.message == TIMEOUT_MESSAGE

    async def test_connection_failure(self, upstream_client, fake_upstream):
        fake_upstream.error = httpx.ConnectError("dns")

        with pytest.raises(UpstreamError) as exc_info:
            await upstream_client.generate("pixel cat")

        assert exc_info.value.status_code == 503
        assert exc_info.value.message == UNAVAILABLE_MESSAGE

    async def test_error_message_hides_credential(self, upstream_client, fake_upstream):
        fake_upstream.status = 401
        fake_upstream.body = {"detail": "bad token rdpk-test-key"}

        with pytest.raises(UpstreamError) as exc_info:
            await upstream_client.generate("pixel cat")

        assert "rdpk" not in exc_info.value.message
