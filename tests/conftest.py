"""Shared pytest fixtures for Promixel tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import httpx
import pytest
from fastapi.testclient import TestClient

from promixel.api.gateway import GenerationGateway
from promixel.api.main import create_app
from promixel.api.upstream import RetroDiffusionClient
from promixel.core.config import PromixelConfig


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """``httpx.MockTransport`` handler standing in for the Retro Diffusion API.

    Attributes:
        calls: Requests received, in order.
        status: HTTP status to answer with.
        body: JSON body (dict/list) or raw text to answer with.
        error: Exception to raise instead of answering.
    """

    def __init__(self) -> None:
        self.calls: list[httpx.Request] = []
        self.status = 200
        self.body: object = {"base64_images": ["AAAA"], "remaining_credits": 42}
        self.error: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        if isinstance(self.body, (dict, list)):
            return httpx.Response(self.status, json=self.body)
        return httpx.Response(self.status, text=str(self.body))


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_config(temp_dir: Path) -> PromixelConfig:
    """Create a test configuration that ignores the environment's .env file.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        PromixelConfig instance for testing
    """
    return PromixelConfig(
        _env_file=None,
        rd_api_key="rdpk-test-key",
        rd_api_endpoint="https://api.retrodiffusion.test/v1/inferences",
        allowed_origins=["http://localhost:7860"],
        rate_limit_max_requests=10,
        rate_limit_window_seconds=60,
        min_request_interval_seconds=3,
        session_quota=50,
        cache_ttl_seconds=1800,
        cache_max_entries=20,
        supabase_url=None,
        supabase_anon_key=None,
        environment="development",
        downloads_dir=temp_dir / "downloads",
    )


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def upstream_client(test_config: PromixelConfig, fake_upstream: FakeUpstream) -> RetroDiffusionClient:
    """Upstream client whose HTTP traffic goes to :class:`FakeUpstream`."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_upstream))
    return RetroDiffusionClient.from_config(test_config, http_client=http_client)


@pytest.fixture
def gateway(
    test_config: PromixelConfig, upstream_client: RetroDiffusionClient, clock: FakeClock
) -> GenerationGateway:
    return GenerationGateway(test_config, upstream=upstream_client, clock=clock)


@pytest.fixture
def test_client(
    test_config: PromixelConfig, gateway: GenerationGateway
) -> Generator[TestClient, None, None]:
    """FastAPI TestClient backed by the fake upstream."""
    app = create_app(test_config, gateway=gateway)
    with TestClient(app) as client:
        yield client


class ApiStub:
    """``httpx.MockTransport`` handler standing in for the Promixel API."""

    SUCCESS = {
        "success": True,
        "imageUrl": "data:image/png;base64,AAAA",
        "message": "Pixel art generated successfully!",
        "prompt": "pixel cat",
        "remainingCredits": 42,
    }

    def __init__(self) -> None:
        self.calls: list[httpx.Request] = []
        self.status = 200
        self.body: object = dict(self.SUCCESS)
        self.error: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        if isinstance(self.body, dict):
            return httpx.Response(self.status, json=self.body)
        return httpx.Response(self.status, text=str(self.body))


@pytest.fixture
def api() -> ApiStub:
    return ApiStub()


@pytest.fixture
def api_client(api: ApiStub) -> Generator[httpx.Client, None, None]:
    """Sync client for the UI side, answered by :class:`ApiStub`."""
    with httpx.Client(transport=httpx.MockTransport(api), base_url="http://promixel.test") as client:
        yield client
