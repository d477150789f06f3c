import asyncio
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from autoposter_ai.core.config import settings

# Override settings for tests
settings.app_env = "test"
settings.sentry_dsn = ""
settings.gemini_api_key = "test-gemini-key"
settings.kieai_api_key = "test-kieai-key"

from autoposter_ai.main import app  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock; ``sleep`` advances it instead of waiting."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def _make_httpx_response(
    status_code: int,
    json_data: dict | None = None,
    text: str = "",
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    """Create a proper httpx.Response with request set."""
    request = httpx.Request("POST", "https://example.com")
    if json_data is not None:
        return httpx.Response(status_code, json=json_data, headers=headers, request=request)
    return httpx.Response(status_code, text=text, headers=headers, request=request)


@pytest.fixture
def make_response():
    return _make_httpx_response


@pytest.fixture
def mock_http():
    """Patch httpx.AsyncClient in the adapter module; yields the client mock."""
    with patch("autoposter_ai.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
        mock_client = AsyncMock()
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)
        mock_client_cls.return_value = mock_client
        mock_client.client_cls = mock_client_cls
        yield mock_client


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
