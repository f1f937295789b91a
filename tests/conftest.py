from unittest.mock import AsyncMock, patch

import httpx
import pytest

from helpers import BASE_URL, VALID_TOKEN, FakeClock, MockAPI
from ynabsync.client import YnabClient
from ynabsync.core import RateLimiter


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_sleep(clock):
    """Mock asyncio.sleep so waits advance the fake clock instead of blocking."""

    async def _sleep(delay, *args, **kwargs):
        clock.advance(delay)

    with patch('asyncio.sleep', new=AsyncMock(side_effect=_sleep)) as mock:
        yield mock


@pytest.fixture
def api_token():
    return VALID_TOKEN


@pytest.fixture
def mock_api():
    """Fixture for a scripted API served through httpx.MockTransport."""
    return MockAPI()


@pytest.fixture
def make_client(mock_api, api_token, clock):
    """Factory for clients wired to the mock API and the fake clock."""

    def _make(**options):
        options.setdefault("api_token", api_token)
        options.setdefault("base_url", BASE_URL)
        limiter = RateLimiter(
            capacity=options.get("rate_limit_requests", 200),
            window_ms=options.get("rate_limit_window_ms", 3_600_000),
            now_fn=clock,
        )
        http = httpx.AsyncClient(
            base_url=options["base_url"],
            transport=httpx.MockTransport(mock_api.handler),
        )
        return YnabClient(httpx_client=http, rate_limiter=limiter, **options)

    return _make
