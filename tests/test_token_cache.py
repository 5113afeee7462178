"""
OAuth token cache: reuse, expiry margin, single refresh under concurrency.

Run with: pytest tests/test_token_cache.py -v
"""
import asyncio

import httpx
import pytest

from conftest import mock_client
from trendwatcher.errors import TokenError
from trendwatcher.sources.auth import RedditTokenCache


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


def token_handler(calls: list, expires_in: int = 3600):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"access_token": f"tok-{len(calls)}", "expires_in": expires_in})
    return handler


class TestRedditTokenCache:
    async def test_token_is_reused_until_expiry(self):
        calls = []
        clock = FakeClock()
        cache = RedditTokenCache(margin_seconds=60, clock=clock)

        async with mock_client(token_handler(calls)) as client:
            first = await cache.get_token("id", "secret", client)
            clock.now += 3000
            second = await cache.get_token("id", "secret", client)

        assert first == second == "tok-1"
        assert len(calls) == 1

    async def test_safety_margin_forces_early_refresh(self):
        calls = []
        clock = FakeClock()
        cache = RedditTokenCache(margin_seconds=60, clock=clock)

        async with mock_client(token_handler(calls)) as client:
            await cache.get_token("id", "secret", client)
            clock.now += 3600 - 60
            refreshed = await cache.get_token("id", "secret", client)

        assert refreshed == "tok-2"
        assert len(calls) == 2

    async def test_exchange_uses_client_credentials(self):
        calls = []
        cache = RedditTokenCache(clock=FakeClock())

        async with mock_client(token_handler(calls)) as client:
            await cache.get_token("my-id", "my-secret", client)

        request = calls[0]
        assert request.method == "POST"
        assert str(request.url) == "https://www.reddit.com/api/v1/access_token"
        assert request.headers["Authorization"].startswith("Basic ")
        assert b"grant_type=client_credentials" in request.content

    async def test_concurrent_first_use_exchanges_once(self):
        calls = []
        cache = RedditTokenCache(clock=FakeClock())

        async with mock_client(token_handler(calls)) as client:
            tokens = await asyncio.gather(*(cache.get_token("id", "s", client) for _ in range(5)))

        assert set(tokens) == {"tok-1"}
        assert len(calls) == 1
        assert cache.exchanges == 1

    @pytest.mark.parametrize("response", [
        httpx.Response(401, text="unauthorized"),
        httpx.Response(200, json={"error": "invalid_grant"}),
    ])
    async def test_failed_exchange_raises_token_error(self, response):
        cache = RedditTokenCache(clock=FakeClock())

        async with mock_client(lambda r: response) as client:
            with pytest.raises(TokenError, match="Reddit OAuth failed"):
                await cache.get_token("id", "s", client)

        assert cache.cached() is None
