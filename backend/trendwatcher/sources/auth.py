"""
File: trendwatcher/sources/auth.py
App-only OAuth token for the authenticated Reddit strategy, cached per process.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

import httpx

from trendwatcher.config import REDDIT_AUTH_URL, REQUEST_TIMEOUT, TOKEN_EXPIRY_MARGIN_SECONDS, USER_AGENT
from trendwatcher.errors import TokenError

logger = logging.getLogger(__name__)


class RedditTokenCache:
    """Holds one bearer token and its expiry.

    Reads are lock-free; a refresh is serialized so concurrent first use
    performs a single credential exchange.
    """

    def __init__(
        self,
        margin_seconds: int = TOKEN_EXPIRY_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.margin_seconds = margin_seconds
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()
        self.exchanges = 0

    def cached(self) -> Optional[str]:
        if self._token and self._clock() < self._expires_at:
            return self._token
        return None

    def clear(self) -> None:
        self._token = None
        self._expires_at = 0.0

    async def get_token(
        self,
        client_id: str,
        client_secret: str,
        client: Optional[httpx.AsyncClient] = None,
    ) -> str:
        """Get (and cache) an app-only bearer token."""
        token = self.cached()
        if token:
            return token

        async with self._lock:
            # another task may have refreshed while we waited
            token = self.cached()
            if token:
                return token
            return await self._exchange(client_id, client_secret, client)

    async def _exchange(
        self,
        client_id: str,
        client_secret: str,
        client: Optional[httpx.AsyncClient],
    ) -> str:
        now = self._clock()
        data = {"grant_type": "client_credentials"}
        headers = {"User-Agent": USER_AGENT}
        auth = (client_id, client_secret)

        self.exchanges += 1
        try:
            if client is None:
                async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as own_client:
                    r = await own_client.post(REDDIT_AUTH_URL, data=data, auth=auth, headers=headers)
            else:
                r = await client.post(REDDIT_AUTH_URL, data=data, auth=auth, headers=headers)
            r.raise_for_status()
            tok = r.json()
            access_token = tok["access_token"]
            expires_in = float(tok.get("expires_in", 3600))
        except httpx.HTTPStatusError as e:
            raise TokenError(
                f"Reddit OAuth failed: {e.response.status_code} {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            raise TokenError(f"Reddit OAuth failed: {type(e).__name__}: {e}") from e

        self._token = access_token
        self._expires_at = now + expires_in - self.margin_seconds
        logger.info("Reddit OAuth token acquired (expires in %ss)", int(expires_in))
        return access_token


# simple in-memory cache for the bearer token, shared by every run in the process
token_cache = RedditTokenCache()
