"""
Post collection coordinator that aggregates from multiple subreddits.

Per source, strategies are tried in order (OAuth, direct, RSS) and the first
success wins. Sources run concurrently and a failing source never cancels or
delays the others.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Sequence

import httpx

from trendwatcher.config import LOOKBACK_HOURS, REQUEST_TIMEOUT
from trendwatcher.errors import FetchError, IngestionFailure, SourceError, TokenError
from trendwatcher.models import FetchOutcome, Post
from trendwatcher.settings import Settings
from trendwatcher.sources.auth import RedditTokenCache, token_cache
from trendwatcher.sources.reddit import (
    OAuthRedditFetcher,
    PublicRedditFetcher,
    RedditFeedFetcher,
    RedditFetcher,
)
from trendwatcher.utils import now_utc

logger = logging.getLogger(__name__)


def build_strategies(
    token: Optional[str],
    client: Optional[httpx.AsyncClient] = None,
    lookback_hours: float = LOOKBACK_HOURS,
) -> List[RedditFetcher]:
    """
    Build the ordered strategy chain for one run.

    Args:
        token: OAuth bearer token, or None when unavailable
        client: Shared HTTP client
        lookback_hours: Window applied by every strategy

    Returns:
        Strategies in the order they must be attempted
    """
    kwargs = {"client": client, "lookback_hours": lookback_hours}
    strategies: List[RedditFetcher] = []
    if token:
        strategies.append(OAuthRedditFetcher(token, **kwargs))
    strategies.append(PublicRedditFetcher(**kwargs))
    strategies.append(RedditFeedFetcher(**kwargs))
    return strategies


async def fetch_source(
    source_name: str,
    strategies: Sequence[RedditFetcher],
    now: Optional[datetime] = None,
) -> List[Post]:
    """
    Fetch one source through the strategy chain.

    Args:
        source_name: Subreddit name
        strategies: Ordered strategies; the last one's outcome is final
        now: Reference time for the window

    Returns:
        Posts from the first strategy that succeeded

    Raises:
        SourceError: if every strategy failed
    """
    attempts: List[FetchError] = []

    for strategy in strategies:
        logger.info("r/%s: trying %s", source_name, strategy.strategy)
        try:
            posts = await strategy.fetch(source_name, now=now)
        except FetchError as e:
            logger.warning("r/%s: %s failed: %s", source_name, strategy.strategy, e.cause)
            attempts.append(e)
            continue

        logger.info("r/%s: %s OK, %d posts", source_name, strategy.strategy, len(posts))
        return posts

    raise SourceError(source_name, attempts)


async def acquire_token(
    settings: Settings,
    cache: RedditTokenCache = token_cache,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[str]:
    """
    Get the OAuth token for this run, or None if credentials are missing or
    the exchange failed.
    """
    if not settings.has_reddit_credentials:
        logger.info("No Reddit OAuth credentials - using unauthenticated access")
        return None

    try:
        return await cache.get_token(settings.REDDIT_CLIENT_ID, settings.REDDIT_CLIENT_SECRET, client)
    except TokenError as e:
        logger.error("Reddit OAuth failed, falling back to unauthenticated: %s", e)
        return None


async def collect_posts(
    source_names: Sequence[str],
    strategies: Sequence[RedditFetcher],
    now: Optional[datetime] = None,
) -> FetchOutcome:
    """
    Collect posts from every configured source concurrently.

    Args:
        source_names: Sources in configured order
        strategies: Ordered strategy chain shared by every source
        now: Reference time for the window (one value for the whole run)

    Returns:
        FetchOutcome with posts in source order and one error per failed source

    Raises:
        IngestionFailure: if no source produced any post
    """
    now = now or now_utc()

    results = await asyncio.gather(
        *(fetch_source(name, strategies, now=now) for name in source_names),
        return_exceptions=True,
    )

    outcome = FetchOutcome()
    for name, result in zip(source_names, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.error("r/%s failed: %s", name, result)
            outcome.errors.append(f"{name}: {result}")
        else:
            outcome.posts.extend(result)

    logger.info(
        "Fetched %d posts from %d sources, %d errors",
        len(outcome.posts), len(source_names), len(outcome.errors),
    )

    if not outcome.posts:
        raise IngestionFailure(outcome.errors, list(source_names))

    return outcome


async def ingest(
    source_names: Sequence[str],
    settings: Settings,
    cache: RedditTokenCache = token_cache,
    client: Optional[httpx.AsyncClient] = None,
    now: Optional[datetime] = None,
) -> FetchOutcome:
    """
    Run a complete ingestion: one token acquisition, then the fan-out.

    Args:
        source_names: Sources in configured order
        settings: Credentials and lookback window
        cache: Token cache shared across runs
        client: Optional shared HTTP client (one is created otherwise)
        now: Reference time for the window

    Returns:
        FetchOutcome of the run
    """
    if client is None:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as own_client:
            return await ingest(source_names, settings, cache, own_client, now)

    token = await acquire_token(settings, cache, client)
    strategies = build_strategies(token, client, settings.LOOKBACK_HOURS)
    return await collect_posts(source_names, strategies, now=now)
