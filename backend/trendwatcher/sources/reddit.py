"""
File: trendwatcher/sources/reddit.py
Reddit fetch strategies: OAuth listing, public listing and Atom feed fallback.

Every strategy turns its wire shape into Post objects, applies the lookback
window and raises FetchError on any failure so the collector can fall through
to the next strategy.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

import feedparser
import httpx

from trendwatcher.config import (
    FEED_BODY_MAX_CHARS,
    FEED_HEADERS,
    HTTP_HEADERS,
    LOOKBACK_HOURS,
    MAX_POSTS_PER_SOURCE,
    REDDIT_BASE_URL,
    REDDIT_OAUTH_BASE_URL,
    REQUEST_TIMEOUT,
)
from trendwatcher.errors import FetchError
from trendwatcher.models import Post
from trendwatcher.sources.common import (
    deduplicate_posts,
    from_epoch_seconds,
    include,
    parse_utc_datetime,
)
from trendwatcher.utils import normalize_text, now_utc, strip_html

logger = logging.getLogger(__name__)

COMMENTS_ID_RE = re.compile(r"/comments/(\w+)")


def _to_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _relative_permalink(link: str) -> str:
    if link.startswith(REDDIT_BASE_URL):
        return link[len(REDDIT_BASE_URL):]
    return link


class RedditFetcher:
    """Base class for one fetch strategy.

    Subclasses implement `_request` and `_parse`; `fetch` wraps both with the
    error handling and window filter shared by every strategy.
    """

    strategy = "base"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        lookback_hours: float = LOOKBACK_HOURS,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.client = client
        self.lookback_hours = lookback_hours
        self.timeout = timeout

    def url_for(self, source_name: str) -> str:
        raise NotImplementedError

    def headers(self) -> Dict[str, str]:
        return dict(HTTP_HEADERS)

    async def fetch(self, source_name: str, now: Optional[datetime] = None) -> List[Post]:
        """
        Fetch the hot listing of one source.

        Args:
            source_name: Subreddit name without the r/ prefix
            now: Reference time for the window (defaults to current UTC time)

        Returns:
            Posts inside the lookback window, in listing order

        Raises:
            FetchError: on non-2xx status, transport error, timeout or bad payload
        """
        now = now or now_utc()
        try:
            response = await self._get(self.url_for(source_name))
            response.raise_for_status()
            posts = self._parse(response, source_name)
        except FetchError:
            raise
        except httpx.HTTPStatusError as e:
            raise FetchError(source_name, self.strategy, e.response.status_code) from e
        except httpx.TimeoutException as e:
            raise FetchError(source_name, self.strategy, f"timeout ({type(e).__name__})") from e
        except httpx.HTTPError as e:
            raise FetchError(source_name, self.strategy, f"{type(e).__name__}: {e}") from e
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise FetchError(source_name, self.strategy, f"unparseable payload: {e}") from e

        fresh = [post for post in posts if include(post, now, self.lookback_hours)]
        return deduplicate_posts(fresh)

    async def _get(self, url: str) -> httpx.Response:
        if self.client is not None:
            return await self.client.get(url, headers=self.headers(), timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url, headers=self.headers())

    def _parse(self, response: httpx.Response, source_name: str) -> List[Post]:
        raise NotImplementedError


class RedditListingFetcher(RedditFetcher):
    """Shared parser for the JSON listing returned by both API hosts."""

    base_url = REDDIT_BASE_URL

    def url_for(self, source_name: str) -> str:
        return f"{self.base_url}/r/{source_name}/hot.json?limit={MAX_POSTS_PER_SOURCE}&raw_json=1"

    def _parse(self, response: httpx.Response, source_name: str) -> List[Post]:
        data = response.json()
        children = data["data"]["children"]
        if not isinstance(children, list):
            raise ValueError("listing children is not a list")

        posts: List[Post] = []
        for child in children:
            p = child.get("data") or {}
            post_id = str(p.get("id") or "")
            title = normalize_text(p.get("title"))
            if not post_id:
                logger.debug("r/%s: skipping listing child without id", source_name)
                continue
            posts.append(
                Post(
                    id=post_id,
                    title=title,
                    body=p.get("selftext") or "",
                    score=_to_int(p.get("score")),
                    comment_count=_to_int(p.get("num_comments")),
                    source_name=source_name,
                    created_at=from_epoch_seconds(p.get("created_utc")),
                    permalink=p.get("permalink") or "",
                )
            )
        return posts


class OAuthRedditFetcher(RedditListingFetcher):
    """Authenticated listing via oauth.reddit.com (survives data-center IP blocks)."""

    strategy = "oauth"
    base_url = REDDIT_OAUTH_BASE_URL

    def __init__(self, token: str, **kwargs):
        super().__init__(**kwargs)
        self.token = token

    def headers(self) -> Dict[str, str]:
        headers = super().headers()
        headers["Authorization"] = f"Bearer {self.token}"
        return headers


class PublicRedditFetcher(RedditListingFetcher):
    """Unauthenticated listing via www.reddit.com. Commonly blocked from cloud IPs."""

    strategy = "direct"


class RedditFeedFetcher(RedditFetcher):
    """Atom feed fallback.

    The feed carries no engagement numbers, so score and comment_count are
    always 0 for posts produced here.
    """

    strategy = "rss"

    def url_for(self, source_name: str) -> str:
        return f"{REDDIT_BASE_URL}/r/{source_name}/hot.rss"

    def headers(self) -> Dict[str, str]:
        return dict(FEED_HEADERS)

    def _parse(self, response: httpx.Response, source_name: str) -> List[Post]:
        feed = feedparser.parse(response.text)
        if feed.bozo and not feed.entries:
            raise ValueError(f"unreadable feed ({feed.get('bozo_exception')})")

        posts: List[Post] = []
        for entry in feed.entries:
            post = parse_feed_entry(entry, source_name)
            if post is not None:
                posts.append(post)

        logger.info("r/%s: RSS parsed %d entries", source_name, len(posts))
        return posts


def _entry_body(entry) -> str:
    content = entry.get("content")
    if content:
        raw = content[0].get("value", "")
    else:
        raw = entry.get("summary", "")
    return strip_html(raw)[:FEED_BODY_MAX_CHARS]


def parse_feed_entry(entry, source_name: str) -> Optional[Post]:
    """
    Build a degraded Post from one feed entry.

    Args:
        entry: feedparser entry
        source_name: Configured source name

    Returns:
        Post, or None when the entry has no stable id
    """
    link = entry.get("link", "") or ""
    entry_id = entry.get("id", "") or ""

    match = COMMENTS_ID_RE.search(link) or COMMENTS_ID_RE.search(entry_id)
    if match:
        post_id = match.group(1)
    elif entry_id:
        post_id = entry_id
    else:
        return None

    # feedparser already decodes text titles
    title = normalize_text(entry.get("title", ""))

    return Post(
        id=post_id,
        title=title,
        body=_entry_body(entry),
        score=0,
        comment_count=0,
        source_name=source_name,
        created_at=parse_utc_datetime(entry.get("updated") or entry.get("published")),
        permalink=_relative_permalink(link),
    )
