"""
Common utilities for source fetchers.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional

from dateutil import parser as dateparser

from trendwatcher.models import Post


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_utc_datetime(date_string: Optional[str]) -> Optional[datetime]:
    """
    Parse a date string and convert to UTC datetime.

    Args:
        date_string: Date string in various formats, or None

    Returns:
        UTC datetime object, or None if the input is missing or unparseable
    """
    if not date_string:
        return None

    try:
        parsed_date = dateparser.parse(date_string)
    except (ValueError, OverflowError):
        return None

    if parsed_date.tzinfo:
        return parsed_date.astimezone(timezone.utc)
    return parsed_date.replace(tzinfo=timezone.utc)


def from_epoch_seconds(value: Any) -> Optional[datetime]:
    """
    Convert a unix timestamp (as found in listing payloads) to UTC datetime.

    Args:
        value: Seconds since epoch, possibly as float or string

    Returns:
        UTC datetime, or None for missing, zero or garbage values
    """
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if seconds <= 0:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def is_within_window(created_at: Optional[datetime], now: datetime, lookback_hours: float) -> bool:
    """
    Decide whether a timestamp is fresh enough to analyze.

    The boundary itself is excluded. Missing or epoch timestamps are never
    included.

    Args:
        created_at: Post creation time (aware)
        now: Reference time (aware)
        lookback_hours: Size of the window

    Returns:
        True iff created_at > now - lookback_hours
    """
    if created_at is None or created_at <= EPOCH:
        return False
    return created_at > now - timedelta(hours=lookback_hours)


def include(post: Post, now: datetime, lookback_hours: float) -> bool:
    """Window filter applied to a post."""
    return is_within_window(post.created_at, now, lookback_hours)


def deduplicate_posts(posts: Iterable[Post]) -> List[Post]:
    """
    Remove duplicate posts keyed by (source_name, id), keeping the first seen.

    Args:
        posts: Iterable of Post objects

    Returns:
        List of unique posts in their original order
    """
    seen: set[tuple[str, str]] = set()
    unique_posts: List[Post] = []

    for post in posts:
        if post.key in seen:
            continue
        seen.add(post.key)
        unique_posts.append(post)

    return unique_posts
