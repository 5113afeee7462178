"""
Shared utility functions for the trend watcher application.
"""
from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone

from bs4 import BeautifulSoup


def now_utc() -> datetime:
    """
    Get current UTC datetime with timezone information.

    Returns:
        Current UTC datetime
    """
    return datetime.now(timezone.utc)


def isoformat_z(dt: datetime) -> str:
    """Render an aware datetime as ISO-8601 with a trailing Z."""
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_text(text: str | None) -> str:
    """
    Normalize whitespace in text content.

    Args:
        text: Input text string (can be None)

    Returns:
        Normalized text with single spaces and trimmed edges
    """
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def strip_html(text: str | None) -> str:
    """
    Remove markup from an HTML fragment and decode its entities.

    Args:
        text: HTML fragment (can be None)

    Returns:
        Plain text with collapsed whitespace
    """
    if not text:
        return ""
    return normalize_text(BeautifulSoup(text, "html.parser").get_text(" ", strip=True))


def generate_id() -> str:
    """Generate a fresh random identifier."""
    return str(uuid.uuid4())
