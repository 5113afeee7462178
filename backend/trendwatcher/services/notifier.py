"""
E-mail digest of a report, sent through the Brevo transactional API.
"""
from __future__ import annotations

import logging
from datetime import datetime
from html import escape
from typing import List, Optional, Sequence

import httpx

from trendwatcher.config import APP_NAME, BREVO_BASE_URL, REQUEST_TIMEOUT, TOP_POSTS_IN_EMAIL
from trendwatcher.errors import NotificationFailure
from trendwatcher.models import SIGNAL_CATEGORIES, Post, Signal
from trendwatcher.utils import now_utc

logger = logging.getLogger(__name__)


CATEGORY_LABELS = {
    "emerging_topic": "NEW EMERGING TOPICS",
    "growing_trend": "GROWING TRENDS",
    "pain_point": "PAIN POINTS",
    "hypothesis": "PRODUCT HYPOTHESES",
}

STRENGTH_COLORS = {
    "high": "#ef4444",
    "medium": "#f59e0b",
    "low": "#22c55e",
}


def top_posts(posts: Sequence[Post], limit: int = TOP_POSTS_IN_EMAIL) -> List[Post]:
    """
    Rank posts by score + comment count.

    Feed-strategy posts carry no engagement numbers and therefore rank last.
    """
    return sorted(posts, key=lambda p: p.score + p.comment_count, reverse=True)[:limit]


def _signal_html(signal: Signal) -> str:
    color = STRENGTH_COLORS.get(signal.strength, "#71717a")
    meta: List[str] = []
    if signal.growth_percent:
        sign = "+" if signal.growth_percent > 0 else ""
        meta.append(f"{sign}{signal.growth_percent}%")
    if signal.post_count > 0:
        meta.append(f"{signal.post_count} posts")
    meta.append(escape(signal.sentiment))
    meta.append(", ".join(f"r/{escape(name)}" for name in signal.source_names))

    return (
        '<div style="border:1px solid #27272a;border-radius:8px;padding:16px;margin-bottom:12px;">'
        f'<strong>{escape(signal.title)}</strong> '
        f'<span style="color:{color};font-size:11px;">{escape(signal.strength)}</span>'
        f'<p style="font-size:13px;">{escape(signal.description)}</p>'
        f'<div style="font-size:12px;color:#71717a;">{" · ".join(meta)}</div>'
        "</div>"
    )


def build_email_html(
    summary: str,
    signals: Sequence[Signal],
    total_posts: int,
    source_names: Sequence[str],
    posts: Sequence[Post],
    date: Optional[datetime] = None,
) -> str:
    """
    Render the report digest.

    Args:
        summary: Executive summary of the report
        signals: Signals of the report
        total_posts: Number of posts analyzed
        source_names: Configured sources
        posts: Posts of the run, ranked here for the "top discussed" section
        date: Date shown in the header

    Returns:
        HTML document
    """
    date = date or now_utc()
    sections: List[str] = []
    for category in SIGNAL_CATEGORIES:
        items = [s for s in signals if s.category == category]
        if not items:
            continue
        sections.append(
            f"<h2>{CATEGORY_LABELS[category]}</h2>" + "".join(_signal_html(s) for s in items)
        )

    ranked = top_posts(posts)
    if ranked:
        rows = []
        for p in ranked:
            extra = ""
            if p.score > 0:
                extra += f" · {p.score} pts"
            if p.comment_count > 0:
                extra += f" · {p.comment_count} comments"
            rows.append(
                f'<div><a href="https://www.reddit.com{escape(p.permalink)}">{escape(p.title)}</a>'
                f'<div style="font-size:11px;">r/{escape(p.source_name)}{extra}</div></div>'
            )
        sections.append("<h2>Top Discussed Posts</h2>" + "".join(rows))

    sources = ", ".join(f"r/{escape(s)}" for s in source_names)
    return (
        '<!DOCTYPE html><html><head><meta charset="utf-8"></head><body>'
        f"<h1>{APP_NAME} Report</h1><p>{date.strftime('%A, %B %d, %Y')}</p>"
        f"<h2>Executive Summary</h2><p>{escape(summary)}</p>"
        f"<p>{total_posts} posts from {sources}</p>"
        + "".join(sections)
        + f"<p>{APP_NAME} by SDG Lab</p></body></html>"
    )


def build_subject(date: Optional[datetime] = None) -> str:
    date = date or now_utc()
    return f"{APP_NAME} Report - {date.strftime('%b')} {date.day}, {date.year}"


class EmailNotifier:
    """Sends rendered reports to a list of recipients."""

    def __init__(
        self,
        api_key: str,
        sender_email: str,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.sender_email = sender_email
        self.client = client

    async def send(self, html: str, recipients: Sequence[str], subject: Optional[str] = None) -> None:
        """
        Send one e-mail to every recipient.

        Raises:
            NotificationFailure: on transport error or non-2xx response
        """
        payload = {
            "sender": {"name": APP_NAME, "email": self.sender_email},
            "to": [{"email": email} for email in recipients],
            "subject": subject or build_subject(),
            "htmlContent": html,
        }
        headers = {"api-key": self.api_key, "Content-Type": "application/json"}
        url = f"{BREVO_BASE_URL}/smtp/email"

        try:
            if self.client is not None:
                r = await self.client.post(url, json=payload, headers=headers, timeout=REQUEST_TIMEOUT)
            else:
                async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                    r = await client.post(url, json=payload, headers=headers)
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotificationFailure(
                f"Brevo error {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise NotificationFailure(f"Brevo error: {type(e).__name__}: {e}") from e

        logger.info("Email sent to: %s", ", ".join(recipients))
