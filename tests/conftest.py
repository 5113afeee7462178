"""
Shared fixtures and builders for the TrendWatcher test suite.

No test talks to Reddit, OpenAI, Brevo or Supabase: HTTP collaborators are
served by httpx.MockTransport, everything else by in-memory fakes.
"""
import textwrap
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from trendwatcher.errors import FetchError
from trendwatcher.models import Post, Report, Signal
from trendwatcher.schemas import AnalysisResult, AnalysisSignal
from trendwatcher.settings import Settings

NOW = datetime(2026, 10, 16, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Domain builders
# ---------------------------------------------------------------------------

def make_post(
    post_id: str = "p1",
    source_name: str = "lonely",
    hours_ago: float = 1,
    score: int = 10,
    comment_count: int = 2,
    title: Optional[str] = None,
) -> Post:
    return Post(
        id=post_id,
        title=title or f"Post {post_id}",
        body="body",
        score=score,
        comment_count=comment_count,
        source_name=source_name,
        created_at=NOW - timedelta(hours=hours_ago),
        permalink=f"/r/{source_name}/comments/{post_id}/",
    )


def make_signal(
    title: str = "Voice notes anxiety",
    strength: str = "medium",
    category: str = "pain_point",
    signal_id: Optional[str] = None,
) -> Signal:
    return Signal(
        id=signal_id or f"sig-{title}-{strength}",
        category=category,
        title=title,
        description=f"About {title}",
        strength=strength,
        sentiment="negative",
        post_count=3,
        source_names=["lonely"],
    )


def make_report(
    signals: Optional[List[Signal]] = None,
    total: int = 10,
    report_id: str = "report-1",
    created_at: datetime = NOW,
) -> Report:
    return Report(
        id=report_id,
        created_at=created_at,
        window_start=created_at - timedelta(hours=48),
        window_end=created_at,
        source_names=["lonely"],
        total_posts_analyzed=total,
        summary="Test summary",
        signals=signals or [],
        raw_post_count_by_source={"lonely": total},
    )


def make_analysis(n_signals: int = 2) -> AnalysisResult:
    return AnalysisResult(
        summary="People are lonely on weekends.",
        signals=[
            AnalysisSignal(
                category="pain_point",
                title=f"Signal {i}",
                description="desc",
                strength="high",
                sentiment="negative",
                postCount=i,
                sourceNames=["lonely"],
            )
            for i in range(n_signals)
        ],
    )


def make_settings(**overrides) -> Settings:
    values = dict(
        OPENAI_API_KEY="sk-test",
        REDDIT_CLIENT_ID="",
        REDDIT_CLIENT_SECRET="",
        BREVO_API_KEY="",
        EMAIL_SENDER="bot@example.com",
        EMAIL_RECIPIENTS="",
        SUBREDDITS="lonely,depression,socialskills",
        SUPABASE_URL="",
        SUPABASE_SERVICE_ROLE_KEY="",
        LOOKBACK_HOURS=48,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ---------------------------------------------------------------------------
# Wire payload builders
# ---------------------------------------------------------------------------

def listing_child(post_id: str, hours_ago: float = 1, subreddit: str = "lonely", **extra) -> dict:
    data = {
        "id": post_id,
        "title": f"Title {post_id}",
        "selftext": f"Body of {post_id}",
        "score": 42,
        "num_comments": 7,
        "subreddit": subreddit,
        "created_utc": (NOW - timedelta(hours=hours_ago)).timestamp(),
        "permalink": f"/r/{subreddit}/comments/{post_id}/title/",
    }
    data.update(extra)
    return {"kind": "t3", "data": data}


def listing_payload(*children: dict) -> dict:
    return {"kind": "Listing", "data": {"children": list(children)}}


def feed_entry(post_id: str, updated: str, title: str = "Voice notes &amp; anxiety", content: str = "") -> str:
    return textwrap.dedent(f"""
        <entry>
          <author><name>/u/someone</name></author>
          <content type="html">{content}</content>
          <id>t3_{post_id}</id>
          <link href="https://www.reddit.com/r/lonely/comments/{post_id}/some_title/" />
          <updated>{updated}</updated>
          <title>{title}</title>
        </entry>
    """)


def atom_feed(*entries: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<feed xmlns="http://www.w3.org/2005/Atom">'
        "<title>hot posts</title>"
        + "".join(entries)
        + "</feed>"
    )


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeStrategy:
    """Strategy stand-in: returns or raises per source, records calls."""

    def __init__(self, name: str, results: Dict[str, object]):
        self.strategy = name
        self.results = results
        self.calls: List[str] = []

    async def fetch(self, source_name: str, now=None) -> List[Post]:
        self.calls.append(source_name)
        result = self.results.get(source_name, FetchError(source_name, self.strategy, 403))
        if isinstance(result, Exception):
            raise result
        return list(result)


class FakeAnalyzer:
    def __init__(self, result: Optional[AnalysisResult] = None, error: Optional[Exception] = None):
        self.result = result or make_analysis()
        self.error = error
        self.calls = 0

    async def analyze(self, posts, source_names) -> AnalysisResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def settings() -> Settings:
    return make_settings()
