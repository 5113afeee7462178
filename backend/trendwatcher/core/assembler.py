"""
Build the persisted report record from fetched posts and the analysis result.
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from trendwatcher.models import Post, Report, Signal
from trendwatcher.schemas import AnalysisResult
from trendwatcher.utils import generate_id, now_utc


def count_posts_by_source(posts: Iterable[Post], source_names: Sequence[str]) -> Dict[str, int]:
    """
    Count posts per configured source.

    Args:
        posts: Posts of the run
        source_names: Configured sources

    Returns:
        Mapping with every configured source present, 0 when it produced nothing
    """
    counts: Dict[str, int] = {name: 0 for name in source_names}
    for post in posts:
        if post.source_name in counts:
            counts[post.source_name] += 1
    return counts


def build_signals(analysis: AnalysisResult) -> List[Signal]:
    """Give every analysed signal a fresh identifier."""
    return [
        Signal(
            id=generate_id(),
            category=s.category,
            title=s.title,
            description=s.description,
            strength=s.strength,
            sentiment=s.sentiment,
            post_count=s.postCount,
            source_names=list(s.sourceNames),
            growth_percent=s.growthPercent,
        )
        for s in analysis.signals
    ]


def build_report(
    posts: Sequence[Post],
    source_names: Sequence[str],
    analysis: AnalysisResult,
    window_start: datetime,
    window_end: datetime,
    now: Optional[datetime] = None,
) -> Report:
    """
    Assemble the report of one run.

    Args:
        posts: Windowed posts of the run (before truncation for analysis)
        source_names: Configured sources, in order
        analysis: Summary and signals returned by the analysis step
        window_start: Start of the lookback window
        window_end: End of the lookback window
        now: Creation time (defaults to current UTC time)

    Returns:
        Report ready to be saved
    """
    return Report(
        id=generate_id(),
        created_at=now or now_utc(),
        window_start=window_start,
        window_end=window_end,
        source_names=list(source_names),
        total_posts_analyzed=len(posts),
        summary=analysis.summary,
        signals=build_signals(analysis),
        raw_post_count_by_source=count_posts_by_source(posts, source_names),
    )
