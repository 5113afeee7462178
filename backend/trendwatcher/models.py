"""
File: trendwatcher/models.py
Internal data structures used during collection, analysis and comparison.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional


JsonDict = Dict[str, Any]

SignalCategory = Literal["emerging_topic", "growing_trend", "pain_point", "hypothesis"]
SignalStrength = Literal["low", "medium", "high"]
Sentiment = Literal["positive", "negative", "mixed", "neutral"]

SIGNAL_CATEGORIES: tuple[str, ...] = ("emerging_topic", "growing_trend", "pain_point", "hypothesis")

# Total order used when comparing the same signal across two reports
STRENGTH_ORDER: Dict[str, int] = {
    "low": 1,
    "medium": 2,
    "high": 3,
}


@dataclass(frozen=True)
class Post:
    """One post harvested from a source.

    `id` is only unique within `source_name`. Posts produced by the feed
    strategy always carry a zero `score` and `comment_count`. `created_at` is
    None when the source gave no usable timestamp; such posts never pass the
    window filter.
    """

    id: str
    title: str
    body: str
    score: int
    comment_count: int
    source_name: str
    created_at: Optional[datetime]
    permalink: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.source_name, self.id)


@dataclass
class Signal:
    """One insight extracted by the analysis step."""

    id: str
    category: SignalCategory
    title: str
    description: str
    strength: SignalStrength
    sentiment: Sentiment
    post_count: int
    source_names: List[str]
    growth_percent: Optional[int] = None


@dataclass
class Report:
    """One completed analysis run. Never mutated after it is saved."""

    id: str
    created_at: datetime
    window_start: datetime
    window_end: datetime
    source_names: List[str]
    total_posts_analyzed: int
    summary: str
    signals: List[Signal] = field(default_factory=list)
    raw_post_count_by_source: Dict[str, int] = field(default_factory=dict)


@dataclass
class FetchOutcome:
    """Aggregated posts of one ingestion run plus one error line per failed source."""

    posts: List[Post] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class SignalChange:
    signal: Signal
    from_strength: SignalStrength


@dataclass
class ReportComparison:
    current: Report
    previous: Report
    new_signals: List[Signal] = field(default_factory=list)
    gone_signals: List[Signal] = field(default_factory=list)
    strengthened: List[SignalChange] = field(default_factory=list)
    weakened: List[SignalChange] = field(default_factory=list)
    unchanged: List[Signal] = field(default_factory=list)
    post_count_delta: int = 0
    post_count_percent: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(
            self.new_signals
            or self.gone_signals
            or self.strengthened
            or self.weakened
            or self.post_count_delta != 0
        )


__all__ = [
    "JsonDict",
    "Post",
    "Signal",
    "Report",
    "FetchOutcome",
    "SignalChange",
    "ReportComparison",
    "STRENGTH_ORDER",
    "SIGNAL_CATEGORIES",
]
