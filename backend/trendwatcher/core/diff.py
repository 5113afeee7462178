"""
Report comparison.

Signals carry no identity across reports, so a signal's counterpart in another
report is recomputed from its normalized title every time. Matching is exact on
normalized text: a reworded title shows up as new + gone rather than risking a
match between two different trends.
"""
from __future__ import annotations

import math
import re
from typing import Iterable, Optional

from trendwatcher.models import STRENGTH_ORDER, Report, ReportComparison, Signal, SignalChange

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def normalize_title(title: str) -> str:
    """
    Normalize a signal title for comparison.

    Args:
        title: Free-text title

    Returns:
        Lowercased title with every run of non-alphanumerics collapsed to one space
    """
    return _NON_ALNUM_RE.sub(" ", (title or "").lower()).strip()


def find_match(signal: Signal, candidates: Iterable[Signal]) -> Optional[Signal]:
    """
    Find the counterpart of a signal among candidates.

    Among candidates with the same normalized title, one with the same category
    is preferred; otherwise the first one wins.

    Args:
        signal: Signal to look up
        candidates: Signals of the other report, in report order

    Returns:
        Matching signal, or None
    """
    normalized = normalize_title(signal.title)
    same_title = [c for c in candidates if normalize_title(c.title) == normalized]
    if len(same_title) > 1:
        for candidate in same_title:
            if candidate.category == signal.category:
                return candidate
    return same_title[0] if same_title else None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compare_reports(current: Report, previous: Report) -> ReportComparison:
    """
    Classify every signal of two reports.

    Args:
        current: The newer report
        previous: The report it is compared against

    Returns:
        ReportComparison with new, gone, strengthened, weakened and unchanged
        signals plus the post volume delta
    """
    comparison = ReportComparison(current=current, previous=previous)

    for signal in current.signals:
        prev = find_match(signal, previous.signals)
        if prev is None:
            comparison.new_signals.append(signal)
        elif STRENGTH_ORDER[signal.strength] > STRENGTH_ORDER[prev.strength]:
            comparison.strengthened.append(SignalChange(signal=signal, from_strength=prev.strength))
        elif STRENGTH_ORDER[signal.strength] < STRENGTH_ORDER[prev.strength]:
            comparison.weakened.append(SignalChange(signal=signal, from_strength=prev.strength))
        else:
            comparison.unchanged.append(signal)

    comparison.gone_signals = [
        prev for prev in previous.signals if find_match(prev, current.signals) is None
    ]

    delta = current.total_posts_analyzed - previous.total_posts_analyzed
    comparison.post_count_delta = delta
    if previous.total_posts_analyzed > 0:
        comparison.post_count_percent = _round_half_up(delta / previous.total_posts_analyzed * 100)
    else:
        comparison.post_count_percent = 0

    return comparison
