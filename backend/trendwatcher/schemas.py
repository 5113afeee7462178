# trendwatcher/schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from trendwatcher.models import Report, ReportComparison, Signal, SignalChange


# ---------------------------------------------------------------------------
# Analysis response (what the language model must return)
# ---------------------------------------------------------------------------

class AnalysisSignal(BaseModel):
    category: Literal["emerging_topic", "growing_trend", "pain_point", "hypothesis"]
    title: str = Field(min_length=1)
    description: str = ""
    strength: Literal["low", "medium", "high"]
    sentiment: Literal["positive", "negative", "mixed", "neutral"]
    postCount: int = Field(default=0, ge=0)
    sourceNames: List[str] = Field(
        min_length=1, validation_alias=AliasChoices("sourceNames", "subreddits")
    )
    growthPercent: Optional[int] = None

    @field_validator("category", "strength", "sentiment", mode="before")
    @classmethod
    def _lowercase(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("growthPercent", mode="before")
    @classmethod
    def _round_growth(cls, value):
        if isinstance(value, float):
            return round(value)
        return value


class AnalysisResult(BaseModel):
    summary: str = Field(min_length=1)
    signals: List[AnalysisSignal]


# ---------------------------------------------------------------------------
# HTTP API
# ---------------------------------------------------------------------------

class TriggerRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sourceNames: Optional[List[str]] = Field(
        default=None, validation_alias=AliasChoices("sourceNames", "subreddits")
    )
    recipients: Optional[List[str]] = None


class TriggerResponse(BaseModel):
    success: bool = True
    postsAnalyzed: int
    signalsFound: int
    emailSent: bool
    emailStatus: Literal["sent", "skipped", "failed"]
    reportId: str
    sourceErrors: List[str] = Field(default_factory=list)


class SignalOut(BaseModel):
    id: str
    category: str
    title: str
    description: str
    strength: str
    sentiment: str
    postCount: int
    sourceNames: List[str]
    growthPercent: Optional[int] = None

    @classmethod
    def from_signal(cls, signal: Signal) -> "SignalOut":
        return cls(
            id=signal.id,
            category=signal.category,
            title=signal.title,
            description=signal.description,
            strength=signal.strength,
            sentiment=signal.sentiment,
            postCount=signal.post_count,
            sourceNames=list(signal.source_names),
            growthPercent=signal.growth_percent,
        )


class ReportOut(BaseModel):
    id: str
    createdAt: datetime
    windowStart: datetime
    windowEnd: datetime
    sourceNames: List[str]
    totalPostsAnalyzed: int
    summary: str
    signals: List[SignalOut]
    rawPostCountBySource: Dict[str, int]

    @classmethod
    def from_report(cls, report: Report) -> "ReportOut":
        return cls(
            id=report.id,
            createdAt=report.created_at,
            windowStart=report.window_start,
            windowEnd=report.window_end,
            sourceNames=list(report.source_names),
            totalPostsAnalyzed=report.total_posts_analyzed,
            summary=report.summary,
            signals=[SignalOut.from_signal(s) for s in report.signals],
            rawPostCountBySource=dict(report.raw_post_count_by_source),
        )


class SignalChangeOut(BaseModel):
    signal: SignalOut
    from_: str = Field(serialization_alias="from")

    @classmethod
    def from_change(cls, change: SignalChange) -> "SignalChangeOut":
        return cls(signal=SignalOut.from_signal(change.signal), from_=change.from_strength)


class ComparisonOut(BaseModel):
    currentId: str
    previousId: str
    newSignals: List[SignalOut]
    goneSignals: List[SignalOut]
    strengthened: List[SignalChangeOut]
    weakened: List[SignalChangeOut]
    postCountDelta: int
    postCountPercent: int
    hasChanges: bool

    @classmethod
    def from_comparison(cls, comparison: ReportComparison) -> "ComparisonOut":
        return cls(
            currentId=comparison.current.id,
            previousId=comparison.previous.id,
            newSignals=[SignalOut.from_signal(s) for s in comparison.new_signals],
            goneSignals=[SignalOut.from_signal(s) for s in comparison.gone_signals],
            strengthened=[SignalChangeOut.from_change(c) for c in comparison.strengthened],
            weakened=[SignalChangeOut.from_change(c) for c in comparison.weakened],
            postCountDelta=comparison.post_count_delta,
            postCountPercent=comparison.post_count_percent,
            hasChanges=comparison.has_changes,
        )


class DiffResponse(BaseModel):
    comparison: Optional[ComparisonOut] = None


class SettingsPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sourceNames: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("sourceNames", "subreddits")
    )
    recipients: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("recipients", "emailRecipients")
    )
