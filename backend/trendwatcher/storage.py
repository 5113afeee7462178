"""
File: trendwatcher/storage.py
Report history and operator settings.

Reports are append-only: saved once, listed newest first, deleted only by an
explicit operator action. The Supabase client is synchronous; async callers
wrap these methods with asyncio.to_thread.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from supabase import Client, create_client

from trendwatcher.config import REPORTS_TABLE, SETTINGS_ROW_ID, SETTINGS_TABLE
from trendwatcher.errors import PersistenceFailure
from trendwatcher.models import JsonDict, Report, Signal
from trendwatcher.settings import Settings
from trendwatcher.sources.common import parse_utc_datetime
from trendwatcher.utils import isoformat_z, now_utc

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------

def signal_to_dict(signal: Signal) -> JsonDict:
    return {
        "id": signal.id,
        "category": signal.category,
        "title": signal.title,
        "description": signal.description,
        "strength": signal.strength,
        "sentiment": signal.sentiment,
        "postCount": signal.post_count,
        "sourceNames": list(signal.source_names),
        "growthPercent": signal.growth_percent,
    }


def signal_from_dict(data: JsonDict) -> Signal:
    return Signal(
        id=str(data.get("id", "")),
        category=data["category"],
        title=data.get("title", ""),
        description=data.get("description", ""),
        strength=data["strength"],
        sentiment=data.get("sentiment", "neutral"),
        post_count=int(data.get("postCount") or 0),
        source_names=list(data.get("sourceNames") or data.get("subreddits") or []),
        growth_percent=data.get("growthPercent"),
    )


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    parsed = parse_utc_datetime(value)
    if parsed is None:
        raise ValueError(f"invalid timestamp in report row: {value!r}")
    return parsed


def report_to_row(report: Report) -> JsonDict:
    return {
        "id": report.id,
        "created_at": isoformat_z(report.created_at),
        "date_from": isoformat_z(report.window_start),
        "date_to": isoformat_z(report.window_end),
        "subreddits": list(report.source_names),
        "total_posts_analyzed": report.total_posts_analyzed,
        "summary": report.summary,
        "signals": [signal_to_dict(s) for s in report.signals],
        "raw_post_count": dict(report.raw_post_count_by_source),
    }


def row_to_report(row: JsonDict) -> Report:
    return Report(
        id=row["id"],
        created_at=_as_datetime(row["created_at"]),
        window_start=_as_datetime(row["date_from"]),
        window_end=_as_datetime(row["date_to"]),
        source_names=list(row.get("subreddits") or []),
        total_posts_analyzed=int(row.get("total_posts_analyzed") or 0),
        summary=row.get("summary") or "",
        signals=[signal_from_dict(s) for s in row.get("signals") or []],
        raw_post_count_by_source=dict(row.get("raw_post_count") or {}),
    )


# ---------------------------------------------------------------------------
# Report stores
# ---------------------------------------------------------------------------

class ReportStore(Protocol):
    def save(self, report: Report) -> None: ...

    def list_all(self) -> List[Report]: ...

    def get_by_id(self, report_id: str) -> Optional[Report]: ...

    def get_latest(self) -> Optional[Report]: ...

    def get_previous(self, report: Report) -> Optional[Report]: ...

    def delete(self, report_id: str) -> bool: ...


class InMemoryReportStore:
    """Process-local store used when Supabase is not configured, and in tests."""

    def __init__(self, reports: Optional[List[Report]] = None):
        self._reports: Dict[str, Report] = {}
        self._lock = threading.Lock()
        for report in reports or []:
            self.save(report)

    def save(self, report: Report) -> None:
        with self._lock:
            if report.id in self._reports:
                raise PersistenceFailure(f"Report {report.id} already exists")
            self._reports[report.id] = report

    def list_all(self) -> List[Report]:
        with self._lock:
            return sorted(self._reports.values(), key=lambda r: r.created_at, reverse=True)

    def get_by_id(self, report_id: str) -> Optional[Report]:
        with self._lock:
            return self._reports.get(report_id)

    def get_latest(self) -> Optional[Report]:
        reports = self.list_all()
        return reports[0] if reports else None

    def get_previous(self, report: Report) -> Optional[Report]:
        for candidate in self.list_all():
            if candidate.created_at < report.created_at:
                return candidate
        return None

    def delete(self, report_id: str) -> bool:
        with self._lock:
            return self._reports.pop(report_id, None) is not None


class SupabaseReportStore:
    """Reports persisted in the `reports` table."""

    def __init__(self, client: Client, table: str = REPORTS_TABLE):
        self.client = client
        self.table = table

    def save(self, report: Report) -> None:
        try:
            self.client.table(self.table).insert(report_to_row(report)).execute()
        except Exception as e:
            raise PersistenceFailure(f"Failed to save report: {e}", {"reportId": report.id}) from e

    def list_all(self) -> List[Report]:
        try:
            result = (
                self.client.table(self.table)
                .select("*")
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure(f"Failed to load reports: {e}") from e
        return [row_to_report(row) for row in result.data or []]

    def get_by_id(self, report_id: str) -> Optional[Report]:
        try:
            result = (
                self.client.table(self.table)
                .select("*")
                .eq("id", report_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure(f"Failed to load report {report_id}: {e}") from e
        rows = result.data or []
        return row_to_report(rows[0]) if rows else None

    def _first(self, query) -> Optional[Report]:
        try:
            result = query.order("created_at", desc=True).limit(1).execute()
        except Exception as e:
            raise PersistenceFailure(f"Failed to load reports: {e}") from e
        rows = result.data or []
        return row_to_report(rows[0]) if rows else None

    def get_latest(self) -> Optional[Report]:
        return self._first(self.client.table(self.table).select("*"))

    def get_previous(self, report: Report) -> Optional[Report]:
        query = (
            self.client.table(self.table)
            .select("*")
            .lt("created_at", isoformat_z(report.created_at))
        )
        return self._first(query)

    def delete(self, report_id: str) -> bool:
        try:
            result = self.client.table(self.table).delete().eq("id", report_id).execute()
        except Exception as e:
            raise PersistenceFailure(f"Failed to delete report: {e}", {"reportId": report_id}) from e
        return bool(result.data)


# ---------------------------------------------------------------------------
# Operator settings
# ---------------------------------------------------------------------------

@dataclass
class AppSettings:
    source_names: List[str] = field(default_factory=list)
    recipients: List[str] = field(default_factory=list)


class SettingsStore(Protocol):
    def load(self) -> Optional[AppSettings]: ...

    def save(self, settings: AppSettings) -> None: ...


class InMemorySettingsStore:
    def __init__(self, initial: Optional[AppSettings] = None):
        self._settings = initial

    def load(self) -> Optional[AppSettings]:
        return self._settings

    def save(self, settings: AppSettings) -> None:
        self._settings = AppSettings(list(settings.source_names), list(settings.recipients))


class SupabaseSettingsStore:
    """The single `app_settings` row with id 'global'."""

    def __init__(self, client: Client, table: str = SETTINGS_TABLE, row_id: str = SETTINGS_ROW_ID):
        self.client = client
        self.table = table
        self.row_id = row_id

    def load(self) -> Optional[AppSettings]:
        try:
            result = (
                self.client.table(self.table)
                .select("subreddits, email_recipients")
                .eq("id", self.row_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("Failed to load settings: %s", e)
            return None
        rows = result.data or []
        if not rows:
            return None
        row = rows[0]
        return AppSettings(
            source_names=list(row.get("subreddits") or []),
            recipients=list(row.get("email_recipients") or []),
        )

    def save(self, settings: AppSettings) -> None:
        try:
            self.client.table(self.table).upsert({
                "id": self.row_id,
                "subreddits": list(settings.source_names),
                "email_recipients": list(settings.recipients),
                "updated_at": isoformat_z(now_utc()),
            }).execute()
        except Exception as e:
            raise PersistenceFailure(f"Failed to save settings: {e}") from e


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

def create_supabase_client(settings: Settings) -> Client:
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)


def create_stores(settings: Settings) -> tuple[ReportStore, SettingsStore]:
    """
    Build the report and settings stores for the configured backend.

    Falls back to in-memory stores when Supabase credentials are missing.
    """
    if settings.has_supabase:
        client = create_supabase_client(settings)
        return SupabaseReportStore(client), SupabaseSettingsStore(client)

    logger.warning("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not set - reports are kept in memory")
    return InMemoryReportStore(), InMemorySettingsStore()
