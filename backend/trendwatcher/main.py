"""
Main FastAPI application and routing layer.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator, List, Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from trendwatcher.config import CORS_ALLOW_ORIGINS, LOG_FORMAT, LOG_LEVEL, REQUEST_TIMEOUT
from trendwatcher.core.diff import compare_reports
from trendwatcher.errors import ConfigurationError, IngestionFailure, RunFailure
from trendwatcher.pipeline import run_report
from trendwatcher.schemas import (
    ComparisonOut,
    DiffResponse,
    ReportOut,
    SettingsPayload,
    TriggerRequest,
    TriggerResponse,
)
from trendwatcher.services.analysis import SignalAnalyzer
from trendwatcher.services.notifier import EmailNotifier
from trendwatcher.settings import Settings, get_settings
from trendwatcher.sources.auth import RedditTokenCache, token_cache
from trendwatcher.storage import AppSettings, ReportStore, SettingsStore, create_stores
from trendwatcher.utils import now_utc

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

# Global instances, created on first use
_report_store: Optional[ReportStore] = None
_settings_store: Optional[SettingsStore] = None


def _init_stores(settings: Settings) -> None:
    global _report_store, _settings_store
    if _report_store is None or _settings_store is None:
        _report_store, _settings_store = create_stores(settings)


def get_report_store(settings: Settings = Depends(get_settings)) -> ReportStore:
    _init_stores(settings)
    return _report_store


def get_settings_store(settings: Settings = Depends(get_settings)) -> SettingsStore:
    _init_stores(settings)
    return _settings_store


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
        yield client


def get_analyzer(settings: Settings = Depends(get_settings)) -> Optional[SignalAnalyzer]:
    if not settings.OPENAI_API_KEY:
        return None
    return SignalAnalyzer(settings.OPENAI_API_KEY, lookback_hours=settings.LOOKBACK_HOURS)


def get_notifier(
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Optional[EmailNotifier]:
    if not settings.BREVO_API_KEY:
        return None
    return EmailNotifier(settings.BREVO_API_KEY, settings.EMAIL_SENDER, client=client)


def get_token_cache() -> RedditTokenCache:
    return token_cache


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TrendWatcher API",
    version="0.1.0",
    description="Reddit trend signals: daily reports and report comparison"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Configuration error: %s", exc.message)
    return JSONResponse(status_code=500, content={"error": exc.message, "stage": "configuration"})


@app.exception_handler(RunFailure)
async def run_failure_handler(request: Request, exc: RunFailure):
    logger.error("Run failed at %s: %s", exc.stage, exc)
    status_code = 502 if exc.stage in ("ingestion", "analysis") else 500
    content = {"error": exc.message, "stage": exc.stage}
    if isinstance(exc, IngestionFailure):
        content["sourceErrors"] = exc.source_errors
        content["sourceNames"] = exc.source_names
    elif exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=status_code, content=content)


async def parse_trigger_body(request: Request) -> TriggerRequest:
    """Read the optional trigger body; anything unusable means 'use defaults'."""
    raw = await request.body()
    if not raw.strip():
        return TriggerRequest()
    try:
        return TriggerRequest.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as e:
        logger.warning("Ignoring invalid trigger body: %s", e)
        return TriggerRequest()


@app.get("/health")
async def health_check(settings: Settings = Depends(get_settings)):
    """Health check endpoint."""
    return {
        "status": "ok",
        "as_of": now_utc().isoformat(),
        "service": "trendwatcher",
        "lookback_hours": settings.LOOKBACK_HOURS,
    }


@app.post("/daily-report", response_model=TriggerResponse)
async def trigger_daily_report(
    body: TriggerRequest = Depends(parse_trigger_body),
    settings: Settings = Depends(get_settings),
    store: ReportStore = Depends(get_report_store),
    client: httpx.AsyncClient = Depends(get_http_client),
    analyzer: Optional[SignalAnalyzer] = Depends(get_analyzer),
    notifier: Optional[EmailNotifier] = Depends(get_notifier),
    cache: RedditTokenCache = Depends(get_token_cache),
):
    """
    Fetch posts, analyze them, save the report and e-mail it.

    The body is optional: {"sourceNames": [...], "recipients": [...]}.
    """
    if analyzer is None:
        raise ConfigurationError("OPENAI_API_KEY not set")

    result = await run_report(
        settings,
        store,
        source_names=body.sourceNames or None,
        recipients=body.recipients,
        analyzer=analyzer,
        notifier=notifier,
        client=client,
        cache=cache,
    )

    return TriggerResponse(
        postsAnalyzed=result.report.total_posts_analyzed,
        signalsFound=len(result.report.signals),
        emailSent=result.email_sent,
        emailStatus=result.email_status,
        reportId=result.report.id,
        sourceErrors=result.source_errors,
    )


@app.get("/reports", response_model=List[ReportOut])
async def list_reports(store: ReportStore = Depends(get_report_store)):
    """All reports, newest first."""
    reports = await asyncio.to_thread(store.list_all)
    return [ReportOut.from_report(r) for r in reports]


@app.get("/reports/{report_id}", response_model=ReportOut)
async def get_report(report_id: str, store: ReportStore = Depends(get_report_store)):
    report = await asyncio.to_thread(store.get_by_id, report_id)
    if report is None:
        raise HTTPException(status_code=404, detail=f"Report {report_id} not found")
    return ReportOut.from_report(report)


@app.delete("/reports/{report_id}", status_code=204)
async def delete_report(report_id: str, store: ReportStore = Depends(get_report_store)):
    deleted = await asyncio.to_thread(store.delete, report_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Report {report_id} not found")


@app.get("/reports/{report_id}/diff", response_model=DiffResponse)
async def diff_report(
    report_id: str,
    against: Optional[str] = Query(None, description="Report id to compare with (defaults to the previous report)"),
    store: ReportStore = Depends(get_report_store),
):
    """
    Compare a report with the most recent strictly older report, or with `against`.
    """
    current = await asyncio.to_thread(store.get_by_id, report_id)
    if current is None:
        raise HTTPException(status_code=404, detail=f"Report {report_id} not found")

    if against:
        previous = await asyncio.to_thread(store.get_by_id, against)
        if previous is None:
            raise HTTPException(status_code=404, detail=f"Report {against} not found")
    else:
        previous = await asyncio.to_thread(store.get_previous, current)

    if previous is None:
        return DiffResponse(comparison=None)
    return DiffResponse(comparison=ComparisonOut.from_comparison(compare_reports(current, previous)))


@app.get("/settings", response_model=SettingsPayload)
async def read_settings(
    settings: Settings = Depends(get_settings),
    settings_store: SettingsStore = Depends(get_settings_store),
):
    stored = await asyncio.to_thread(settings_store.load)
    if stored is None:
        return SettingsPayload(sourceNames=settings.source_names, recipients=settings.recipients)
    return SettingsPayload(sourceNames=stored.source_names, recipients=stored.recipients)


@app.put("/settings", response_model=SettingsPayload)
async def update_settings(
    payload: SettingsPayload,
    settings_store: SettingsStore = Depends(get_settings_store),
):
    stored = AppSettings(source_names=payload.sourceNames, recipients=payload.recipients)
    await asyncio.to_thread(settings_store.save, stored)
    return payload


if __name__ == "__main__":
    # For development
    import uvicorn
    uvicorn.run("trendwatcher.main:app", host="0.0.0.0", port=8000, reload=True)
