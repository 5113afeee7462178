"""
One report run: fetch posts, analyze them, save the report, notify.

Ingestion, analysis and persistence failures end the run. A failed
notification is logged and reported as emailSent=false.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Literal, Optional, Sequence

import httpx

from trendwatcher.config import REQUEST_TIMEOUT
from trendwatcher.core.assembler import build_report
from trendwatcher.errors import ConfigurationError
from trendwatcher.models import Post, Report
from trendwatcher.services.analysis import SignalAnalyzer
from trendwatcher.services.notifier import EmailNotifier, build_email_html
from trendwatcher.settings import Settings
from trendwatcher.sources.auth import RedditTokenCache, token_cache
from trendwatcher.sources.collector import ingest
from trendwatcher.storage import ReportStore, report_to_row
from trendwatcher.utils import now_utc

logger = logging.getLogger(__name__)

EmailStatus = Literal["sent", "skipped", "failed"]


@dataclass
class RunResult:
    report: Report
    posts: List[Post]
    source_errors: List[str] = field(default_factory=list)
    email_status: EmailStatus = "skipped"

    @property
    def email_sent(self) -> bool:
        return self.email_status == "sent"


async def notify(
    report: Report,
    posts: Sequence[Post],
    recipients: Sequence[str],
    notifier: Optional[EmailNotifier],
) -> EmailStatus:
    """
    Send the report digest if recipients and a channel are configured.

    Never raises: any failure is logged and reported as "failed".
    """
    if notifier is None or not recipients:
        logger.info("Skipping email (no key or no recipients)")
        return "skipped"

    try:
        html = build_email_html(
            report.summary,
            report.signals,
            report.total_posts_analyzed,
            report.source_names,
            posts,
            date=report.created_at,
        )
        await notifier.send(html, recipients)
    except Exception:
        logger.exception("Email failed (non-blocking)")
        return "failed"
    return "sent"


async def run_report(
    settings: Settings,
    store: ReportStore,
    source_names: Optional[Sequence[str]] = None,
    recipients: Optional[Sequence[str]] = None,
    analyzer: Optional[SignalAnalyzer] = None,
    notifier: Optional[EmailNotifier] = None,
    client: Optional[httpx.AsyncClient] = None,
    cache: RedditTokenCache = token_cache,
    now: Optional[datetime] = None,
) -> RunResult:
    """
    Execute one complete run.

    Args:
        settings: Credentials and defaults
        store: Report store the new report is saved to
        source_names: Sources for this run (defaults to settings.source_names)
        recipients: E-mail recipients (defaults to settings.recipients)
        analyzer: Analysis collaborator (built from settings when omitted)
        notifier: Notification collaborator (built from settings when omitted)
        client: Shared HTTP client for fetching and notifying
        cache: OAuth token cache
        now: Reference time of the run

    Returns:
        RunResult of the saved report

    Raises:
        ConfigurationError: if no analysis collaborator can be built
        IngestionFailure: if no post was fetched
        AnalysisFailure: if the analysis failed
        PersistenceFailure: if the report could not be saved
    """
    if client is None:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as own_client:
            return await run_report(
                settings, store, source_names, recipients, analyzer, notifier, own_client, cache, now
            )

    sources = list(source_names or settings.source_names)
    to = list(recipients if recipients is not None else settings.recipients)

    if analyzer is None:
        if not settings.OPENAI_API_KEY:
            raise ConfigurationError("OPENAI_API_KEY not set")
        analyzer = SignalAnalyzer(settings.OPENAI_API_KEY, lookback_hours=settings.LOOKBACK_HOURS)
    if notifier is None and settings.BREVO_API_KEY:
        notifier = EmailNotifier(settings.BREVO_API_KEY, settings.EMAIL_SENDER, client=client)

    now = now or now_utc()
    window_start = now - timedelta(hours=settings.LOOKBACK_HOURS)

    logger.info("Fetching posts from: %s", ", ".join(sources))
    outcome = await ingest(sources, settings, cache=cache, client=client, now=now)

    logger.info("Running AI analysis on %d posts...", len(outcome.posts))
    analysis = await analyzer.analyze(outcome.posts, sources)

    report = build_report(outcome.posts, sources, analysis, window_start, now, now=now)
    # logged before saving so the analysis survives a failed write
    logger.info("Report assembled: %s", json.dumps(report_to_row(report), ensure_ascii=False))

    await asyncio.to_thread(store.save, report)
    logger.info("Report %s saved", report.id)

    email_status = await notify(report, outcome.posts, to, notifier)

    return RunResult(
        report=report,
        posts=outcome.posts,
        source_errors=outcome.errors,
        email_status=email_status,
    )
