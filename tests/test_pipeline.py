"""
End-to-end runs: ingestion over mocked HTTP, fake analysis, in-memory store.

Run with: pytest tests/test_pipeline.py -v
"""
import logging
from unittest.mock import AsyncMock

import httpx
import pytest

from conftest import NOW, FakeAnalyzer, atom_feed, listing_child, listing_payload, make_settings, mock_client
from trendwatcher.errors import (
    AnalysisFailure,
    ConfigurationError,
    IngestionFailure,
    NotificationFailure,
    PersistenceFailure,
)
from trendwatcher.pipeline import run_report
from trendwatcher.services.notifier import EmailNotifier
from trendwatcher.sources.auth import RedditTokenCache
from trendwatcher.storage import InMemoryReportStore

SOURCES = ["lonely", "depression", "socialskills"]


def reddit_handler(working: dict):
    """Token exchange works, OAuth listings fail, direct works for `working` sources, RSS fails."""
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/v1/access_token":
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        if request.url.host == "oauth.reddit.com":
            return httpx.Response(403)
        if path.endswith("hot.rss"):
            return httpx.Response(500)
        name = path.split("/")[2]
        if name in working:
            return httpx.Response(200, json=listing_payload(*working[name]))
        return httpx.Response(403)
    return handler


class FailingStore(InMemoryReportStore):
    def save(self, report):
        raise PersistenceFailure("Failed to save report: boom")


class TestRunReport:
    async def test_partial_source_failure_still_produces_report(self):
        settings = make_settings(REDDIT_CLIENT_ID="id", REDDIT_CLIENT_SECRET="secret")
        working = {
            "lonely": [listing_child("a"), listing_child("b")],
            "depression": [listing_child("c", subreddit="depression")],
        }
        store = InMemoryReportStore()
        analyzer = FakeAnalyzer()

        async with mock_client(reddit_handler(working)) as client:
            result = await run_report(
                settings, store, SOURCES, recipients=[],
                analyzer=analyzer, client=client, cache=RedditTokenCache(), now=NOW,
            )

        report = result.report
        assert report.total_posts_analyzed == 3
        assert report.raw_post_count_by_source == {"lonely": 2, "depression": 1, "socialskills": 0}
        assert len(result.source_errors) == 1
        assert result.source_errors[0].startswith("socialskills: ")
        assert analyzer.calls == 1
        assert store.get_by_id(report.id) is report
        assert result.email_status == "skipped"

    async def test_all_sources_failing_never_calls_analysis(self):
        store = InMemoryReportStore()
        analyzer = FakeAnalyzer()

        async with mock_client(reddit_handler({})) as client:
            with pytest.raises(IngestionFailure) as exc_info:
                await run_report(
                    make_settings(), store, SOURCES, analyzer=analyzer,
                    client=client, cache=RedditTokenCache(), now=NOW,
                )

        assert analyzer.calls == 0
        assert len(exc_info.value.source_errors) == 3
        assert store.list_all() == []

    async def test_feed_fallback_alone_is_enough(self):
        xml = atom_feed()

        def handler(request):
            if request.url.path.endswith("hot.rss"):
                return httpx.Response(200, text=xml.replace(
                    "</feed>",
                    "<entry><id>t3_z</id><link href=\"https://www.reddit.com/r/lonely/comments/z/t/\"/>"
                    "<updated>2026-10-16T11:00:00+00:00</updated><title>Hi</title></entry></feed>",
                ))
            return httpx.Response(403)

        async with mock_client(handler) as client:
            result = await run_report(
                make_settings(), InMemoryReportStore(), ["lonely"], analyzer=FakeAnalyzer(),
                client=client, cache=RedditTokenCache(), now=NOW,
            )

        assert [(p.id, p.score, p.comment_count) for p in result.posts] == [("z", 0, 0)]

    async def test_analysis_failure_is_fatal(self):
        store = InMemoryReportStore()
        analyzer = FakeAnalyzer(error=AnalysisFailure("Empty response from OpenAI"))

        async with mock_client(reddit_handler({"lonely": [listing_child("a")]})) as client:
            with pytest.raises(AnalysisFailure):
                await run_report(
                    make_settings(), store, ["lonely"], analyzer=analyzer,
                    client=client, cache=RedditTokenCache(), now=NOW,
                )

        assert store.list_all() == []

    async def test_persistence_failure_is_fatal_but_report_is_logged(self, caplog):
        caplog.set_level(logging.INFO, logger="trendwatcher.pipeline")

        async with mock_client(reddit_handler({"lonely": [listing_child("a")]})) as client:
            with pytest.raises(PersistenceFailure):
                await run_report(
                    make_settings(), FailingStore(), ["lonely"], analyzer=FakeAnalyzer(),
                    client=client, cache=RedditTokenCache(), now=NOW,
                )

        assert any("Report assembled" in r.getMessage() and "People are lonely" in r.getMessage()
                   for r in caplog.records)

    async def test_notification_failure_is_not_fatal(self):
        notifier = EmailNotifier("key", "bot@example.com")
        notifier.send = AsyncMock(side_effect=NotificationFailure("Brevo error 500: down"))
        store = InMemoryReportStore()

        async with mock_client(reddit_handler({"lonely": [listing_child("a")]})) as client:
            result = await run_report(
                make_settings(), store, ["lonely"], recipients=["ops@example.com"],
                analyzer=FakeAnalyzer(), notifier=notifier,
                client=client, cache=RedditTokenCache(), now=NOW,
            )

        assert result.email_status == "failed"
        assert not result.email_sent
        assert len(store.list_all()) == 1

    async def test_notification_sent_when_recipients_and_channel_exist(self):
        notifier = EmailNotifier("key", "bot@example.com")
        notifier.send = AsyncMock()

        async with mock_client(reddit_handler({"lonely": [listing_child("a")]})) as client:
            result = await run_report(
                make_settings(), InMemoryReportStore(), ["lonely"], recipients=["ops@example.com"],
                analyzer=FakeAnalyzer(), notifier=notifier,
                client=client, cache=RedditTokenCache(), now=NOW,
            )

        assert result.email_sent
        html, recipients = notifier.send.await_args.args
        assert recipients == ["ops@example.com"]
        assert "People are lonely on weekends." in html

    async def test_no_recipients_skips_notification(self):
        notifier = EmailNotifier("key", "bot@example.com")
        notifier.send = AsyncMock()

        async with mock_client(reddit_handler({"lonely": [listing_child("a")]})) as client:
            result = await run_report(
                make_settings(), InMemoryReportStore(), ["lonely"], recipients=[],
                analyzer=FakeAnalyzer(), notifier=notifier,
                client=client, cache=RedditTokenCache(), now=NOW,
            )

        assert result.email_status == "skipped"
        notifier.send.assert_not_awaited()

    async def test_missing_openai_key_fails_before_fetching(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        async with mock_client(handler) as client:
            with pytest.raises(ConfigurationError):
                await run_report(make_settings(OPENAI_API_KEY=""), InMemoryReportStore(), client=client)

        assert calls == []
