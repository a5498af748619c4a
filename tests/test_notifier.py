"""Tests for Slack alerts."""

from unittest.mock import AsyncMock, patch

import aiohttp
import pytest
from conftest import CYCLE_DATE, fake_session

from newsdesk.clients.slack import SlackNotifier
from newsdesk.models.content import ArchiveResult, Cycle
from newsdesk.models.outcome import CycleReport, Outcome, StageReport

WEBHOOK = "https://hooks.slack.example/services/T000/B000/XXX"
SESSION = "newsdesk.clients.slack.aiohttp.ClientSession"


@pytest.fixture
def report():
    report = CycleReport(cycle_date=CYCLE_DATE, cycle_id=7)
    stage = report.add_stage(StageReport(stage="ingest"))
    stage.add(Outcome.success("feed 1"))
    stage.add(Outcome.failed("feed 2", "HTTP 500"))
    return report


@pytest.mark.asyncio
async def test_send_without_webhook_is_a_no_op():
    assert await SlackNotifier(None).send("title", "text") is False


@pytest.mark.asyncio
async def test_send_posts_attachment():
    factory = fake_session(200)
    with patch(SESSION, return_value=factory):
        assert await SlackNotifier(WEBHOOK).send("Title", "Body", "danger", {"Items": 3})

    session = factory.__aenter__.return_value
    payload = session.post.call_args.kwargs["json"]
    attachment = payload["attachments"][0]
    assert session.post.call_args.args[0] == WEBHOOK
    assert attachment["color"] == "danger"
    assert attachment["title"] == "Title"
    assert attachment["fields"] == [{"title": "Items", "value": "3", "short": True}]


@pytest.mark.asyncio
async def test_send_passes_hex_color_through():
    factory = fake_session(200)
    with patch(SESSION, return_value=factory):
        await SlackNotifier(WEBHOOK).send("Title", "Body", "#36a64f")

    payload = factory.__aenter__.return_value.post.call_args.kwargs["json"]
    assert payload["attachments"][0]["color"] == "#36a64f"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "factory",
    [
        fake_session(500, text="invalid_payload"),
        fake_session(error=aiohttp.ClientConnectionError("refused")),
    ],
)
async def test_send_failures_return_false(factory):
    with patch(SESSION, return_value=factory):
        assert await SlackNotifier(WEBHOOK).send("Title", "Body") is False


@pytest.mark.asyncio
async def test_incomplete_cycle_names_failed_stage(report):
    report.failed_stage = "Feed Ingestion"
    report.completed_steps = ["Archive"]
    report.error = "disk I/O error"
    notifier = SlackNotifier(WEBHOOK)

    with patch.object(notifier, "send", AsyncMock(return_value=True)) as send:
        await notifier.notify_cycle_incomplete(report)

    title, text, color = send.await_args.args
    assert "incomplete" in title
    assert color == "danger"
    assert "Likely failed stage: Feed Ingestion" in text
    assert "Completed steps: Archive" in text
    assert "ingest: 1 ok, 0 skipped, 1 failed" in text


@pytest.mark.asyncio
async def test_complete_cycle_summary(report):
    report.archive = ArchiveResult(cycle_id=7, articles=4, items=5, ratings=5)
    report.subject_line = "Rockets and rivers"
    report.active_articles = 3
    notifier = SlackNotifier(WEBHOOK)

    with patch.object(notifier, "send", AsyncMock(return_value=True)) as send:
        await notifier.notify_cycle_complete(report)

    title, text, color, fields = send.await_args.args
    assert color == "good"
    assert "Subject: Rockets and rivers" in text
    assert fields["Active articles"] == 3
    assert fields["Archived"] == "4 articles, 5 items, 5 ratings"


@pytest.mark.asyncio
async def test_archive_failure_alert():
    notifier = SlackNotifier(WEBHOOK)
    cycle = Cycle(id=7, date=CYCLE_DATE)

    with patch.object(notifier, "send", AsyncMock(return_value=True)) as send:
        await notifier.notify_archive_failure(cycle, RuntimeError("disk full"))

    title, text, color = send.await_args.args
    assert str(CYCLE_DATE) in title
    assert "not cleared" in text
    assert "disk full" in text
