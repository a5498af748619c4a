"""Slack webhook notifier for operational alerts."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp

from newsdesk.models.content import Cycle
from newsdesk.models.outcome import CycleReport

logger = logging.getLogger(__name__)


class SlackNotifier:
    """Fire-and-forget alerts posted to a Slack incoming webhook.

    Sending never raises; a missing webhook or a failed post is logged and
    reported as False.
    """

    def __init__(self, webhook_url: Optional[str], timeout: float = 10.0):
        self.webhook_url = webhook_url
        self.timeout = timeout

    async def send(
        self,
        title: str,
        text: str,
        color: str = "good",
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        if not self.webhook_url:
            logger.debug(f"Slack webhook not configured, not sending: {title}")
            return False

        attachment: Dict[str, Any] = {
            "color": color,
            "title": title,
            "text": text,
            "footer": "Newsdesk pipeline",
            "ts": int(datetime.now(timezone.utc).timestamp()),
        }
        if fields:
            attachment["fields"] = [
                {"title": key, "value": str(value), "short": True}
                for key, value in fields.items()
            ]

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.webhook_url,
                    json={"attachments": [attachment]},
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(
                            f"Slack notification failed: {response.status} - {error_text}"
                        )
                        return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Network error sending Slack notification: {e}")
            return False

        return True

    @staticmethod
    def _stage_lines(report: CycleReport) -> List[str]:
        return [f"• {stage.summary()}" for stage in report.stages]

    async def notify_cycle_complete(self, report: CycleReport) -> bool:
        fields: Dict[str, Any] = {
            "Items ingested": report.items_ingested,
            "Ratings": report.ratings_created,
            "Articles generated": report.articles_generated,
            "Active articles": report.active_articles,
        }
        if report.archive:
            fields["Archived"] = (
                f"{report.archive.articles} articles, {report.archive.items} items, "
                f"{report.archive.ratings} ratings"
            )
        lines = [f"Cycle {report.cycle_date} is ready for review (draft)."]
        if report.subject_line:
            lines.append(f"Subject: {report.subject_line}")
        if report.archive_error:
            lines.append(f"Archive was skipped: {report.archive_error}")
        lines.extend(self._stage_lines(report))
        color = "warning" if report.archive_error else "good"
        return await self.send(
            f"✅ Cycle {report.cycle_date} complete", "\n".join(lines), color, fields
        )

    async def notify_cycle_incomplete(self, report: CycleReport) -> bool:
        completed = ", ".join(report.completed_steps) or "none"
        lines = [
            f"Cycle {report.cycle_date} stopped and is still in processing.",
            f"Likely failed stage: {report.failed_stage or 'unknown'}",
            f"Completed steps: {completed}",
            f"Error: {report.error}",
        ]
        lines.extend(self._stage_lines(report))
        return await self.send(
            f"❌ Cycle {report.cycle_date} incomplete", "\n".join(lines), "danger"
        )

    async def notify_archive_failure(self, cycle: Cycle, error: Exception) -> bool:
        text = (
            f"Archiving cycle {cycle.date} (id {cycle.id}) failed, so its rows were "
            f"not cleared. Position metadata may be at risk.\nError: {error}"
        )
        return await self.send(f"⚠️ Archive failed for {cycle.date}", text, "danger")
