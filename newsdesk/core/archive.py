"""Archival of a cycle's rows before they are cleared for reprocessing."""

import logging
from datetime import date, datetime, timezone
from typing import Dict, List

from newsdesk.core.errors import ArchiveError, StoreError
from newsdesk.models.content import ArchivedArticle, ArchiveResult

logger = logging.getLogger(__name__)


class ArchiveService:
    """Copies articles, items and ratings into append-only archive tables."""

    def __init__(self, store):
        self.store = store

    def archive_cycle(self, cycle_id: int, reason: str = "cycle_reprocess") -> ArchiveResult:
        """Archive every live row of a cycle.

        Articles go first, keeping rank and editor positions, then items,
        then their ratings, all in one transaction. A missing rating archive
        table only skips the ratings.

        Raises:
            ArchiveError: on any other failure; nothing was archived and the
                caller must not clear
        """
        archived_at = datetime.now(timezone.utc)

        try:
            cycle = self.store.get_cycle(cycle_id)
            if cycle is None:
                raise ArchiveError(f"Cycle {cycle_id} does not exist")
            result = self.store.archive_cycle(cycle, reason, archived_at)
        except StoreError as e:
            raise ArchiveError(f"Archiving cycle {cycle_id} failed: {e}") from e

        if result.ratings_skipped:
            logger.warning("⚠️ Rating archive table missing, ratings not archived")

        logger.info(
            f"📦 Archived cycle {cycle_id}: {result.articles} articles, "
            f"{result.items} items, {result.ratings} ratings ({reason})"
        )
        return result

    def get_archived_articles(self, cycle_id: int) -> List[ArchivedArticle]:
        return self.store.get_archived_articles(cycle_id)

    def get_archived_articles_by_date_range(
        self, start: date, end: date
    ) -> List[ArchivedArticle]:
        if start > end:
            start, end = end, start
        return self.store.get_archived_articles_between(start, end)

    def get_archive_counts(self, cycle_id: int) -> Dict[str, int]:
        return self.store.count_archived(cycle_id)

    def get_archive_stats(self) -> Dict[str, object]:
        return self.store.archive_stats()
