"""Cross-item duplicate detection with a single AI call per cycle."""

import logging
from typing import List, Set

from pydantic import BaseModel, Field

from newsdesk.core.completion import DuplicateGroupsResult, parse_completion
from newsdesk.core.errors import AIError, ParseError, StoreError
from newsdesk.core.prompts import dedup_prompt
from newsdesk.models.content import DuplicateGroup, SourceItem
from newsdesk.models.outcome import Outcome, StageReport

logger = logging.getLogger(__name__)


class DedupResult(BaseModel):
    """Duplicate groups for a cycle and the report of how they were found."""

    groups: List[DuplicateGroup] = Field(default_factory=list)
    report: StageReport = Field(default_factory=lambda: StageReport(stage="dedup"))

    @property
    def excluded_ids(self) -> Set[int]:
        """Items that are non-primary members of some group."""
        return {item_id for g in self.groups for item_id in g.member_item_ids}


class DuplicateDetector:
    """Groups items that report the same story.

    Detection is best-effort: any failure leaves every item unique.
    """

    def __init__(self, ai, store):
        self.ai = ai
        self.store = store

    async def detect(self, cycle_id: int, items: List[SourceItem]) -> DedupResult:
        result = DedupResult()
        unit = f"cycle {cycle_id}"

        try:
            existing = self.store.get_duplicate_groups(cycle_id)
        except StoreError as e:
            logger.warning(f"Could not read duplicate groups, skipping dedup: {e}")
            result.report.add(Outcome.skipped(unit, f"store error: {e}"))
            return result

        if existing:
            logger.info(f"♻️ Reusing {len(existing)} duplicate group(s) for cycle {cycle_id}")
            result.groups = existing
            result.report.add(Outcome.skipped(unit, "groups already recorded"))
            return result

        if len(items) < 2:
            result.report.add(Outcome.skipped(unit, "fewer than two items"))
            return result

        try:
            raw = await self.ai.complete(
                dedup_prompt(items), max_tokens=2000, temperature=0.1
            )
            payload = parse_completion(raw, DuplicateGroupsResult)
        except (AIError, ParseError) as e:
            logger.warning(f"⚠️ Duplicate detection skipped for cycle {cycle_id}: {e}")
            result.report.add(Outcome.skipped(unit, f"detection failed: {e}"))
            return result

        groups = self.resolve_groups(cycle_id, items, payload)
        if groups:
            try:
                groups = self.store.save_duplicate_groups(cycle_id, groups)
            except StoreError as e:
                logger.warning(f"⚠️ Could not store duplicate groups, ignoring them: {e}")
                result.report.add(Outcome.skipped(unit, f"store error: {e}"))
                return result

        result.groups = groups
        result.report.add(Outcome.success(unit))
        logger.info(
            f"🔁 Found {len(groups)} duplicate group(s), "
            f"excluding {len(result.excluded_ids)} item(s)"
        )
        return result

    @staticmethod
    def resolve_groups(
        cycle_id: int, items: List[SourceItem], payload: DuplicateGroupsResult
    ) -> List[DuplicateGroup]:
        """Map prompt indices back to item ids.

        Out-of-range indices are ignored and a primary is never recorded as
        its own duplicate. Items already anchoring a group are not demoted.
        """
        groups: List[DuplicateGroup] = []
        primaries: Set[int] = set()
        members: Set[int] = set()

        for entry in payload.groups:
            primary_index = entry.primary_article_index
            if not 0 <= primary_index < len(items):
                logger.warning(f"Ignoring group with invalid primary index {primary_index}")
                continue
            primary_id = items[primary_index].id
            if primary_id in members:
                continue

            member_ids = []
            for index in entry.duplicate_indices:
                if not 0 <= index < len(items) or index == primary_index:
                    continue
                item_id = items[index].id
                if item_id in primaries or item_id in members or item_id in member_ids:
                    continue
                member_ids.append(item_id)

            if not member_ids:
                continue

            primaries.add(primary_id)
            members.update(member_ids)
            groups.append(
                DuplicateGroup(
                    cycle_id=cycle_id,
                    primary_item_id=primary_id,
                    topic_signature=entry.topic_signature,
                    explanation=entry.similarity_explanation,
                    member_item_ids=member_ids,
                )
            )
        return groups
