"""Weighted multi-criteria scoring of source items."""

import logging
import math
from typing import Dict, List, Tuple

from newsdesk.core.batching import run_in_batches
from newsdesk.core.completion import CriterionResult, parse_completion
from newsdesk.core.errors import AIError, InvalidScoreError, ParseError, StoreError
from newsdesk.core.prompts import criterion_prompt
from newsdesk.models.content import (
    Criterion,
    CriterionScore,
    CycleConfig,
    Rating,
    SourceItem,
)
from newsdesk.models.outcome import Outcome, StageReport

logger = logging.getLogger(__name__)

DEFAULT_CRITERIA = [
    Criterion(
        number=1,
        name="Relevance: how much the item matters to a general technology audience",
    ),
    Criterion(
        number=2,
        name="Novelty: whether the item reports something genuinely new",
    ),
    Criterion(
        number=3,
        name="Credibility: how well sourced and specific the reporting is",
    ),
]


def validate_score(result: CriterionResult) -> float:
    """Return the score if it is a finite number in [0, 10].

    Raises:
        InvalidScoreError: otherwise
    """
    score = result.score
    if not math.isfinite(score) or not 0 <= score <= 10:
        raise InvalidScoreError(f"Score {score!r} outside 0-10", score)
    return float(score)


class ScoringEngine:
    """Scores items against the enabled criteria of a cycle."""

    def __init__(self, ai, store, settings):
        """Initialize the scoring engine.

        Args:
            ai: AIClient (or anything with ``complete``)
            store: Store used to persist ratings
            settings: Settings instance for batching values
        """
        self.ai = ai
        self.store = store
        self.batch_size = settings.scoring_batch_size
        self.batch_delay = settings.scoring_batch_delay

    async def evaluate_item(self, item: SourceItem, criteria: List[Criterion]) -> Rating:
        """Score one item on every criterion.

        Raises:
            AIError: if a completion fails
            ParseError: if a completion is malformed or a score is out of range
        """
        scores = []
        for criterion in criteria:
            raw = await self.ai.complete(
                criterion_prompt(criterion, item), max_tokens=300, temperature=0.2
            )
            result = parse_completion(raw, CriterionResult)
            scores.append(
                CriterionScore(
                    number=criterion.number,
                    name=criterion.name,
                    score=validate_score(result),
                    reason=result.reason,
                    weight=criterion.weight,
                )
            )
        return Rating.from_scores(item.id, scores)

    async def score_items(
        self, items: List[SourceItem], config: CycleConfig
    ) -> Tuple[Dict[int, Rating], StageReport]:
        """Score items in rate-limited batches.

        An item whose evaluation fails gets no Rating; its siblings are
        unaffected.

        Returns:
            Ratings by item id and the per-item report
        """
        report = StageReport(stage="scoring")
        ratings: Dict[int, Rating] = {}
        criteria = config.enabled_criteria

        if not criteria:
            logger.warning("No scoring criteria enabled - skipping scoring")
            for item in items:
                report.add(Outcome.skipped(f"item {item.id}", "no criteria enabled"))
            return ratings, report

        logger.info(f"🧮 Scoring {len(items)} item(s) on {len(criteria)} criteria")

        async def score_one(item: SourceItem) -> Outcome:
            unit = f"item {item.id}"
            try:
                rating = await self.evaluate_item(item, criteria)
                ratings[item.id] = self.store.save_rating(rating, item.cycle_id)
            except (AIError, ParseError) as e:
                logger.warning(f"Scoring failed for item {item.id} ({item.title}): {e}")
                return Outcome.failed(unit, e)
            except StoreError as e:
                logger.error(f"Could not store rating for item {item.id}: {e}")
                return Outcome.failed(unit, e)
            logger.debug(f"Item {item.id} scored {ratings[item.id].total_score:.1f}")
            return Outcome.success(unit)

        outcomes = await run_in_batches(
            items, score_one, self.batch_size, self.batch_delay, label="scoring"
        )
        for outcome in outcomes:
            report.add(outcome)

        logger.info(f"✅ {report.summary()}")
        return ratings, report
