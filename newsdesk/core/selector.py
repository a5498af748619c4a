"""Ranked selection of the publishable articles and the cycle subject line."""

import logging
from typing import Dict, Iterable, List, Optional

from newsdesk.core.completion import parse_subject_line
from newsdesk.core.errors import AIError, ParseError, StoreError
from newsdesk.core.prompts import subject_line_prompt
from newsdesk.models.content import Article, CycleConfig, Rating

logger = logging.getLogger(__name__)


class ArticleSelector:
    """Activates the top N articles that clear the fact-check gate."""

    def __init__(self, ai, store):
        self.ai = ai
        self.store = store

    @staticmethod
    def rank(
        articles: List[Article],
        ratings: Dict[int, Rating],
        config: CycleConfig,
        excluded_ids: Iterable[int] = (),
    ) -> List[Article]:
        """Pick and rank winners without touching the store.

        Eligible articles have a fact-check score at or above the threshold,
        a rating, and are not duplicate members. They are ordered by rating
        total, highest first, ties going to the older article.
        """
        excluded = set(excluded_ids)
        eligible = [
            a
            for a in articles
            if a.fact_check_score >= config.fact_check_threshold
            and a.item_id not in excluded
            and a.item_id in ratings
        ]
        eligible.sort(key=lambda a: (-ratings[a.item_id].total_score, a.id or 0))
        winners = eligible[: config.max_active_articles]
        return [
            a.model_copy(update={"active": True, "rank": rank})
            for rank, a in enumerate(winners, 1)
        ]

    def select(
        self,
        cycle_id: int,
        articles: List[Article],
        ratings: Dict[int, Rating],
        config: CycleConfig,
        excluded_ids: Iterable[int] = (),
    ) -> List[Article]:
        """Rank the cycle's articles and persist the active set.

        Every other article of the cycle is left inactive with no rank.

        Returns:
            Active articles in rank order
        """
        winners = self.rank(articles, ratings, config, excluded_ids)
        self.store.apply_selection(cycle_id, {a.id: a.rank for a in winners})

        logger.info(
            f"🏆 Activated {len(winners)} of {len(articles)} article(s) "
            f"(threshold {config.fact_check_threshold:g}, max {config.max_active_articles})"
        )
        for article in winners:
            logger.info(
                f"   {article.rank}. {article.headline} "
                f"(score {ratings[article.item_id].total_score:g})"
            )
        return winners

    async def generate_subject_line(
        self, cycle_id: int, winners: List[Article]
    ) -> Optional[str]:
        """Write a subject line from the rank-1 article if the cycle has none.

        Failures are logged and yield None.
        """
        try:
            cycle = self.store.get_cycle(cycle_id)
        except StoreError as e:
            logger.warning(f"Could not load cycle {cycle_id} for subject line: {e}")
            return None

        if cycle and cycle.subject_line:
            logger.info(f"Subject line already set: {cycle.subject_line}")
            return cycle.subject_line

        if not winners:
            logger.info("No active articles - no subject line generated")
            return None

        top = min(winners, key=lambda a: a.rank or 0)
        try:
            raw = await self.ai.complete(
                subject_line_prompt(top), max_tokens=60, temperature=0.7
            )
            subject = parse_subject_line(raw)
            self.store.set_subject_line(cycle_id, subject)
        except (AIError, ParseError, StoreError) as e:
            logger.warning(f"⚠️ Subject line generation failed: {e}")
            return None

        logger.info(f"✉️ Subject line: {subject}")
        return subject
