"""Article generation and the fact-check gate."""

import logging
from typing import Dict, List, Set, Tuple

from newsdesk.core.batching import run_in_batches
from newsdesk.core.completion import ArticleDraft, FactCheckResult, parse_completion
from newsdesk.core.errors import AIError, GenerationError, ParseError, StoreError
from newsdesk.core.prompts import article_prompt, fact_check_prompt
from newsdesk.core.utils import count_words, detect_refusal
from newsdesk.models.content import Article, CycleConfig, Rating, SourceItem
from newsdesk.models.outcome import Outcome, StageReport

logger = logging.getLogger(__name__)


class ArticleGenerator:
    """Rewrites rated items into copy and fact-checks it against the source."""

    def __init__(self, ai, store, settings):
        self.ai = ai
        self.store = store
        self.batch_size = settings.generation_batch_size
        self.batch_delay = settings.generation_batch_delay

    async def write_draft(self, item: SourceItem) -> ArticleDraft:
        """Generate headline and body for one item.

        Raises:
            AIError: if the completion fails
            ParseError: if the completion is malformed
            GenerationError: if the copy is empty or the model refused
        """
        raw = await self.ai.complete(article_prompt(item), max_tokens=1500, temperature=0.7)
        draft = parse_completion(raw, ArticleDraft)

        headline = draft.headline.strip()
        body = draft.body.strip()
        if not headline or not body:
            raise GenerationError(f"Empty headline or body for item {item.id}")

        refusal = detect_refusal(f"{headline}\n{body}")
        if refusal:
            raise GenerationError(f"AI refusal detected for item {item.id}: {refusal}")

        return draft.model_copy(
            update={
                "headline": headline,
                "body": body,
                "word_count": draft.word_count or count_words(body),
            }
        )

    async def fact_check(self, item: SourceItem, draft: ArticleDraft) -> FactCheckResult:
        raw = await self.ai.complete(
            fact_check_prompt(item, draft.headline, draft.body),
            max_tokens=800,
            temperature=0.1,
        )
        return parse_completion(raw, FactCheckResult)

    async def generate_article(
        self, item: SourceItem, cycle_id: int, threshold: float
    ) -> Article:
        draft = await self.write_draft(item)
        check = await self.fact_check(item, draft)
        passed = check.passed if check.passed is not None else check.score >= threshold
        return Article(
            item_id=item.id,
            cycle_id=cycle_id,
            headline=draft.headline,
            body=draft.body,
            word_count=draft.word_count or 0,
            fact_check_score=check.score,
            fact_check_passed=passed,
            fact_check_details=check.details_text(),
        )

    async def generate(
        self,
        cycle_id: int,
        items: List[SourceItem],
        ratings: Dict[int, Rating],
        excluded_ids: Set[int],
        config: CycleConfig,
    ) -> Tuple[List[Article], StageReport]:
        """Generate an Article for every rated, non-duplicate item.

        Articles are stored inactive whether or not they pass the fact-check.
        An item whose generation or fact-check fails gets no Article.

        Returns:
            Stored articles (newly generated or already present) and the report
        """
        report = StageReport(stage="generation")
        articles: List[Article] = []
        eligible = []

        for item in items:
            if item.id in excluded_ids:
                report.add(Outcome.skipped(f"item {item.id}", "duplicate member"))
            elif item.id not in ratings:
                report.add(Outcome.skipped(f"item {item.id}", "no rating"))
            else:
                eligible.append(item)

        logger.info(f"✍️ Generating articles for {len(eligible)} item(s)")

        async def generate_one(item: SourceItem) -> Outcome:
            unit = f"item {item.id}"
            try:
                existing = self.store.get_article(item.id, cycle_id)
                if existing:
                    articles.append(existing)
                    return Outcome.skipped(unit, "article already exists")

                article = await self.generate_article(
                    item, cycle_id, config.fact_check_threshold
                )
                article = self.store.insert_article(article)
            except (AIError, ParseError, GenerationError) as e:
                logger.warning(f"Article generation failed for item {item.id}: {e}")
                return Outcome.failed(unit, e)
            except StoreError as e:
                logger.error(f"Could not store article for item {item.id}: {e}")
                return Outcome.failed(unit, e)

            articles.append(article)
            status = "passed" if article.fact_check_passed else "failed"
            logger.debug(
                f"Item {item.id} fact-check {status} ({article.fact_check_score:.1f})"
            )
            return Outcome.success(unit)

        outcomes = await run_in_batches(
            eligible, generate_one, self.batch_size, self.batch_delay, label="generation"
        )
        for outcome in outcomes:
            report.add(outcome)

        articles.sort(key=lambda a: a.id or 0)
        logger.info(f"✅ {report.summary()}")
        return articles, report

