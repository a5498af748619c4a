"""Runs one dated cycle of the curation pipeline end to end."""

import json
import logging
from datetime import date
from typing import List, Optional, Set

from newsdesk.clients.ai import AIClient
from newsdesk.clients.image_host import ImageHostClient
from newsdesk.clients.rss import ArticleExtractor, FeedClient
from newsdesk.clients.slack import SlackNotifier
from newsdesk.core.archive import ArchiveService
from newsdesk.core.dedup import DuplicateDetector
from newsdesk.core.errors import ArchiveError, CycleAlreadyRunningError, StoreError
from newsdesk.core.generator import ArticleGenerator
from newsdesk.core.ingest import FeedIngestor, seed_feeds
from newsdesk.core.scoring import DEFAULT_CRITERIA, ScoringEngine
from newsdesk.core.selector import ArticleSelector
from newsdesk.core.store import Store
from newsdesk.core.utils import is_valid_feed_url
from newsdesk.models.content import Cycle, CycleConfig, CycleStatus
from newsdesk.models.outcome import CycleReport
from newsdesk.models.settings import Settings, split_csv

logger = logging.getLogger(__name__)

STEP_ARCHIVE = "Archive"
STEP_INGEST = "Feed Ingestion"
STEP_SCORING = "Scoring"
STEP_DEDUP = "Duplicate Detection"
STEP_GENERATION = "Article Generation"
STEP_SELECTION = "Selection"
STEP_STATUS = "Status Update"


class CycleOrchestrator:
    """Sequences archive, ingest, score, dedup, generate and select for a cycle.

    Only one run per cycle date may be in flight in this process; a second
    call raises CycleAlreadyRunningError.
    """

    _running: Set[str] = set()

    def __init__(
        self,
        settings: Settings,
        store: Store,
        ai,
        feed_client,
        notifier: Optional[SlackNotifier] = None,
        image_host=None,
        extractor=None,
    ):
        self.settings = settings
        self.store = store
        self.notifier = notifier or SlackNotifier(None)
        self.archiver = ArchiveService(store)
        self.ingestor = FeedIngestor(
            store, feed_client, settings, image_host=image_host, extractor=extractor
        )
        self.scorer = ScoringEngine(ai, store, settings)
        self.detector = DuplicateDetector(ai, store)
        self.generator = ArticleGenerator(ai, store, settings)
        self.selector = ArticleSelector(ai, store)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CycleOrchestrator":
        """Build the orchestrator and its clients from settings."""
        store = Store(settings.database_path)
        store.init_schema()
        cls.seed_configured_feeds(store, settings)

        return cls(
            settings=settings,
            store=store,
            ai=cls._init_ai_client(settings),
            feed_client=FeedClient(settings),
            notifier=SlackNotifier(settings.slack_webhook_url, settings.slack_timeout),
            image_host=cls._init_image_host(settings),
            extractor=ArticleExtractor(settings) if settings.extract_full_text else None,
        )

    @staticmethod
    def _init_ai_client(settings: Settings) -> AIClient:
        """Initialize the AI client with validation."""
        api_key = (settings.openrouter_api_key or "").strip()
        if not api_key:
            logger.warning("🔧 OPENROUTER_API_KEY not set - AI stages will fail")
        return AIClient(api_key, settings=settings)

    @staticmethod
    def _init_image_host(settings: Settings) -> Optional[ImageHostClient]:
        """Initialize image re-hosting with validation."""
        client = ImageHostClient.from_settings(settings)
        if client is None:
            logger.info("🔧 Image re-hosting disabled: IMAGE_STORAGE_URL not set")
        return client

    @staticmethod
    def seed_configured_feeds(store: Store, settings: Settings) -> None:
        """Register valid RSS_FEEDS URLs in the feeds table."""
        urls = []
        for url in settings.feed_urls:
            if is_valid_feed_url(url):
                urls.append(url)
            else:
                logger.warning(f"⚠️ Invalid feed URL skipped: {url}")
        if urls:
            seed_feeds(store, urls)

    def load_cycle_config(self) -> CycleConfig:
        """Read criteria and limits once; store values override settings."""
        criteria = self.store.get_criteria() or list(DEFAULT_CRITERIA)

        def override(key: str, default):
            value = self.store.get_setting(key)
            if value is None:
                return default
            try:
                return json.loads(value)
            except ValueError:
                return value

        def as_list(value) -> List[str]:
            if isinstance(value, list):
                return [str(v) for v in value]
            return split_csv(value)

        return CycleConfig(
            criteria=criteria,
            fact_check_threshold=float(
                override("fact_check_threshold", self.settings.fact_check_threshold)
            ),
            max_active_articles=int(
                override("max_active_articles", self.settings.max_active_articles)
            ),
            image_block_authors=as_list(
                override("image_block_authors", self.settings.image_block_authors)
            ),
            blocked_domains=as_list(
                override("blocked_domains", self.settings.blocked_domains)
            ),
        )

    async def run_cycle(self, cycle_date: Optional[date] = None) -> CycleReport:
        """Run the pipeline for ``cycle_date`` (today by default).

        Raises:
            CycleAlreadyRunningError: if the date is already being processed
            Exception: any fatal stage error, after the incomplete-cycle alert
        """
        cycle_date = cycle_date or date.today()
        key = cycle_date.isoformat()
        if key in self._running:
            raise CycleAlreadyRunningError(f"Cycle {key} is already running")

        self._running.add(key)
        try:
            return await self._run(cycle_date)
        finally:
            self._running.discard(key)

    async def _run(self, cycle_date: date) -> CycleReport:
        report = CycleReport(cycle_date=cycle_date)
        logger.info(f"🚀 Starting cycle {cycle_date}")

        try:
            cycle = self.store.get_or_create_cycle(cycle_date)
            report.cycle_id = cycle.id
            if cycle.status != CycleStatus.PROCESSING:
                logger.info(f"🔄 Reprocessing {cycle.status.value} cycle {cycle_date}")
                self.store.set_cycle_status(cycle.id, CycleStatus.PROCESSING)
            config = self.load_cycle_config()

            await self._archive_and_clear(cycle, report)

            new_items, ingest_report = await self.ingestor.ingest(cycle.id, config)
            report.add_stage(ingest_report)
            report.items_ingested = len(new_items)
            report.completed_steps.append(STEP_INGEST)

            items = self.store.get_items(cycle.id)
            ratings = self.store.get_ratings(cycle.id)
            unscored = [i for i in items if i.id not in ratings]
            new_ratings, scoring_report = await self.scorer.score_items(unscored, config)
            ratings.update(new_ratings)
            report.add_stage(scoring_report)
            report.ratings_created = len(new_ratings)
            report.completed_steps.append(STEP_SCORING)

            dedup = await self.detector.detect(cycle.id, items)
            report.add_stage(dedup.report)
            report.completed_steps.append(STEP_DEDUP)

            articles, generation_report = await self.generator.generate(
                cycle.id, items, ratings, dedup.excluded_ids, config
            )
            report.add_stage(generation_report)
            report.articles_generated = generation_report.succeeded
            report.completed_steps.append(STEP_GENERATION)

            winners = self.selector.select(
                cycle.id, articles, ratings, config, dedup.excluded_ids
            )
            report.active_articles = len(winners)
            report.subject_line = await self.selector.generate_subject_line(
                cycle.id, winners
            )
            report.completed_steps.append(STEP_SELECTION)

            self.store.set_cycle_status(cycle.id, CycleStatus.DRAFT)
            report.status = CycleStatus.DRAFT
            report.completed_steps.append(STEP_STATUS)

        except Exception as e:
            report.error = str(e)
            report.failed_stage = self.diagnose_failure(report)
            logger.error(
                f"❌ Cycle {cycle_date} incomplete, likely failed at "
                f"{report.failed_stage}: {e}"
            )
            await self.notifier.notify_cycle_incomplete(report)
            raise

        logger.info(
            f"✅ Cycle {cycle_date} ready: {report.items_ingested} new items, "
            f"{report.articles_generated} articles, {report.active_articles} active"
        )
        await self.notifier.notify_cycle_complete(report)
        return report

    async def _archive_and_clear(self, cycle: Cycle, report: CycleReport) -> None:
        """Archive the cycle's rows, clearing them only if archival succeeded."""
        try:
            report.archive = self.archiver.archive_cycle(cycle.id, "cycle_reprocess")
        except ArchiveError as e:
            report.archive_error = str(e)
            logger.warning(
                f"⚠️ Archive failed for cycle {cycle.id}; existing rows kept, "
                f"ingestion continues: {e}"
            )
            await self.notifier.notify_archive_failure(cycle, e)
            return

        self.store.clear_cycle(cycle.id)
        report.completed_steps.append(STEP_ARCHIVE)

    def diagnose_failure(self, report: CycleReport) -> str:
        """Best-effort guess at the stage that stopped the cycle."""
        if report.cycle_id is None:
            return "Cycle Setup"

        try:
            items = self.store.count_items(report.cycle_id)
            articles = self.store.count_articles(report.cycle_id)
            cycle = self.store.get_cycle(report.cycle_id)
        except StoreError as e:
            logger.error(f"Could not inspect cycle progress: {e}")
            return "Database Access"

        if items and not articles:
            return "AI Article Processing"
        if articles and (cycle is None or cycle.status != CycleStatus.DRAFT):
            return "Selection or Status Update"
        if not report.completed_steps:
            return "Archive or Initial Setup"
        return "Feed Ingestion"
