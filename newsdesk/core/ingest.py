"""Feed ingestion: fetch, normalize, filter and store source items."""

import asyncio
import calendar
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple

from bs4 import BeautifulSoup

from newsdesk.core.errors import FeedError, StoreError
from newsdesk.core.utils import clean_title, host_matches, strip_html
from newsdesk.models.content import CycleConfig, Feed, SourceItem
from newsdesk.models.outcome import Outcome, StageReport
from newsdesk.models.settings import split_csv

logger = logging.getLogger(__name__)

MEDIA_CONTENT_URL = re.compile(
    r"<media:content[^>]*\burl=[\"']([^\"']+)[\"']", re.IGNORECASE
)
BARE_IMAGE_URL = re.compile(
    r"https?://[^\s\"'<>]+?\.(?:jpe?g|png|gif|webp)(?:\?[^\s\"'<>]*)?", re.IGNORECASE
)


def _is_image(media: Mapping[str, Any]) -> bool:
    medium = (media.get("medium") or "").lower()
    media_type = (media.get("type") or "").lower()
    return medium == "image" or media_type.startswith("image/")


def _text_fields(entry: Mapping[str, Any]) -> List[str]:
    texts = [c.get("value", "") for c in entry.get("content") or [] if c.get("value")]
    for key in ("summary", "description"):
        value = entry.get(key)
        if value and value not in texts:
            texts.append(value)
    return texts


def _from_media_fields(entry: Mapping[str, Any]) -> Optional[str]:
    for media in entry.get("media_content") or []:
        if media.get("url") and _is_image(media):
            return media["url"]

    enclosures = list(entry.get("enclosures") or [])
    enclosures += [
        link for link in entry.get("links") or [] if link.get("rel") == "enclosure"
    ]
    for enclosure in enclosures:
        url = enclosure.get("href") or enclosure.get("url")
        if url and (enclosure.get("type") or "").lower().startswith("image/"):
            return url
    return None


def _from_embedded_html(entry: Mapping[str, Any]) -> Optional[str]:
    for html in _text_fields(entry):
        if "<img" not in html.lower():
            continue
        img = BeautifulSoup(html, "html.parser").find("img", src=True)
        if img and img["src"].startswith(("http://", "https://")):
            return img["src"]
    return None


def _from_raw_text(entry: Mapping[str, Any]) -> Optional[str]:
    texts = _text_fields(entry)
    for text in texts:
        match = MEDIA_CONTENT_URL.search(text)
        if match:
            return match.group(1)
    for text in texts:
        match = BARE_IMAGE_URL.search(text)
        if match:
            return match.group(0)
    return None


def _from_thumbnail_fields(entry: Mapping[str, Any]) -> Optional[str]:
    for thumb in entry.get("media_thumbnail") or []:
        if thumb.get("url"):
            return thumb["url"]

    for key in ("image", "thumbnail"):
        value = entry.get(key)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, Mapping):
            url = value.get("href") or value.get("url")
            if url:
                return url
    return None


IMAGE_STRATEGIES: List[Callable[[Mapping[str, Any]], Optional[str]]] = [
    _from_media_fields,
    _from_embedded_html,
    _from_raw_text,
    _from_thumbnail_fields,
]


def extract_image_url(entry: Mapping[str, Any]) -> Optional[str]:
    """Best-effort image for a feed entry, trying each strategy in order."""
    for strategy in IMAGE_STRATEGIES:
        url = strategy(entry)
        if url:
            return url.strip()
    return None


def entry_published_at(entry: Mapping[str, Any]) -> Optional[datetime]:
    """Publish time of an entry in UTC, falling back to its update time."""
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
    return None


def entry_external_id(entry: Mapping[str, Any]) -> Optional[str]:
    return entry.get("id") or entry.get("guid") or entry.get("link") or None


def entry_content(entry: Mapping[str, Any]) -> str:
    contents = entry.get("content") or []
    if contents:
        return contents[0].get("value", "")
    return entry.get("summary") or entry.get("description") or ""


class FeedIngestor:
    """Turns active feeds into stored SourceItems for a cycle."""

    def __init__(
        self,
        store,
        feed_client,
        settings,
        image_host=None,
        extractor=None,
    ):
        """Initialize the ingestor.

        Args:
            store: Store instance
            feed_client: FeedClient (or anything with ``fetch_entries``)
            settings: Settings instance for configuration values
            image_host: Optional ImageHostClient for re-hosting images
            extractor: Optional ArticleExtractor for full-text enrichment
        """
        self.store = store
        self.feed_client = feed_client
        self.image_host = image_host
        self.extractor = extractor
        self.window = timedelta(hours=settings.ingest_window_hours)
        self.rehost_domains = split_csv(settings.image_rehost_domains)

    async def ingest(
        self, cycle_id: int, config: CycleConfig, now: Optional[datetime] = None
    ) -> Tuple[List[SourceItem], StageReport]:
        """Ingest every active feed into ``cycle_id``.

        Listing the active feeds is the only fatal step; a failing feed is
        recorded on its row and the others continue.

        Returns:
            Newly stored items and the per-feed report
        """
        now = now or datetime.now(timezone.utc)
        report = StageReport(stage="ingest")

        feeds = self.store.get_active_feeds()
        if not feeds:
            logger.warning("No active feeds configured")
            return [], report

        logger.info(f"📡 Ingesting {len(feeds)} feed(s) for cycle {cycle_id}")
        results = await asyncio.gather(
            *(self._ingest_feed(feed, cycle_id, config, now) for feed in feeds),
            return_exceptions=True,
        )

        items: List[SourceItem] = []
        for feed, result in zip(feeds, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.error(f"Unhandled error ingesting feed {feed.url}: {result}")
                self._record_failure(feed, str(result))
                report.add(Outcome.failed(f"feed {feed.id}", result))
                continue
            feed_items, outcome = result
            items.extend(feed_items)
            report.add(outcome)

        logger.info(f"✅ Ingested {len(items)} new item(s) from {len(feeds)} feed(s)")
        return items, report

    async def _ingest_feed(
        self, feed: Feed, cycle_id: int, config: CycleConfig, now: datetime
    ) -> Tuple[List[SourceItem], Outcome]:
        unit = f"feed {feed.id}"
        try:
            entries = await self.feed_client.fetch_entries(feed.url)
        except FeedError as e:
            logger.error(f"❌ {e}")
            self._record_failure(feed, str(e))
            return [], Outcome.failed(unit, e)

        cutoff = now - self.window
        items = []
        for entry in entries:
            try:
                item = await self._ingest_entry(feed, entry, cycle_id, config, cutoff, now)
            except StoreError as e:
                logger.error(f"Failed to store entry from {feed.url}: {e}")
                continue
            if item:
                items.append(item)

        try:
            self.store.mark_feed_success(feed.id, now)
        except StoreError as e:
            logger.error(f"Could not update feed {feed.id} status: {e}")

        logger.info(f"   - {feed.name}: {len(items)} new of {len(entries)} entries")
        return items, Outcome.success(unit)

    def _record_failure(self, feed: Feed, error: str) -> None:
        try:
            self.store.mark_feed_failure(feed.id, error)
        except StoreError as e:
            logger.error(f"Could not record failure for feed {feed.id}: {e}")

    async def _ingest_entry(
        self,
        feed: Feed,
        entry: Mapping[str, Any],
        cycle_id: int,
        config: CycleConfig,
        cutoff: datetime,
        now: datetime,
    ) -> Optional[SourceItem]:
        external_id = entry_external_id(entry)
        if not external_id:
            logger.debug(f"Skipping entry without guid or link in {feed.url}")
            return None

        published_at = entry_published_at(entry)
        if published_at is None or not cutoff <= published_at <= now:
            return None

        source_url = entry.get("link")
        if source_url and host_matches(source_url, config.blocked_domains):
            logger.info(f"Skipping blocked domain: {source_url}")
            return None

        if self.store.item_exists(feed.id, external_id):
            return None

        author = entry.get("author") or None
        image_url = await self._resolve_image(entry, author, config, feed, external_id)

        full_text = None
        if self.extractor and source_url:
            full_text = await self.extractor.fetch_text(source_url) or None

        item = SourceItem(
            feed_id=feed.id,
            cycle_id=cycle_id,
            external_id=external_id,
            title=clean_title(entry.get("title")),
            description=strip_html(entry.get("summary") or entry.get("description")),
            content=entry_content(entry),
            full_text=full_text,
            author=author,
            published_at=published_at,
            source_url=source_url,
            image_url=image_url,
        )
        return self.store.insert_item(item)

    async def _resolve_image(
        self,
        entry: Mapping[str, Any],
        author: Optional[str],
        config: CycleConfig,
        feed: Feed,
        external_id: str,
    ) -> Optional[str]:
        if config.is_image_blocked(author):
            logger.debug(f"Dropping image for blocked author {author}")
            return None

        image_url = extract_image_url(entry)
        if not image_url or not self._should_rehost(image_url):
            return image_url

        hosted = await self.image_host.upload_image(
            image_url, label=f"feed-{feed.id}-{external_id}"
        )
        if hosted:
            return hosted
        logger.info(f"Image re-host failed, keeping original: {image_url}")
        return image_url

    def _should_rehost(self, image_url: str) -> bool:
        return bool(self.image_host) and host_matches(image_url, self.rehost_domains)


def seed_feeds(store, urls: Iterable[str]) -> List[Feed]:
    """Register feed URLs from settings, ignoring ones already stored."""
    return [store.add_feed(url) for url in urls]
