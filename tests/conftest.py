import asyncio
import json
import re
import time
from datetime import date
from typing import Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from newsdesk.core.store import Store
from newsdesk.models.content import Criterion, CriterionScore, Rating, SourceItem
from newsdesk.models.settings import Settings

CYCLE_DATE = date(2026, 10, 17)


class FakeAI:
    """Stands in for AIClient; ``handler`` maps a prompt to a reply or exception."""

    def __init__(self, handler: Callable[[str], object]):
        self.handler = handler
        self.prompts: List[str] = []

    async def complete(self, prompt, max_tokens=1000, temperature=0.3):
        self.prompts.append(prompt)
        await asyncio.sleep(0)
        reply = self.handler(prompt)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def count(self, marker: str) -> int:
        return sum(1 for p in self.prompts if marker in p)


class FakeFeedClient:
    """Returns canned entries per feed URL, or raises a FeedError."""

    def __init__(self, feeds: Dict[str, object]):
        self.feeds = feeds
        self.calls: List[str] = []

    async def fetch_entries(self, feed_url):
        self.calls.append(feed_url)
        await asyncio.sleep(0)
        result = self.feeds.get(feed_url, [])
        if isinstance(result, Exception):
            raise result
        return list(result)


def make_entry(
    n: int,
    hours_ago: Optional[float] = 1,
    title: Optional[str] = None,
    link: Optional[str] = None,
    **extra,
) -> dict:
    entry = {
        "id": f"guid-{n}",
        "title": title or f"Story {n}",
        "link": link or f"https://news.example.com/story-{n}",
        "summary": f"Summary of story {n}.",
        "content": [{"value": f"<p>Full body of story {n}.</p>"}],
        "author": "Reporter",
    }
    if hours_ago is not None:
        entry["published_parsed"] = time.gmtime(time.time() - hours_ago * 3600)
    entry.update(extra)
    return entry


def story_number(prompt: str, prefix: str = "Title: Story ") -> Optional[int]:
    match = re.search(re.escape(prefix) + r"(\d+)", prompt)
    return int(match.group(1)) if match else None


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """Settings isolated from the environment, with no pipeline delays."""
    for var in ("RSS_FEEDS", "SLACK_WEBHOOK_URL", "IMAGE_STORAGE_URL", "DATABASE_PATH"):
        monkeypatch.delenv(var, raising=False)
    return Settings(
        openrouter_api_key="test_key",
        database_path=str(tmp_path / "newsdesk.db"),
        scoring_batch_delay=0,
        generation_batch_delay=0,
        openrouter_min_request_interval=0,
    )


@pytest.fixture
def store(settings):
    store = Store(settings.database_path)
    store.init_schema()
    return store


@pytest.fixture
def cycle(store):
    return store.get_or_create_cycle(CYCLE_DATE)


@pytest.fixture
def feed(store):
    return store.add_feed("https://news.example.com/feed.xml", "Example News")


@pytest.fixture
def add_item(store, feed, cycle):
    """Insert a SourceItem for the default feed and cycle."""

    def _add(n: int, **fields) -> SourceItem:
        values = dict(
            feed_id=feed.id,
            cycle_id=cycle.id,
            external_id=f"guid-{n}",
            title=f"Story {n}",
            description=f"Summary of story {n}.",
            content=f"Full body of story {n}.",
            source_url=f"https://news.example.com/story-{n}",
        )
        values.update(fields)
        return store.insert_item(SourceItem(**values))

    return _add


@pytest.fixture
def add_rating(store):
    def _add(item: SourceItem, total: float) -> Rating:
        rating = Rating.from_scores(
            item.id, [CriterionScore(number=1, score=total / 2.5, weight=2.5)]
        )
        return store.save_rating(rating, item.cycle_id)

    return _add


@pytest.fixture
def notifier():
    notifier = Mock()
    notifier.notify_cycle_complete = AsyncMock(return_value=True)
    notifier.notify_cycle_incomplete = AsyncMock(return_value=True)
    notifier.notify_archive_failure = AsyncMock(return_value=True)
    return notifier


@pytest.fixture
def criterion():
    return Criterion(number=1, name="Importance", weight=2.5)


def json_reply(**payload) -> str:
    return json.dumps(payload)


def fake_session(status=200, json_body=None, text="", error=None):
    """Patchable stand-in for ``aiohttp.ClientSession`` returning one response."""
    response = MagicMock(status=status)
    response.json = AsyncMock(return_value=json_body)
    response.text = AsyncMock(return_value=text)

    request = MagicMock()
    request.__aenter__.return_value = response
    request.__aexit__.return_value = False

    session = MagicMock()
    if error is not None:
        session.post.side_effect = error
        session.get.side_effect = error
    else:
        session.post.return_value = request
        session.get.return_value = request

    factory = MagicMock()
    factory.__aenter__.return_value = session
    factory.__aexit__.return_value = False
    return factory
