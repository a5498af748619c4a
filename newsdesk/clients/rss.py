"""Feed client for fetching and parsing RSS/Atom feeds."""

import asyncio
import logging
import re
from typing import Any, Dict, List

import aiohttp
import feedparser
from bs4 import BeautifulSoup

from newsdesk.core.errors import FeedError

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

CONTENT_SELECTORS = [
    "article",
    ".article-content",
    ".post-content",
    ".entry-content",
    "main",
]


class FeedClient:
    """Client for fetching and parsing feeds."""

    def __init__(self, settings=None):
        """Initialize feed client.

        Args:
            settings: Settings instance for configuration values
        """
        self.feed_timeout = settings.rss_feed_timeout if settings else 30.0
        self.user_agent = settings.default_user_agent if settings else "Newsdesk/1.0"

    async def fetch_entries(self, feed_url: str) -> List[Dict[str, Any]]:
        """Fetch a feed and return its parsed entries.

        Args:
            feed_url: RSS or Atom feed URL

        Returns:
            feedparser entries (dict-like)

        Raises:
            FeedError: if the feed cannot be fetched or parsed
        """
        headers = {"User-Agent": f"{self.user_agent} (RSS Reader)"}
        timeout = aiohttp.ClientTimeout(total=self.feed_timeout)

        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    feed_url, headers=headers, timeout=timeout
                ) as response:
                    if response.status != 200:
                        raise FeedError(
                            f"Failed to fetch feed {feed_url}: HTTP {response.status}"
                        )
                    body = await response.read()
        except asyncio.TimeoutError as e:
            raise FeedError(f"Timeout fetching feed: {feed_url}") from e
        except aiohttp.ClientError as e:
            raise FeedError(f"Network error fetching feed {feed_url}: {e}") from e

        return self.parse(body, feed_url)

    @staticmethod
    def parse(body: bytes, feed_url: str = "") -> List[Dict[str, Any]]:
        """Parse a feed document with feedparser.

        Raises:
            FeedError: if the document is malformed and yields no entries
        """
        parsed = feedparser.parse(body)
        if parsed.bozo and not parsed.entries:
            raise FeedError(
                f"Feed parsing error for {feed_url}: {parsed.get('bozo_exception')}"
            )
        if parsed.bozo:
            logger.debug(
                f"Feed {feed_url} is not well-formed but yielded "
                f"{len(parsed.entries)} entries: {parsed.get('bozo_exception')}"
            )
        return list(parsed.entries)


class ArticleExtractor:
    """Fetches the linked page of an item and extracts its readable text."""

    def __init__(self, settings=None, max_chars: int = 8000):
        self.content_timeout = settings.rss_content_timeout if settings else 15.0
        self.max_chars = max_chars

    async def fetch_text(self, url: str) -> str:
        """Fetch full article content from URL, or "" if it cannot be read."""
        try:
            headers = {"User-Agent": BROWSER_USER_AGENT}
            timeout = aiohttp.ClientTimeout(total=self.content_timeout)
            async with aiohttp.ClientSession() as session:
                async with session.get(url, headers=headers, timeout=timeout) as response:
                    if response.status != 200:
                        logger.warning(f"Failed to fetch article {url}: {response.status}")
                        return ""
                    raw = await response.read()
                    html = raw.decode(response.charset or "utf-8", errors="ignore")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Network error fetching article content from {url}: {e}")
            return ""

        return self.extract_text(html)

    def extract_text(self, html: str) -> str:
        soup = BeautifulSoup(html, "html.parser")

        # Remove script, style, nav, footer, ads
        for tag in soup(["script", "style", "nav", "footer", "aside", "iframe"]):
            tag.decompose()

        text = None
        for selector in CONTENT_SELECTORS:
            node = soup.select_one(selector)
            if node:
                text = node.get_text(" ", strip=True)
                break

        if not text:
            text = soup.get_text(" ", strip=True)

        text = re.sub(r"\s+", " ", text).strip()
        if len(text) > self.max_chars:
            text = text[: self.max_chars] + "..."
        return text
