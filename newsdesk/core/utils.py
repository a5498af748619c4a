"""Utility functions for URL and text processing."""

from __future__ import annotations

import re
from typing import Iterable, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

FEED_URL_PATTERN = re.compile(r"^https?://[^\s/$.?#].[^\s]*$")

REFUSAL_PATTERNS = [
    "I cannot fulfill your request",
    "I am just an AI model",
    "I can't provide assistance",
    "I cannot create content",
    "it is not within my programming",
    "I'm unable to",
    "I cannot help with",
    "I'm not able to",
    "As an AI",
    "I'm an AI",
]


def is_valid_feed_url(url: str) -> bool:
    """Check that a string looks like an http(s) URL."""
    return bool(url and FEED_URL_PATTERN.match(url.strip()))


def extract_domain(url: Optional[str]) -> str:
    """Return the lowercased host of a URL without a leading ``www.``.

    Returns an empty string if the URL cannot be parsed.
    """
    if not url:
        return ""

    try:
        domain = urlparse(url.strip()).netloc.lower()
    except ValueError:
        return ""

    domain = domain.split("@")[-1].split(":")[0]
    return re.sub(r"^www\.", "", domain)


def host_matches(url: Optional[str], domains: Iterable[str]) -> bool:
    """True if the URL's host is one of ``domains`` or a subdomain of one."""
    host = extract_domain(url)
    if not host:
        return False

    for domain in domains:
        domain = domain.strip().lower()
        if domain.startswith("www."):
            domain = domain[4:]
        if domain and (host == domain or host.endswith("." + domain)):
            return True
    return False


def strip_html(text: Optional[str]) -> str:
    """Convert an HTML fragment to whitespace-normalized plain text."""
    if not text:
        return ""
    if "<" not in text:
        return " ".join(text.split())
    soup = BeautifulSoup(text, "html.parser")
    return " ".join(soup.get_text(" ").split())


def count_words(text: Optional[str]) -> int:
    return len(strip_html(text).split())


def detect_refusal(text: Optional[str]) -> Optional[str]:
    """Return the refusal phrase found in model output, if any."""
    if not text:
        return None
    lowered = text.lower()
    for pattern in REFUSAL_PATTERNS:
        if pattern.lower() in lowered:
            return pattern
    return None


def clean_title(title: Optional[str]) -> str:
    """Clean entry titles by removing noisy prefixes and extra whitespace."""
    if not title:
        return "Untitled"

    cleaned = re.sub(r"^\[.*?\]\s*", "", strip_html(title))
    cleaned = re.sub(r"^(Fwd:|Re:|FW:)\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = " ".join(cleaned.split())
    return cleaned or "Untitled"


def truncate(text: Optional[str], limit: int) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit] + "..."
