"""Text helpers shared by the enrichment pipeline and the AI backends."""
from __future__ import annotations

import re
from urllib.parse import urlsplit

_WHITESPACE = re.compile(r"\s+")

UNKNOWN_DOMAIN = "unknown"


def count_words(text: str) -> int:
    """Count whitespace-separated, non-empty tokens."""
    return len([word for word in _WHITESPACE.split(text.strip()) if word])


def extract_domain(url: str) -> str:
    """Return the lower-cased host of ``url``.

    Falls back to ``UNKNOWN_DOMAIN`` when the URL has no host component, so a
    malformed URL still yields a record.
    """
    try:
        host = urlsplit(url.strip()).hostname
    except ValueError:
        host = None
    return host or UNKNOWN_DOMAIN


def truncate(text: str, limit: int, *, ellipsis: str = "") -> str:
    """Cut ``text`` to ``limit`` characters, appending ``ellipsis`` if anything was dropped."""
    if len(text) <= limit:
        return text
    return text[:limit] + ellipsis
