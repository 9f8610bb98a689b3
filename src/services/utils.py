"""Shared utility functions for service layer."""
from datetime import UTC, datetime
from urllib.parse import urlparse


def escape_ilike(value: str) -> str:
    r"""
    Escape special ILIKE characters for safe use in LIKE/ILIKE patterns.

    LIKE/ILIKE treats these characters specially:
    - % matches any sequence of characters
    - _ matches any single character
    - \\ is the escape character

    This function escapes them so they match literally. Pair it with
    ``escape="\\"`` on the column operator; SQLite has no default escape char.
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def extract_domain(url: str) -> str:
    """Hostname of a URL, or 'unknown' when it has none."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return "unknown"
    return hostname or "unknown"
