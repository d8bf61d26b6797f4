"""Shared helpers for platform normalizers.

Everything here is pure: no network, no clock except where noted.
"""

import hashlib
import re
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Iterable, Mapping, Optional

from bs4 import BeautifulSoup

from creatorpulse.models.content import MediaType

SYNTHETIC_ID_PREFIX = "synthetic:"

_WHITESPACE = re.compile(r"\s+")

_TWITTER_DATE_FORMAT = "%a %b %d %H:%M:%S %z %Y"


def synthesize_content_id(url: str, author: Optional[str], timestamp: Any) -> str:
    """Deterministic identifier for items without a native id.

    Hashes url, author and timestamp. If the upstream later starts
    supplying native ids, previously hashed items will not dedupe against
    them. The prefix keeps synthetic ids recognisable.
    """
    if isinstance(timestamp, datetime):
        stamp = timestamp.isoformat()
    else:
        stamp = "" if timestamp is None else str(timestamp)
    digest = hashlib.sha256(f"{url}|{author or ''}|{stamp}".encode("utf-8")).hexdigest()
    return f"{SYNTHETIC_ID_PREFIX}{digest[:32]}"


def is_synthetic_id(platform_content_id: str) -> bool:
    return platform_content_id.startswith(SYNTHETIC_ID_PREFIX)


def first_present(data: Mapping[str, Any], *keys: str) -> Any:
    """Return the first value that is not None or empty string.

    Keys may be dotted paths ("snippet.title").
    """
    for key in keys:
        value = dig(data, key)
        if value is not None and value != "":
            return value
    return None


def dig(data: Any, path: str) -> Any:
    current = data
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def entry_url(entry: Any) -> Optional[str]:
    """URL of a media entry given either as a bare string or as {"url": ...}."""
    if isinstance(entry, Mapping):
        return as_str(entry.get("url"))
    if isinstance(entry, str):
        return as_str(entry)
    return None


def as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def coerce_int(value: Any) -> Optional[int]:
    """Coerce counters that arrive as int, float or numeric string."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        cleaned = value.strip().replace(",", "")
        if not cleaned:
            return None
        try:
            return int(float(cleaned))
        except ValueError:
            return None
    return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse upstream timestamps into aware UTC datetimes.

    Accepts datetimes, struct_time (feedparser *_parsed fields), epoch
    seconds or milliseconds, ISO 8601, RFC 822 and Twitter's legacy
    "Wed Oct 10 20:19:24 +0000 2018" format. Returns None when nothing
    parses.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, time.struct_time):
        parsed = datetime(*value[:6], tzinfo=timezone.utc)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e12 else value
        try:
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        parsed = _parse_timestamp_string(value.strip())
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_timestamp_string(value: str) -> Optional[datetime]:
    if not value:
        return None
    if value.isdigit():
        return parse_timestamp(int(value))
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return datetime.strptime(value, _TWITTER_DATE_FORMAT)
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None


def strip_markup(value: Optional[str]) -> Optional[str]:
    """Reduce HTML to plain text with collapsed whitespace."""
    if value is None:
        return None
    if "<" not in value and "&" not in value:
        text = _WHITESPACE.sub(" ", value).strip()
        return text or None
    text = BeautifulSoup(value, "html.parser").get_text(" ", strip=True)
    text = _WHITESPACE.sub(" ", text).strip()
    return text or None


def extract_image_sources(html: Optional[str]) -> list[str]:
    """Collect <img src> URLs from an HTML fragment, in document order."""
    if not html or "<img" not in html.lower():
        return []
    soup = BeautifulSoup(html, "html.parser")
    sources = []
    for img in soup.find_all("img"):
        src = img.get("src")
        if src and src not in sources:
            sources.append(src)
    return sources


def media_type_for_mime(mime_type: Optional[str]) -> MediaType:
    mime = (mime_type or "").lower()
    if mime.startswith("image/"):
        return MediaType.IMAGE
    if mime.startswith("video/"):
        return MediaType.VIDEO
    if mime.startswith("audio/"):
        return MediaType.AUDIO
    return MediaType.DOCUMENT


def truncate(text: Optional[str], limit: int) -> Optional[str]:
    if text is None or len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def compact(values: Iterable[Optional[str]]) -> list[str]:
    return [v for v in values if v]
