"""Content fingerprints for cross-platform duplicate detection.

The dedup key catches the same post ingested twice. These hashes catch the
same words published twice, e.g. one announcement posted to LinkedIn,
Twitter and Threads. Short-form social text is hashed on its first
significant words so trailing hashtags or a shortened link do not split a
group; long-form content hashes its normalized title plus a source anchor.
"""

import hashlib
import re
from datetime import datetime, timezone
from typing import Iterable, Optional
from urllib.parse import urlparse

from creatorpulse.models.content import Content, ContentInput, Platform

SOCIAL_PLATFORMS = frozenset({Platform.TWITTER, Platform.THREADS, Platform.LINKEDIN})

# Higher wins when choosing the primary item of a duplicate group
PLATFORM_PRIORITY: dict[Platform, int] = {
    Platform.YOUTUBE: 10,
    Platform.TWITTER: 8,
    Platform.LINKEDIN: 7,
    Platform.THREADS: 6,
    Platform.RSS: 5,
    Platform.WEBSITE: 4,
}

FINGERPRINT_WORDS = 100
MIN_WORD_LENGTH = 3

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_YOUTUBE_ID = re.compile(r"(?:[?&]v=|youtu\.be/|/embed/|/shorts/|/v/)([A-Za-z0-9_-]{11})")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def normalize_text(text: str) -> str:
    return _WHITESPACE.sub(" ", _NON_WORD.sub(" ", text.lower())).strip()


def significant_words(text: str) -> list[str]:
    return [w for w in normalize_text(text).split(" ") if len(w) >= MIN_WORD_LENGTH]


def content_text(content: ContentInput) -> str:
    """The text that identifies a piece of content.

    Social posts are identified by their body; titles there are generated.
    """
    if content.platform in SOCIAL_PLATFORMS:
        candidates = (content.description, content.content_body, content.title)
    else:
        candidates = (content.title, content.description, content.content_body)
    return next((text for text in candidates if text), "")


def youtube_video_id(url: str) -> Optional[str]:
    match = _YOUTUBE_ID.search(url)
    return match.group(1) if match else None


def source_domain(url: str) -> Optional[str]:
    host = urlparse(url).hostname or ""
    return host.removeprefix("www.") or None


def content_hash(content: ContentInput) -> str:
    """SHA-256 fingerprint scoped to the creator."""
    text = content_text(content)

    if content.platform in SOCIAL_PLATFORMS:
        components = [content.creator_id, " ".join(significant_words(text)[:FINGERPRINT_WORDS])]
    else:
        components = [content.creator_id, normalize_text(text)]
        if content.platform == Platform.YOUTUBE:
            anchor = youtube_video_id(content.url)
        elif content.platform in (Platform.RSS, Platform.WEBSITE):
            anchor = source_domain(content.url)
        else:
            anchor = None
        if anchor:
            components.append(anchor)

    return hashlib.sha256(":".join(components).encode("utf-8")).hexdigest()


def text_similarity(first: str, second: str) -> float:
    """Jaccard similarity of the significant words of two texts."""
    words_a = set(significant_words(first))
    words_b = set(significant_words(second))
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def select_primary(contents: Iterable[Content]) -> Content:
    """Pick the item a duplicate group is shown as.

    Platform priority first, then the most recently published.

    Raises:
        ValueError: If contents is empty.
    """
    return max(
        contents,
        key=lambda c: (PLATFORM_PRIORITY.get(c.platform, 0), c.published_at or _EPOCH),
    )
