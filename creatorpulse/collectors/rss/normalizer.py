"""RSS/Atom entry normalizer.

Accepts the dicts produced by FeedFetcher (feedparser field names) as well
as rss-parser style keys (pubDate, contentSnippet, enclosure) posted by
other producers.
"""

from typing import Any, Optional

from creatorpulse.collectors.normalization.helpers import (
    as_str,
    coerce_int,
    extract_image_sources,
    first_present,
    media_type_for_mime,
    parse_timestamp,
    strip_markup,
    synthesize_content_id,
    truncate,
)
from creatorpulse.core.exceptions import MalformedPayloadError
from creatorpulse.models.content import (
    ContentInput,
    EngagementMetrics,
    MediaItem,
    MediaType,
    Platform,
    text_stats,
)

DESCRIPTION_LIMIT = 300


def _body_html(raw: dict[str, Any]) -> Optional[str]:
    content = raw.get("content")
    # feedparser exposes content as a list of {type, value}
    if isinstance(content, list):
        parts = [c.get("value") for c in content if isinstance(c, dict) and c.get("value")]
        content = "\n".join(parts) if parts else None
    return as_str(content) or as_str(raw.get("content:encoded")) or as_str(
        first_present(raw, "summary", "description", "contentSnippet")
    )


def _enclosures(raw: dict[str, Any]) -> list[MediaItem]:
    enclosures = raw.get("enclosures")
    if enclosures is None and raw.get("enclosure"):
        enclosures = [raw["enclosure"]]

    media = []
    for enclosure in enclosures or []:
        if not isinstance(enclosure, dict):
            continue
        url = as_str(first_present(enclosure, "href", "url"))
        if not url:
            continue
        media.append(
            MediaItem(
                url=url,
                type=media_type_for_mime(enclosure.get("type")),
                size=coerce_int(enclosure.get("length")),
            )
        )
    return media


def transform_rss_item(
    creator_id: str,
    raw: dict[str, Any],
    source_url: Optional[str] = None,
) -> ContentInput:
    """Transform one feed entry to ContentInput.

    Identifier precedence is guid, id, then link. Entries with none of
    those get a synthesized id from (url, author, published).

    Args:
        creator_id: Owning creator id
        raw: Feed entry dictionary
        source_url: Feed URL, used when the entry has no link

    Returns:
        Normalized ContentInput instance

    Raises:
        MalformedPayloadError: If neither the entry nor the feed has a URL
    """
    link = as_str(raw.get("link"))
    url = link or as_str(source_url)
    if not url:
        raise MalformedPayloadError("rss", "Entry has no link and no feed URL")

    published_at = parse_timestamp(
        first_present(raw, "published_parsed", "updated_parsed")
    ) or parse_timestamp(first_present(raw, "published", "pubDate", "isoDate", "updated"))

    author = as_str(first_present(raw, "author", "creator", "dc:creator"))
    platform_content_id = as_str(first_present(raw, "guid", "id")) or link
    if not platform_content_id:
        platform_content_id = synthesize_content_id(url, author, published_at)

    body_html = _body_html(raw)
    body_text = strip_markup(body_html)

    snippet = strip_markup(as_str(first_present(raw, "contentSnippet", "summary", "description")))
    description = truncate(snippet or body_text, DESCRIPTION_LIMIT)

    media = _enclosures(raw)
    known = {m.url for m in media}
    for src in extract_image_sources(body_html):
        if src not in known:
            media.append(MediaItem(url=src, type=MediaType.IMAGE))
            known.add(src)

    word_count, reading_time = text_stats(body_text)

    return ContentInput(
        creator_id=creator_id,
        platform=Platform.RSS,
        platform_content_id=platform_content_id,
        url=url,
        title=strip_markup(as_str(raw.get("title"))),
        description=description,
        thumbnail_url=next((m.url for m in media if m.type == MediaType.IMAGE), None),
        published_at=published_at,
        content_body=body_text,
        word_count=word_count,
        reading_time_minutes=reading_time,
        media_urls=media,
        engagement_metrics=EngagementMetrics(),
    )
