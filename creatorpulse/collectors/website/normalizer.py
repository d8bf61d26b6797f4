"""Generic web page normalizer.

Web pages have no native id; the page URL is the identity.
"""

from typing import Any, Optional

from creatorpulse.collectors.normalization.helpers import (
    as_list,
    as_str,
    entry_url,
    first_present,
    parse_timestamp,
    strip_markup,
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


def transform_web_page(
    creator_id: str,
    raw: dict[str, Any],
    source_url: Optional[str] = None,
) -> ContentInput:
    """Transform scraped page metadata to ContentInput."""
    url = as_str(first_present(raw, "url", "link")) or as_str(source_url)
    if not url:
        raise MalformedPayloadError("website", "Page payload has no URL")

    body = strip_markup(as_str(first_present(raw, "content", "body")))
    description = strip_markup(as_str(first_present(raw, "description", "excerpt")))

    media = []
    for image in as_list(raw.get("images")):
        image_url = entry_url(image)
        if image_url:
            media.append(MediaItem(url=image_url, type=MediaType.IMAGE))

    word_count, reading_time = text_stats(body)

    return ContentInput(
        creator_id=creator_id,
        platform=Platform.WEBSITE,
        platform_content_id=url,
        url=url,
        title=strip_markup(as_str(raw.get("title"))),
        description=truncate(description or body, 300),
        thumbnail_url=as_str(first_present(raw, "image", "thumbnail")),
        published_at=parse_timestamp(
            first_present(raw, "publishDate", "datePublished", "published")
        ),
        content_body=body,
        word_count=word_count,
        reading_time_minutes=reading_time,
        media_urls=media,
        engagement_metrics=EngagementMetrics(),
    )
