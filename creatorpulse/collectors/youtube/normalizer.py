"""YouTube video normalizer.

Handles two payload shapes:
- YouTube Data API video/search resources (id, snippet, statistics)
- Channel feed entries from feedparser (yt_videoid, media_thumbnail)
"""

from typing import Any, Optional

from creatorpulse.collectors.normalization.helpers import (
    as_str,
    coerce_int,
    dig,
    first_present,
    parse_timestamp,
    strip_markup,
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

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


def _video_id(raw: dict[str, Any]) -> Optional[str]:
    raw_id = raw.get("id")
    if isinstance(raw_id, dict):
        return as_str(raw_id.get("videoId"))
    video_id = as_str(first_present(raw, "videoId", "yt_videoid"))
    if video_id:
        return video_id
    # Feed entries carry "yt:video:<id>" as their id
    if isinstance(raw_id, str) and raw_id.startswith("yt:video:"):
        return raw_id.split(":", 2)[2] or None
    return as_str(raw_id)


def _thumbnail(raw: dict[str, Any]) -> Optional[MediaItem]:
    thumbnails = dig(raw, "snippet.thumbnails")
    if not isinstance(thumbnails, dict):
        thumbnails = {}
    for size in ("maxres", "high", "medium", "default"):
        thumb = thumbnails.get(size)
        if isinstance(thumb, dict) and thumb.get("url"):
            return MediaItem(
                url=thumb["url"],
                type=MediaType.IMAGE,
                width=coerce_int(thumb.get("width")),
                height=coerce_int(thumb.get("height")),
            )

    media_thumbnail = raw.get("media_thumbnail")
    if isinstance(media_thumbnail, list) and media_thumbnail:
        thumb = media_thumbnail[0]
        if isinstance(thumb, dict) and thumb.get("url"):
            return MediaItem(
                url=thumb["url"],
                type=MediaType.IMAGE,
                width=coerce_int(thumb.get("width")),
                height=coerce_int(thumb.get("height")),
            )
    return None


def transform_youtube_video(
    creator_id: str,
    raw: dict[str, Any],
    source_url: Optional[str] = None,
) -> ContentInput:
    """Transform a YouTube video payload to ContentInput."""
    video_id = _video_id(raw)
    if not video_id:
        raise MalformedPayloadError("youtube", "Video payload has no id")

    url = as_str(raw.get("link")) or WATCH_URL.format(video_id=video_id)
    # Data API descriptions are plain text; feed summaries may carry markup
    description = as_str(dig(raw, "snippet.description")) or strip_markup(
        as_str(first_present(raw, "media_description", "summary"))
    )

    thumbnail = _thumbnail(raw)
    word_count, _ = text_stats(description)

    metrics = EngagementMetrics(
        views=coerce_int(first_present(raw, "statistics.viewCount", "media_statistics.views")),
        likes=coerce_int(first_present(raw, "statistics.likeCount", "media_starrating.count")),
        comments=coerce_int(dig(raw, "statistics.commentCount")),
    )

    return ContentInput(
        creator_id=creator_id,
        platform=Platform.YOUTUBE,
        platform_content_id=video_id,
        url=url,
        title=as_str(first_present(raw, "snippet.title", "title")),
        description=description,
        thumbnail_url=thumbnail.url if thumbnail else None,
        published_at=parse_timestamp(
            first_present(raw, "snippet.publishedAt", "published_parsed", "published")
        ),
        content_body=description,
        word_count=word_count,
        # Videos have no reading time
        reading_time_minutes=0,
        media_urls=[thumbnail] if thumbnail else [],
        engagement_metrics=metrics,
    )
