"""LinkedIn post normalizer for BrightData snapshot items.

Also accepts the camelCase shape (numLikes, publishedAt, urn) some LinkedIn
actors emit, so older payloads posted through the batch API still map.
"""

from typing import Any, Optional

from creatorpulse.collectors.normalization.helpers import (
    as_list,
    as_str,
    coerce_int,
    entry_url,
    first_present,
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
    ReferenceAuthor,
    ReferencedContent,
    ReferenceType,
    text_stats,
)


def _media(raw: dict[str, Any]) -> list[MediaItem]:
    media = []
    for image in as_list(raw.get("images")):
        image_url = entry_url(image)
        if image_url:
            media.append(MediaItem(url=image_url, type=MediaType.IMAGE))

    duration = coerce_int(raw.get("video_duration"))
    thumbnail = as_str(raw.get("video_thumbnail"))
    for video in as_list(raw.get("videos")):
        video_url = entry_url(video)
        if video_url:
            media.append(
                MediaItem(
                    url=video_url,
                    type=MediaType.VIDEO,
                    duration=duration,
                    thumbnail_url=thumbnail,
                )
            )

    document = as_str(raw.get("document_url"))
    if document:
        media.append(MediaItem(url=document, type=MediaType.DOCUMENT))
    return media


def _repost(raw: dict[str, Any]) -> Optional[ReferencedContent]:
    repost = raw.get("repost")
    if not isinstance(repost, dict) or not (repost.get("repost_id") or repost.get("repost_url")):
        return None
    username = as_str(repost.get("repost_user_name"))
    return ReferencedContent(
        id=as_str(repost.get("repost_id")),
        platform_content_id=as_str(repost.get("repost_id")),
        url=as_str(repost.get("repost_url")),
        text=as_str(repost.get("repost_text")),
        author=ReferenceAuthor(
            id=as_str(repost.get("repost_user_id")),
            name=username,
            username=username,
        ),
        created_at=parse_timestamp(repost.get("repost_date")),
    )


def transform_linkedin_post(
    creator_id: str,
    raw: dict[str, Any],
    source_url: Optional[str] = None,
) -> ContentInput:
    """Transform a BrightData LinkedIn post to ContentInput.

    Args:
        creator_id: Owning creator id
        raw: Snapshot item
        source_url: Profile URL the snapshot covered

    Returns:
        Normalized ContentInput instance

    Raises:
        MalformedPayloadError: If the post has no URL
    """
    url = as_str(first_present(raw, "url", "post_url"))
    if not url:
        raise MalformedPayloadError("linkedin", "Post has no URL", {"id": raw.get("id")})

    author = as_str(first_present(raw, "user_id", "use_url", "author.username"))
    published_at = parse_timestamp(first_present(raw, "date_posted", "publishedAt", "posted_at"))

    post_id = as_str(first_present(raw, "id", "urn"))
    if not post_id:
        post_id = synthesize_content_id(url, author, published_at)

    # post_text is already plain; the HTML variant needs stripping
    text = as_str(first_present(raw, "post_text", "text")) or strip_markup(
        as_str(raw.get("post_text_html"))
    )
    word_count, reading_time = text_stats(text)
    media = _media(raw)
    referenced = _repost(raw)

    return ContentInput(
        creator_id=creator_id,
        platform=Platform.LINKEDIN,
        platform_content_id=post_id,
        url=url,
        title=as_str(first_present(raw, "title", "headline")) or truncate(text, 100),
        description=text,
        thumbnail_url=next(
            (m.thumbnail_url or m.url for m in media if m.type != MediaType.DOCUMENT),
            None,
        ),
        published_at=published_at,
        content_body=text,
        word_count=word_count,
        reading_time_minutes=reading_time,
        media_urls=media,
        engagement_metrics=EngagementMetrics(
            likes=coerce_int(first_present(raw, "num_likes", "numLikes")),
            comments=coerce_int(first_present(raw, "num_comments", "numComments")),
            shares=coerce_int(first_present(raw, "num_shares", "numShares")),
        ),
        reference_type=ReferenceType.RETWEET if referenced else None,
        referenced_content=referenced,
    )
