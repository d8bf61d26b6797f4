"""Twitter and Threads normalizers for Apify actor output.

Tweets come from the tweet scraper actor (camelCase fields) or the v2 API
shape (public_metrics). Threads posts come from the threads scraper actor
(Instagram-style snake_case fields). Post text on both platforms is plain
text and passes through verbatim.
"""

from typing import Any, Optional

from creatorpulse.collectors.normalization.helpers import (
    as_list,
    as_str,
    coerce_int,
    dig,
    first_present,
    parse_timestamp,
    synthesize_content_id,
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

TWEET_URL = "https://twitter.com/i/status/{tweet_id}"
THREADS_POST_URL = "https://www.threads.net/@{username}/post/{code}"

_MEDIA_TYPES = {t.value for t in MediaType}


# =============================================================================
# Twitter
# =============================================================================


def _tweet_author(author: Any) -> Optional[ReferenceAuthor]:
    if not isinstance(author, dict):
        return None
    return ReferenceAuthor(
        id=as_str(author.get("id")),
        username=as_str(first_present(author, "userName", "username", "screen_name")),
        name=as_str(author.get("name")),
        avatar_url=as_str(
            first_present(author, "profilePicture", "profileImageUrl", "profile_image_url_https")
        ),
        is_verified=first_present(author, "isBlueVerified", "isVerified", "verified"),
    )


def _best_video_variant(media: dict[str, Any]) -> Optional[str]:
    variants = dig(media, "video_info.variants") or []
    mp4s = [
        v for v in variants
        if isinstance(v, dict) and v.get("content_type") == "video/mp4" and v.get("url")
    ]
    if not mp4s:
        return None
    return max(mp4s, key=lambda v: v.get("bitrate") or 0)["url"]


def _tweet_media(tweet: dict[str, Any]) -> list[MediaItem]:
    media_items = dig(tweet, "extendedEntities.media") or dig(tweet, "entities.media") or []
    results = []
    for media in media_items:
        if not isinstance(media, dict):
            continue
        thumbnail = as_str(first_present(media, "media_url_https", "media_url"))
        width = coerce_int(dig(media, "original_info.width"))
        height = coerce_int(dig(media, "original_info.height"))
        if media.get("type") in ("video", "animated_gif"):
            video_url = _best_video_variant(media)
            if not video_url and not thumbnail:
                continue
            duration_ms = coerce_int(dig(media, "video_info.duration_millis"))
            results.append(
                MediaItem(
                    url=video_url or thumbnail,
                    type=MediaType.VIDEO,
                    width=width,
                    height=height,
                    duration=duration_ms / 1000 if duration_ms else None,
                    thumbnail_url=thumbnail,
                )
            )
        elif thumbnail:
            results.append(
                MediaItem(url=thumbnail, type=MediaType.IMAGE, width=width, height=height)
            )
    return results


def _tweet_metrics(tweet: dict[str, Any]) -> EngagementMetrics:
    return EngagementMetrics(
        views=coerce_int(first_present(tweet, "viewCount", "public_metrics.impression_count")),
        likes=coerce_int(first_present(tweet, "likeCount", "public_metrics.like_count")),
        comments=coerce_int(first_present(tweet, "replyCount", "public_metrics.reply_count")),
        retweets=coerce_int(first_present(tweet, "retweetCount", "public_metrics.retweet_count")),
        bookmarks=coerce_int(first_present(tweet, "bookmarkCount", "public_metrics.bookmark_count")),
        shares=coerce_int(first_present(tweet, "quoteCount", "public_metrics.quote_count")),
    )


def _tweet_reference(
    tweet: dict[str, Any],
) -> tuple[Optional[ReferenceType], Optional[ReferencedContent]]:
    quoted = tweet.get("quote")
    if tweet.get("isQuote") and isinstance(quoted, dict):
        quoted_id = as_str(first_present(tweet, "quoteId")) or as_str(quoted.get("id"))
        return ReferenceType.QUOTE, ReferencedContent(
            id=quoted_id,
            platform_content_id=as_str(quoted.get("id")),
            url=as_str(first_present(quoted, "url", "twitterUrl")),
            text=as_str(first_present(quoted, "text", "fullText")),
            author=_tweet_author(quoted.get("author")),
            created_at=parse_timestamp(quoted.get("createdAt")),
            media_urls=_tweet_media(quoted),
            engagement_metrics=_tweet_metrics(quoted),
        )

    retweeted = tweet.get("retweet")
    if tweet.get("isRetweet") and isinstance(retweeted, dict):
        return ReferenceType.RETWEET, ReferencedContent(
            id=as_str(retweeted.get("id")),
            platform_content_id=as_str(retweeted.get("id")),
            url=as_str(first_present(retweeted, "url", "twitterUrl")),
            text=as_str(first_present(retweeted, "text", "fullText")),
            author=_tweet_author(retweeted.get("author")),
            created_at=parse_timestamp(retweeted.get("createdAt")),
            media_urls=_tweet_media(retweeted),
            engagement_metrics=_tweet_metrics(retweeted),
        )

    reply_to = as_str(tweet.get("inReplyToId"))
    if tweet.get("isReply") and reply_to:
        username = as_str(tweet.get("inReplyToUsername"))
        return ReferenceType.REPLY, ReferencedContent(
            id=reply_to,
            platform_content_id=reply_to,
            url=TWEET_URL.format(tweet_id=reply_to),
            author=ReferenceAuthor(username=username) if username else None,
        )

    return None, None


def transform_tweet(
    creator_id: str,
    raw: dict[str, Any],
    source_url: Optional[str] = None,
) -> ContentInput:
    """Transform a scraped tweet to ContentInput.

    Args:
        creator_id: Owning creator id
        raw: Tweet dictionary from the scraper actor
        source_url: Profile URL the tweet was scraped for

    Returns:
        Normalized ContentInput instance

    Raises:
        MalformedPayloadError: If the tweet has neither id nor URL
    """
    tweet_id = as_str(first_present(raw, "id", "id_str"))
    url = as_str(first_present(raw, "url", "twitterUrl"))
    if not url and tweet_id:
        url = TWEET_URL.format(tweet_id=tweet_id)
    if not url:
        raise MalformedPayloadError("twitter", "Tweet has no id and no URL")

    author = _tweet_author(raw.get("author"))
    published_at = parse_timestamp(first_present(raw, "createdAt", "created_at"))
    if not tweet_id:
        tweet_id = synthesize_content_id(url, author.username if author else None, published_at)

    text = as_str(first_present(raw, "text", "fullText"))
    word_count, reading_time = text_stats(text)
    reference_type, referenced = _tweet_reference(raw)
    media = _tweet_media(raw)
    username = author.username if author and author.username else "unknown"

    return ContentInput(
        creator_id=creator_id,
        platform=Platform.TWITTER,
        platform_content_id=tweet_id,
        url=url,
        title=f"Tweet by @{username}",
        description=text,
        thumbnail_url=next(
            (m.thumbnail_url or m.url for m in media if m.type == MediaType.IMAGE or m.thumbnail_url),
            None,
        ),
        published_at=published_at,
        content_body=text,
        word_count=word_count,
        reading_time_minutes=reading_time,
        media_urls=media,
        engagement_metrics=_tweet_metrics(raw),
        reference_type=reference_type,
        referenced_content=referenced,
    )


# =============================================================================
# Threads
# =============================================================================


def _threads_author(user: Any) -> Optional[ReferenceAuthor]:
    if not isinstance(user, dict):
        return None
    return ReferenceAuthor(
        id=as_str(first_present(user, "id", "pk")),
        username=as_str(user.get("username")),
        name=as_str(first_present(user, "full_name", "name")),
        avatar_url=as_str(first_present(user, "profile_pic_url", "profile_picture", "avatar_url")),
        is_verified=user.get("is_verified"),
    )


def _threads_media_entry(post: dict[str, Any]) -> Optional[MediaItem]:
    candidates = as_list(dig(post, "image_versions2.candidates"))
    thumbnail = candidates[0] if candidates and isinstance(candidates[0], dict) else {}
    videos = as_list(post.get("video_versions"))
    if videos and isinstance(videos[0], dict) and videos[0].get("url"):
        return MediaItem(
            url=videos[0]["url"],
            type=MediaType.VIDEO,
            width=coerce_int(post.get("original_width")),
            height=coerce_int(post.get("original_height")),
            thumbnail_url=as_str(thumbnail.get("url")),
        )
    if thumbnail.get("url"):
        return MediaItem(
            url=thumbnail["url"],
            type=MediaType.IMAGE,
            width=coerce_int(thumbnail.get("width")),
            height=coerce_int(thumbnail.get("height")),
        )
    return None


def _threads_media(post: dict[str, Any]) -> list[MediaItem]:
    carousel = post.get("carousel_media")
    if isinstance(carousel, list) and carousel:
        items = [_threads_media_entry(m) for m in carousel if isinstance(m, dict)]
        return [m for m in items if m is not None]
    single = _threads_media_entry(post)
    if single is not None:
        return [single]

    # Flattened actor output
    media = []
    for entry in as_list(post.get("media")):
        if isinstance(entry, dict) and entry.get("url"):
            media_type = entry.get("type") if entry.get("type") in _MEDIA_TYPES else "image"
            media.append(MediaItem(url=entry["url"], type=MediaType(media_type)))
    return media


def _threads_text(post: dict[str, Any]) -> Optional[str]:
    return as_str(first_present(post, "caption.text", "text"))


def _threads_url(post: dict[str, Any]) -> Optional[str]:
    code = as_str(post.get("code"))
    username = as_str(dig(post, "user.username"))
    if code and username:
        return THREADS_POST_URL.format(username=username, code=code)
    return as_str(post.get("url"))


def _threads_reference(
    post: dict[str, Any],
) -> tuple[Optional[ReferenceType], Optional[ReferencedContent]]:
    share_info = dig(post, "text_post_app_info.share_info")
    if not isinstance(share_info, dict):
        share_info = {}

    for key, reference_type in (
        ("quoted_post", ReferenceType.QUOTE),
        ("reposted_post", ReferenceType.RETWEET),
    ):
        referenced = share_info.get(key)
        if isinstance(referenced, dict):
            referenced_id = as_str(first_present(referenced, "id", "pk"))
            return reference_type, ReferencedContent(
                id=referenced_id,
                platform_content_id=referenced_id,
                url=_threads_url(referenced),
                text=_threads_text(referenced),
                author=_threads_author(referenced.get("user")),
                created_at=parse_timestamp(referenced.get("taken_at")),
                media_urls=_threads_media(referenced),
                engagement_metrics=EngagementMetrics(
                    likes=coerce_int(referenced.get("like_count")),
                ),
            )

    reply_author = dig(post, "text_post_app_info.reply_to_author")
    if isinstance(reply_author, dict):
        return ReferenceType.REPLY, ReferencedContent(author=_threads_author(reply_author))

    return None, None


def transform_thread_post(
    creator_id: str,
    raw: dict[str, Any],
    source_url: Optional[str] = None,
) -> ContentInput:
    """Transform a scraped Threads post to ContentInput."""
    post_id = as_str(first_present(raw, "id", "pk"))
    url = _threads_url(raw)
    if not url:
        raise MalformedPayloadError("threads", "Post has no URL")

    author = _threads_author(raw.get("user"))
    published_at = parse_timestamp(first_present(raw, "taken_at", "timestamp"))
    if not post_id:
        post_id = synthesize_content_id(url, author.username if author else None, published_at)

    text = _threads_text(raw)
    word_count, reading_time = text_stats(text)
    reference_type, referenced = _threads_reference(raw)
    media = _threads_media(raw)
    username = author.username if author and author.username else "unknown"

    return ContentInput(
        creator_id=creator_id,
        platform=Platform.THREADS,
        platform_content_id=post_id,
        url=url,
        title=f"Thread by @{username}",
        description=text,
        thumbnail_url=(media[0].thumbnail_url or media[0].url) if media else None,
        published_at=published_at,
        content_body=text,
        word_count=word_count,
        reading_time_minutes=reading_time,
        media_urls=media,
        engagement_metrics=EngagementMetrics(
            likes=coerce_int(first_present(raw, "like_count", "likeCount")),
            comments=coerce_int(
                first_present(raw, "text_post_app_info.direct_reply_count", "reply_count", "replyCount")
            ),
            shares=coerce_int(first_present(raw, "text_post_app_info.reshare_count", "shareCount")),
            retweets=coerce_int(dig(raw, "text_post_app_info.repost_count")),
        ),
        reference_type=reference_type,
        referenced_content=referenced,
    )
