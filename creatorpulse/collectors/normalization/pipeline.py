"""Normalization pipeline keyed by platform.

Each platform registers one transformer that maps its raw payload shape to
ContentInput. Dispatch happens here and nowhere else.
"""

from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError

from creatorpulse.core.exceptions import MalformedPayloadError
from creatorpulse.models.content import ContentInput, Platform
from creatorpulse.monitoring.metrics import record_normalization_failure

logger = structlog.get_logger(__name__)

# (creator_id, raw payload, source_url) -> ContentInput
Transformer = Callable[[str, dict[str, Any], Optional[str]], ContentInput]


class ContentNormalizer:
    """Pipeline for normalizing raw platform payloads.

    Example:
        normalizer = get_normalizer()
        content = normalizer.normalize(creator_id, Platform.RSS, entry, feed_url)
    """

    def __init__(self):
        self._transformers: dict[Platform, Transformer] = {}

    def register_transformer(self, platform: Platform, transformer: Transformer) -> None:
        """Register the transformer for a platform.

        Args:
            platform: Platform the transformer handles.
            transformer: Callable producing ContentInput from a raw payload.
        """
        self._transformers[platform] = transformer

    def has_transformer(self, platform: Platform) -> bool:
        return platform in self._transformers

    def list_platforms(self) -> list[Platform]:
        return list(self._transformers.keys())

    def normalize(
        self,
        creator_id: str,
        platform: Platform | str,
        raw: Any,
        source_url: Optional[str] = None,
    ) -> ContentInput:
        """Normalize one raw payload.

        Args:
            creator_id: Owning creator id.
            platform: Platform the payload came from.
            raw: Raw upstream payload (a mapping).
            source_url: Feed or profile URL the payload was fetched from.

        Returns:
            Canonical ContentInput.

        Raises:
            MalformedPayloadError: If the payload has no URL, no usable
                identifier, or otherwise fails validation.
            ValueError: If no transformer is registered for the platform.
        """
        platform = Platform(platform)
        transformer = self._transformers.get(platform)
        if transformer is None:
            raise ValueError(f"No transformer registered for platform: {platform.value}")

        if not isinstance(raw, dict):
            record_normalization_failure(platform.value)
            raise MalformedPayloadError(
                platform.value,
                f"Expected a mapping payload, got {type(raw).__name__}",
            )

        try:
            return transformer(creator_id, raw, source_url)
        except MalformedPayloadError:
            record_normalization_failure(platform.value)
            raise
        except (ValidationError, AttributeError, KeyError, TypeError, ValueError) as e:
            record_normalization_failure(platform.value)
            raise MalformedPayloadError(
                platform.value,
                f"Payload failed validation: {e}",
                {"error_type": type(e).__name__},
            ) from e

    def normalize_many(
        self,
        creator_id: str,
        platform: Platform | str,
        items: list[Any],
        source_url: Optional[str] = None,
    ) -> tuple[list[ContentInput], list[tuple[int, MalformedPayloadError]]]:
        """Normalize a list of payloads, collecting per-item failures.

        Returns:
            (normalized items, [(index, error), ...])
        """
        results: list[ContentInput] = []
        failures: list[tuple[int, MalformedPayloadError]] = []
        for index, raw in enumerate(items):
            try:
                results.append(self.normalize(creator_id, platform, raw, source_url))
            except MalformedPayloadError as e:
                logger.warning(
                    "content_normalization_failed",
                    platform=Platform(platform).value,
                    index=index,
                    error=str(e),
                )
                failures.append((index, e))
        return results, failures


_normalizer: Optional[ContentNormalizer] = None


def get_normalizer() -> ContentNormalizer:
    """Get the process-wide normalizer with every platform registered."""
    global _normalizer
    if _normalizer is None:
        from creatorpulse.collectors.apify.normalizer import (
            transform_thread_post,
            transform_tweet,
        )
        from creatorpulse.collectors.brightdata.normalizer import transform_linkedin_post
        from creatorpulse.collectors.rss.normalizer import transform_rss_item
        from creatorpulse.collectors.website.normalizer import transform_web_page
        from creatorpulse.collectors.youtube.normalizer import transform_youtube_video

        normalizer = ContentNormalizer()
        normalizer.register_transformer(Platform.RSS, transform_rss_item)
        normalizer.register_transformer(Platform.YOUTUBE, transform_youtube_video)
        normalizer.register_transformer(Platform.TWITTER, transform_tweet)
        normalizer.register_transformer(Platform.THREADS, transform_thread_post)
        normalizer.register_transformer(Platform.LINKEDIN, transform_linkedin_post)
        normalizer.register_transformer(Platform.WEBSITE, transform_web_page)
        _normalizer = normalizer
    return _normalizer
