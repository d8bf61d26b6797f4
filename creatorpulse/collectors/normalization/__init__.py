"""Normalization infrastructure for collected content.

Maps each platform's raw payload to the canonical ContentInput.
"""

from creatorpulse.collectors.normalization.pipeline import (
    ContentNormalizer,
    Transformer,
    get_normalizer,
)

__all__ = [
    "ContentNormalizer",
    "Transformer",
    "get_normalizer",
]
