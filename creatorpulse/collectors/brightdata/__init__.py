"""BrightData snapshot client and LinkedIn post normalization."""

from creatorpulse.collectors.brightdata.client import BrightDataClient

__all__ = ["BrightDataClient"]
