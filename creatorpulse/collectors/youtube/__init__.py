"""YouTube video normalization (channel feeds and API video payloads)."""
