"""Webtoon translator core: API key rotation, batch orchestration and response extraction."""

__version__ = "0.1.0"
