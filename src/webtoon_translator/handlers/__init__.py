"""Handlers package for the webtoon translator."""

from webtoon_translator.handlers import extraction, keys, quality

__all__ = [
    "extraction",
    "keys",
    "quality",
]
