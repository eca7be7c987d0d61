"""Utility helpers for webtoon translator."""
