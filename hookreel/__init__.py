"""Batch renderer for short vertical hook reels."""

__version__ = "0.1.0"
