"""Podcast clip to captioned vertical video service."""

__version__ = "0.1.0"
