"""Shared utilities."""

from __future__ import annotations

from .files import sanitize_extension, unique_download_name

__all__ = [
    "sanitize_extension",
    "unique_download_name",
]
