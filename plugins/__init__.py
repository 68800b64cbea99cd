"""Plugin package exports."""

from .archiver import ArchiverPlugin
from .base import Plugin
from .downloader import DownloaderPlugin
from .validator import ValidatorPlugin

__all__ = [
    "ArchiverPlugin",
    "DownloaderPlugin",
    "Plugin",
    "ValidatorPlugin",
]
