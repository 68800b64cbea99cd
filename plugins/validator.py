"""URL admission checks run before a link is attached to a task."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from urllib.parse import urlsplit

import httpx

from core.types import RejectionReason

from .base import Plugin

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = frozenset(["http", "https"])


def media_subtype(content_type: str | None) -> str | None:
    """Return the lower-cased subtype of a Content-Type header value.

    Examples:
        >>> media_subtype("image/jpeg; charset=binary")
        'jpeg'
        >>> media_subtype("application/PDF")
        'pdf'
        >>> media_subtype("garbage") is None
        True
    """
    if not content_type:
        return None
    mime = content_type.split(";", 1)[0].strip()
    parts = mime.split("/")
    if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
        return None
    return parts[1].strip().lower()


def is_well_formed(url: str) -> bool:
    """Scheme and host present, and parseable by both urllib and httpx."""
    try:
        parsed = urlsplit(url)
        hostname = parsed.hostname
        httpx.URL(url)
    except (ValueError, httpx.InvalidURL):
        return False
    return parsed.scheme.lower() in _ALLOWED_SCHEMES and bool(hostname)


class ValidatorPlugin(Plugin):
    """Accept or reject a single URL. Never raises for a bad URL."""

    def __init__(self, *, allowed_extensions: Iterable[str], probe_timeout: float):
        super().__init__()
        self.allowed_extensions = frozenset(ext.lower() for ext in allowed_extensions)
        self.probe_timeout = float(probe_timeout)

    def check(self, url: str) -> RejectionReason | None:
        """Return ``None`` when the URL is acceptable, otherwise the first failed check."""
        if not isinstance(url, str) or not is_well_formed(url.strip()):
            return RejectionReason.MALFORMED_URL
        url = url.strip()

        try:
            response = self.http.head(url, timeout=self.probe_timeout)
        except httpx.HTTPError as exc:
            logger.debug("HEAD probe failed for %s: %s", url, exc)
            return RejectionReason.UNREACHABLE

        if response.status_code >= 400:
            logger.debug("HEAD probe for %s answered %d", url, response.status_code)
            return RejectionReason.UNREACHABLE

        content_type = response.headers.get("content-type", "").strip()
        if not content_type:
            return RejectionReason.MISSING_CONTENT_TYPE

        if media_subtype(content_type) not in self.allowed_extensions:
            return RejectionReason.DISALLOWED_TYPE

        return None
