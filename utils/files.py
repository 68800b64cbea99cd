"""File system utilities: filename sanitization and unique download names."""

from __future__ import annotations

import re
import time
import uuid

_FILENAME_CHAR_MAP: dict[int, str | None] = str.maketrans(
    {
        "/": "-",
        "\\": "-",
        ":": "-",
        "|": "-",
        "?": None,
        "*": None,
        '"': None,
        "<": None,
        ">": None,
        " ": None,
    }
)

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")
_EXTENSION_RE = re.compile(r"[^a-z0-9.+-]")

_MAX_EXTENSION_CHARS = 32
_DEFAULT_EXTENSION = "bin"


def sanitize_extension(subtype: str | None) -> str:
    """Turn a media subtype into a safe file extension.

    Examples:
        >>> sanitize_extension("jpeg")
        'jpeg'
        >>> sanitize_extension("svg+xml")
        'svg+xml'
        >>> sanitize_extension("../../etc")
        'etc'
        >>> sanitize_extension(None)
        'bin'
    """
    text = "" if subtype is None else str(subtype)
    text = _CONTROL_CHARS_RE.sub("", text).translate(_FILENAME_CHAR_MAP).lower()
    text = _EXTENSION_RE.sub("", text).strip(".-")
    return text[:_MAX_EXTENSION_CHARS] or _DEFAULT_EXTENSION


def unique_download_name(subtype: str | None) -> str:
    """Build ``file-<ns timestamp>-<random>.<ext>`` for a temporary download.

    The nanosecond clock keeps names ordered; the random suffix covers two
    threads reading the same clock tick.
    """
    return f"file-{time.time_ns()}-{uuid.uuid4().hex[:8]}.{sanitize_extension(subtype)}"
