"""Concurrent download of a task's URLs into temporary files."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import BinaryIO

import httpx

from core.errors import DownloadError
from core.types import DownloadBatch
from utils import unique_download_name

from .base import Plugin
from .validator import media_subtype

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024
TRUNCATION_POLICIES = frozenset(["fail", "truncate"])


class DownloaderPlugin(Plugin):
    """Fans a URL batch out to one thread per URL and collects the outcomes."""

    def __init__(
        self,
        *,
        download_dir: Path,
        max_bytes: int,
        timeout: float,
        truncation_policy: str = "fail",
    ):
        super().__init__()
        if truncation_policy not in TRUNCATION_POLICIES:
            raise ValueError(
                f"Unsupported truncation policy: {truncation_policy!r}. "
                f"Supported: {', '.join(sorted(TRUNCATION_POLICIES))}"
            )
        self.download_dir = Path(download_dir)
        self.max_bytes = int(max_bytes)
        self.timeout = float(timeout)
        self.truncation_policy = truncation_policy

    def setup(self) -> None:
        self.download_dir.mkdir(parents=True, exist_ok=True)

    def download_all(
        self,
        urls: Sequence[str],
        cancel_check: Callable[[], bool] | None = None,
    ) -> DownloadBatch:
        """Download every URL concurrently; returns only after all units finish."""
        if not urls:
            return DownloadBatch()

        files: list[Path] = []
        errors: list[str] = []

        with ThreadPoolExecutor(
            max_workers=len(urls), thread_name_prefix="download"
        ) as pool:
            futures = {
                pool.submit(self.download_file, url, cancel_check): url for url in urls
            }
            for future in as_completed(futures):
                url = futures[future]
                try:
                    files.append(future.result())
                except Exception as exc:
                    logger.warning("Failed to download %s: %s", url, exc)
                    errors.append(f"failed to download file {url}, error: {exc}")

        return DownloadBatch(files=tuple(files), errors=tuple(errors))

    def download_file(
        self,
        url: str,
        cancel_check: Callable[[], bool] | None = None,
    ) -> Path:
        """Fetch one URL into ``download_dir``. Raises DownloadError on any failure."""
        try:
            with self.http.stream(url, timeout=self.timeout) as response:
                if response.status_code != httpx.codes.OK:
                    raise DownloadError(f"status code {response.status_code}")

                subtype = media_subtype(response.headers.get("content-type"))
                file_path = self.download_dir / unique_download_name(subtype)
                try:
                    with file_path.open("xb") as out:
                        self._copy_limited(response, out, url, cancel_check)
                except BaseException:
                    file_path.unlink(missing_ok=True)
                    raise
        except httpx.HTTPError as exc:
            raise DownloadError(str(exc) or exc.__class__.__name__) from exc
        except OSError as exc:
            raise DownloadError(f"failed to save file: {exc}") from exc

        logger.debug("Downloaded %s -> %s", url, file_path)
        return file_path

    def _copy_limited(
        self,
        response: httpx.Response,
        out: BinaryIO,
        url: str,
        cancel_check: Callable[[], bool] | None,
    ) -> int:
        written = 0
        for chunk in response.iter_bytes(chunk_size=DOWNLOAD_CHUNK_SIZE):
            if cancel_check and cancel_check():
                raise DownloadError("download cancelled")

            remaining = self.max_bytes - written
            if len(chunk) > remaining:
                if self.truncation_policy == "fail":
                    raise DownloadError(f"content exceeds the {self.max_bytes} byte limit")
                out.write(chunk[:remaining])
                written += remaining
                logger.warning(
                    "Truncated %s at %d bytes (TRUNCATION_POLICY=truncate).",
                    url,
                    self.max_bytes,
                )
                break

            out.write(chunk)
            written += len(chunk)
        return written
