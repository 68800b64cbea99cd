from pathlib import Path

import httpx

import config

from .http_client import HttpClient


class Kernel:
    def __init__(self, http: HttpClient | None = None):
        self.http = http or HttpClient()
        self._plugins: dict[str, object] = {}

    def register(self, name: str, plugin):
        plugin.kernel = self
        self._plugins[name] = plugin

    def __getitem__(self, name: str):
        return self._plugins[name]

    def close(self):
        self.http.close()


def create_default_kernel(
    settings: config.Settings | None = None,
    *,
    download_dir: Path | None = None,
    archive_dir: Path | None = None,
    transport: httpx.BaseTransport | None = None,
) -> Kernel:
    """Create a kernel with the validator, downloader and archiver registered."""
    from plugins import ArchiverPlugin, DownloaderPlugin, ValidatorPlugin

    settings = settings or config.SETTINGS
    if download_dir is None:
        download_dir = (
            config.resolve_download_dir(settings)
            if settings is not config.SETTINGS
            else config.DOWNLOAD_DIR
        )
    if archive_dir is None:
        archive_dir = (
            config.resolve_archive_dir(settings)
            if settings is not config.SETTINGS
            else config.ARCHIVE_DIR
        )

    kernel = Kernel(
        HttpClient(headers=config.build_headers(settings), transport=transport)
    )

    validator_plugin = ValidatorPlugin(
        allowed_extensions=settings.allowed_extensions,
        probe_timeout=settings.probe_timeout,
    )
    downloader_plugin = DownloaderPlugin(
        download_dir=download_dir,
        max_bytes=settings.download_max_bytes,
        timeout=settings.download_timeout,
        truncation_policy=settings.truncation_policy,
    )
    archiver_plugin = ArchiverPlugin(
        archive_dir=archive_dir,
        base_url=settings.archive_base_url,
    )

    kernel.register("validator", validator_plugin)
    kernel.register("downloader", downloader_plugin)
    kernel.register("archiver", archiver_plugin)

    for plugin in (validator_plugin, downloader_plugin, archiver_plugin):
        plugin.setup()

    return kernel
