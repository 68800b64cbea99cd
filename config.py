"""Runtime configuration.

Precedence (highest -> lowest):
  1. Environment variables
  2. .env file
  3. Built-in defaults
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from types import MappingProxyType
from typing import Annotated, Final, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

APP_VERSION: Final[str] = "0.1.0"

BASE_DIR: Final = Path(__file__).resolve().parent
_TEMP_ROOT: Final[Path] = Path(tempfile.gettempdir()) / "link-archiver"
_RUNTIME_DOWNLOAD_FALLBACK_DIR: Final[Path] = BASE_DIR / ".runtime_downloads"
_RUNTIME_ARCHIVE_FALLBACK_DIR: Final[Path] = BASE_DIR / ".runtime_archives"


def _to_absolute_path(path: Path) -> Path:
    return path if path.is_absolute() else (BASE_DIR / path)


def _dir_is_writable(path: Path) -> bool:
    try:
        if path.exists() and not path.is_dir():
            return False
        path.mkdir(parents=True, exist_ok=True)
        probe = path / ".rw_probe"
        probe.write_text("ok", encoding="utf-8")
        probe.unlink(missing_ok=True)
        return True
    except OSError:
        return False


def _resolve_runtime_dir(
    configured: Path | None,
    *,
    default: Path,
    fallback: Path,
    label: str,
) -> Path:
    candidate = _to_absolute_path(configured or default)
    if _dir_is_writable(candidate):
        return candidate

    fallback_path = _to_absolute_path(fallback)
    if _dir_is_writable(fallback_path):
        logger.warning("%s is not writable at %s. Using %s.", label, candidate, fallback_path)
        return fallback_path

    logger.warning("%s is not writable at %s.", label, candidate)
    return candidate


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables and .env."""

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    host: str = Field(default="127.0.0.1", validation_alias="HOST")
    port: int = Field(default=8080, ge=1, le=65535, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    max_active_tasks: int = Field(default=3, ge=1, validation_alias="MAX_ACTIVE_TASKS")
    max_urls_per_task: int = Field(default=3, ge=1, validation_alias="MAX_URLS_PER_TASK")
    allowed_extensions: Annotated[frozenset[str], NoDecode] = Field(
        default=frozenset({"jpeg", "pdf"}), validation_alias="ALLOWED_EXTENSIONS"
    )

    probe_timeout: float = Field(default=5.0, gt=0.0, validation_alias="PROBE_TIMEOUT")
    download_timeout: float = Field(default=30.0, gt=0.0, validation_alias="DOWNLOAD_TIMEOUT")
    download_max_bytes: int = Field(
        default=50 << 20, ge=1, validation_alias="DOWNLOAD_MAX_BYTES"
    )
    truncation_policy: Literal["fail", "truncate"] = Field(
        default="fail", validation_alias="TRUNCATION_POLICY"
    )

    pipeline_workers: int = Field(default=4, ge=1, validation_alias="PIPELINE_WORKERS")
    cancel_pipelines_on_shutdown: bool = Field(
        default=False, validation_alias="CANCEL_PIPELINES_ON_SHUTDOWN"
    )
    terminal_task_retention: int = Field(
        default=0, ge=0, validation_alias="TERMINAL_TASK_RETENTION"
    )

    download_dir: Path | None = Field(default=None, validation_alias="DOWNLOAD_DIR")
    archive_dir: Path | None = Field(default=None, validation_alias="ARCHIVE_DIR")
    archive_base_url: str = Field(
        default="http://localhost:8080/archives", validation_alias="ARCHIVE_BASE_URL"
    )

    user_agent: str | None = Field(default=None, validation_alias="USER_AGENT")

    @field_validator("allowed_extensions", mode="before")
    @classmethod
    def _split_extensions(cls, v: object) -> object:
        """Accept ``jpeg,pdf`` as well as any iterable of subtypes."""
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, (list, tuple, set, frozenset)):
            return frozenset(str(item).strip().lower() for item in v if str(item).strip())
        return v

    @field_validator("archive_base_url", mode="after")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("log_level", mode="after")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.strip().upper() or "INFO"

    @model_validator(mode="after")
    def _warn_if_env_missing(self) -> "Settings":
        env_path = BASE_DIR / ".env"
        if not env_path.exists():
            logger.debug(
                ".env not found at %s, using environment variables and defaults only.",
                env_path,
            )
        if not self.allowed_extensions:
            logger.warning("ALLOWED_EXTENSIONS is empty; every URL will be rejected.")
        return self


def resolve_download_dir(settings: Settings) -> Path:
    return _resolve_runtime_dir(
        settings.download_dir,
        default=_TEMP_ROOT / "downloads",
        fallback=_RUNTIME_DOWNLOAD_FALLBACK_DIR,
        label="DOWNLOAD_DIR",
    )


def resolve_archive_dir(settings: Settings) -> Path:
    return _resolve_runtime_dir(
        settings.archive_dir,
        default=_TEMP_ROOT / "archives",
        fallback=_RUNTIME_ARCHIVE_FALLBACK_DIR,
        label="ARCHIVE_DIR",
    )


def build_headers(settings: Settings) -> MappingProxyType[str, str]:
    return MappingProxyType(
        {
            "Accept": "*/*",
            "User-Agent": (settings.user_agent or "").strip()
            or f"link-archiver/{APP_VERSION}",
        }
    )


SETTINGS: Final = Settings()

DOWNLOAD_DIR: Final[Path] = resolve_download_dir(SETTINGS)
ARCHIVE_DIR: Final[Path] = resolve_archive_dir(SETTINGS)
HEADERS: Final[MappingProxyType[str, str]] = build_headers(SETTINGS)
