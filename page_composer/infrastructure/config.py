from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path


def _get_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _get_float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _get_path_env(name: str, default: Path) -> Path:
    value = os.getenv(name)
    return Path(value) if value else default


def _default_storage_dir() -> Path:
    return _get_path_env(
        "PAGE_COMPOSER_STORAGE_DIR", Path(tempfile.gettempdir()) / "page_composer"
    )


@dataclass(frozen=True)
class AppConfig:
    max_pdf_size_mb: int = _get_int_env("PAGE_COMPOSER_MAX_PDF_MB", 50)
    max_batch_size_mb: int = _get_int_env("PAGE_COMPOSER_MAX_BATCH_MB", 100)
    render_batch_size: int = _get_int_env("PAGE_COMPOSER_RENDER_BATCH", 5)
    preview_zoom: float = _get_float_env("PAGE_COMPOSER_PREVIEW_ZOOM", 0.5)
    full_zoom: float = _get_float_env("PAGE_COMPOSER_FULL_ZOOM", 2.0)
    session_ttl_minutes: int = _get_int_env("PAGE_COMPOSER_SESSION_TTL_MIN", 120)
    log_level: str = os.getenv("PAGE_COMPOSER_LOG_LEVEL", "INFO").upper()
    storage_dir: Path = field(default_factory=_default_storage_dir)

    @property
    def max_pdf_size_bytes(self) -> int:
        return self.max_pdf_size_mb * 1024 * 1024

    @property
    def max_batch_size_bytes(self) -> int:
        return self.max_batch_size_mb * 1024 * 1024

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_ttl_minutes * 60
