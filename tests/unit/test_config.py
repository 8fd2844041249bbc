from pathlib import Path

import pytest

from page_composer.infrastructure.config import (
    AppConfig,
    _get_float_env,
    _get_int_env,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, 5), ("8", 8), ("0", 5), ("-3", 5), ("many", 5)],
)
def test_int_env_falls_back_on_invalid_values(monkeypatch, raw, expected) -> None:
    if raw is None:
        monkeypatch.delenv("PAGE_COMPOSER_TEST_INT", raising=False)
    else:
        monkeypatch.setenv("PAGE_COMPOSER_TEST_INT", raw)
    assert _get_int_env("PAGE_COMPOSER_TEST_INT", 5) == expected


@pytest.mark.unit
def test_float_env_parses_zoom(monkeypatch) -> None:
    monkeypatch.setenv("PAGE_COMPOSER_TEST_ZOOM", "1.5")
    assert _get_float_env("PAGE_COMPOSER_TEST_ZOOM", 0.5) == 1.5
    monkeypatch.setenv("PAGE_COMPOSER_TEST_ZOOM", "wide")
    assert _get_float_env("PAGE_COMPOSER_TEST_ZOOM", 0.5) == 0.5


@pytest.mark.unit
def test_storage_dir_reads_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PAGE_COMPOSER_STORAGE_DIR", str(tmp_path / "scratch"))
    config = AppConfig()
    assert config.storage_dir == tmp_path / "scratch"
    assert config.max_pdf_size_bytes == config.max_pdf_size_mb * 1024 * 1024


@pytest.mark.unit
def test_session_ttl_is_exposed_in_seconds() -> None:
    config = AppConfig(session_ttl_minutes=3)
    assert config.session_ttl_seconds == 180
