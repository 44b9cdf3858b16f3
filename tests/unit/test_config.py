from __future__ import annotations

import logging
from pathlib import Path

import pytest

from laundry_core.config import (
    ensure_directories,
    get_api_config,
    get_authorization_config,
    get_logging_config,
    get_scan_config,
)
from laundry_core.logging.logger import configure_logging


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "LAUNDRY_API_BASE_URL",
        "LAUNDRY_API_TIMEOUT_SECONDS",
        "LAUNDRY_API_MAX_RETRIES",
        "LAUNDRY_SCAN_BACKEND",
        "LAUNDRY_SCAN_RANGE",
        "LAUNDRY_SCAN_SIMULATE_INTERVAL",
        "LAUNDRY_AUTH_POLL_INTERVAL",
        "LAUNDRY_AUTH_POLL_MAX_WAIT",
    ):
        monkeypatch.delenv(name, raising=False)

    api = get_api_config()
    assert api.base_url == "http://127.0.0.1:8100"
    assert api.timeout_seconds == 10.0
    assert api.max_retries == 2

    scan = get_scan_config()
    assert (scan.backend, scan.range_key, scan.simulate_interval) == ("stub", "medium", 2.0)

    authorization = get_authorization_config()
    assert authorization.poll_interval == 3.0
    assert authorization.max_wait is None


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LAUNDRY_API_BASE_URL", "https://laundry.example.com/api/")
    monkeypatch.setenv("LAUNDRY_API_TIMEOUT_SECONDS", "4.5")
    monkeypatch.setenv("LAUNDRY_SCAN_RANGE", "FAR")
    monkeypatch.setenv("LAUNDRY_AUTH_POLL_INTERVAL", "1.5")
    monkeypatch.setenv("LAUNDRY_AUTH_POLL_MAX_WAIT", "120")

    assert get_api_config().base_url == "https://laundry.example.com/api"
    assert get_api_config().timeout_seconds == 4.5
    assert get_scan_config().range_key == "far"
    authorization = get_authorization_config()
    assert authorization.poll_interval == 1.5
    assert authorization.max_wait == 120.0


def test_invalid_values_fall_back(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LAUNDRY_API_TIMEOUT_SECONDS", "soon")
    monkeypatch.setenv("LAUNDRY_API_MAX_RETRIES", "-3")
    monkeypatch.setenv("LAUNDRY_SCAN_BACKEND", "bluetooth")
    monkeypatch.setenv("LAUNDRY_SCAN_RANGE", "orbit")
    monkeypatch.setenv("LAUNDRY_AUTH_POLL_INTERVAL", "0")
    monkeypatch.setenv("LAUNDRY_AUTH_POLL_MAX_WAIT", "never")

    assert get_api_config().timeout_seconds == 10.0
    assert get_api_config().max_retries == 0
    assert get_scan_config().backend == "stub"
    assert get_scan_config().range_key == "medium"
    authorization = get_authorization_config()
    assert authorization.poll_interval == 3.0
    assert authorization.max_wait is None


def test_data_directories_follow_override(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("LAUNDRY_DATA_DIR", str(tmp_path / "state"))
    paths = ensure_directories()
    assert paths.data_dir == tmp_path / "state" / "data"
    assert paths.data_dir.is_dir()
    assert paths.logs_dir.is_dir()


def test_logging_config_and_file_handler(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("LAUNDRY_DATA_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("LAUNDRY_LOG_LEVEL", "debug")
    monkeypatch.setenv("LAUNDRY_LOG_TO_FILE", "yes")

    config = get_logging_config()
    assert config.level == logging.DEBUG
    assert config.log_file == tmp_path / "state" / "logs" / "laundry_core.log"

    logger = configure_logging(config)
    try:
        logger.debug("file handler check")
        for handler in logger.handlers:
            handler.flush()
        assert "file handler check" in config.log_file.read_text(encoding="utf-8")
    finally:
        monkeypatch.setenv("LAUNDRY_LOG_TO_FILE", "no")
        monkeypatch.setenv("LAUNDRY_LOG_LEVEL", "INFO")
        configure_logging()


def test_unknown_log_level_falls_back_to_info(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LAUNDRY_LOG_LEVEL", "chatty")
    assert get_logging_config().level == logging.INFO
