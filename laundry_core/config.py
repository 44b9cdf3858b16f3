from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from laundry_core.scanning.ranges import DEFAULT_RANGE_KEY, SCAN_RANGE_PRESETS

_ENV_LOADED = False


@dataclass(frozen=True)
class LocalPaths:
    base_dir: Path
    data_dir: Path
    logs_dir: Path


@dataclass(frozen=True)
class ApiConfig:
    base_url: str
    timeout_seconds: float
    max_retries: int


@dataclass(frozen=True)
class ScanConfig:
    backend: str
    range_key: str
    simulate_interval: float


@dataclass(frozen=True)
class AuthorizationConfig:
    poll_interval: float
    max_wait: Optional[float]


@dataclass(frozen=True)
class LoggingConfig:
    level: int
    log_to_file: bool
    log_file: Path


def load_environment() -> None:
    global _ENV_LOADED
    if _ENV_LOADED:
        return
    load_dotenv(override=False)
    _ENV_LOADED = True


def _default_base_dir() -> Path:
    override = os.getenv("LAUNDRY_DATA_DIR")
    if override:
        return Path(override).expanduser()
    if sys.platform == "win32":
        root = Path(os.getenv("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return root / "LaundryCore"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "LaundryCore"
    root = Path(os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return root / "laundry_core"


def get_local_paths() -> LocalPaths:
    load_environment()
    base_dir = _default_base_dir()
    return LocalPaths(
        base_dir=base_dir,
        data_dir=base_dir / "data",
        logs_dir=base_dir / "logs",
    )


def ensure_directories() -> LocalPaths:
    paths = get_local_paths()
    for path in (paths.base_dir, paths.data_dir, paths.logs_dir):
        path.mkdir(parents=True, exist_ok=True)
    return paths


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"yes", "true", "on", "1"}:
        return True
    if normalized in {"no", "false", "off", "0"}:
        return False
    return default


def _parse_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _parse_optional_float(value: str | None) -> Optional[float]:
    if value is None or not value.strip():
        return None
    try:
        parsed = float(value)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def get_api_config() -> ApiConfig:
    load_environment()
    base_url = os.getenv("LAUNDRY_API_BASE_URL", "http://127.0.0.1:8100").strip().rstrip("/")
    timeout = _parse_float(os.getenv("LAUNDRY_API_TIMEOUT_SECONDS"), 10.0)
    if timeout <= 0:
        timeout = 10.0
    max_retries = max(_parse_int(os.getenv("LAUNDRY_API_MAX_RETRIES"), 2), 0)
    return ApiConfig(
        base_url=base_url or "http://127.0.0.1:8100",
        timeout_seconds=timeout,
        max_retries=max_retries,
    )


def get_scan_config() -> ScanConfig:
    load_environment()
    backend = os.getenv("LAUNDRY_SCAN_BACKEND", "stub").strip().lower()
    if backend not in {"stub"}:
        backend = "stub"
    range_key = os.getenv("LAUNDRY_SCAN_RANGE", DEFAULT_RANGE_KEY).strip().lower()
    if range_key not in SCAN_RANGE_PRESETS:
        range_key = DEFAULT_RANGE_KEY
    interval = _parse_float(os.getenv("LAUNDRY_SCAN_SIMULATE_INTERVAL"), 2.0)
    if interval <= 0:
        interval = 2.0
    return ScanConfig(backend=backend, range_key=range_key, simulate_interval=interval)


def get_authorization_config() -> AuthorizationConfig:
    load_environment()
    interval = _parse_float(os.getenv("LAUNDRY_AUTH_POLL_INTERVAL"), 3.0)
    if interval <= 0:
        interval = 3.0
    return AuthorizationConfig(
        poll_interval=interval,
        max_wait=_parse_optional_float(os.getenv("LAUNDRY_AUTH_POLL_MAX_WAIT")),
    )


def get_logging_config() -> LoggingConfig:
    load_environment()
    level_name = os.getenv("LAUNDRY_LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    return LoggingConfig(
        level=level,
        log_to_file=_parse_bool(os.getenv("LAUNDRY_LOG_TO_FILE"), False),
        log_file=get_local_paths().logs_dir / "laundry_core.log",
    )
