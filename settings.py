from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_BACKEND_ENV = "SENSORHUB_BACKEND"
_STORE_PATH_ENV = "SENSORHUB_STORE_PATH"
_BACKEND_URL_ENV = "SENSORHUB_BACKEND_URL"
_SERVICE_KEY_ENV = "SENSORHUB_SERVICE_KEY"
_BACKEND_TIMEOUT_ENV = "SENSORHUB_BACKEND_TIMEOUT"
_READINGS_LIMIT_ENV = "READINGS_LIMIT"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_BACKEND_KINDS = ("local", "rest")


@dataclass(frozen=True)
class Settings:
    backend: str
    store_path: Optional[str]
    backend_url: Optional[str]
    service_key: Optional[str]
    backend_timeout: float
    readings_limit: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_backend_kind(default: str) -> str:
    candidate = _read_str_env(_BACKEND_ENV, default).lower()
    return candidate if candidate in _BACKEND_KINDS else default


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        backend=_read_backend_kind("local"),
        store_path=_read_optional_env(_STORE_PATH_ENV, "./tmp/sensorhub.json"),
        backend_url=_read_optional_env(_BACKEND_URL_ENV, None),
        service_key=_read_optional_env(_SERVICE_KEY_ENV, None),
        backend_timeout=_read_positive_float(_BACKEND_TIMEOUT_ENV, 10.0),
        readings_limit=_read_positive_int(_READINGS_LIMIT_ENV, 100),
        log_level=_read_log_level("INFO"),
    )
