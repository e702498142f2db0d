from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 10.0

_BASE_URL_ENV = "API_BASE_URL"
_API_KEY_ENV = "SENSORHUB_API_KEY"
_PASSWORD_ENV = "SENSORHUB_PASSWORD"
_TIMEOUT_ENV = "CLI_TIMEOUT"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    api_key: Optional[str] = None
    password: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT


def _read_float(value: Optional[str], default: float) -> float:
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


def _read_secret(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def load_config(
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    password: Optional[str] = None,
    timeout: Optional[float] = None,
) -> CLIConfig:
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    if timeout is None:
        timeout = _read_float(os.getenv(_TIMEOUT_ENV), DEFAULT_TIMEOUT)
    return CLIConfig(
        base_url=url.rstrip("/"),
        api_key=api_key or _read_secret(os.getenv(_API_KEY_ENV)),
        password=password or _read_secret(os.getenv(_PASSWORD_ENV)),
        timeout=timeout,
    )
