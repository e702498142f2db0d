from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from datastore.base import Backend
from datastore.local_backend import LocalBackend
from datastore.rest_backend import RestBackend
from settings import get_settings


@lru_cache
def build_default_backend(kind: Optional[str] = None) -> Backend:
    """Build the backend selected by settings (or ``kind``), once per process."""
    settings = get_settings()
    backend_kind = settings.backend if kind is None else kind

    if backend_kind == "rest":
        if not settings.backend_url or not settings.service_key:
            raise ValueError(
                "SENSORHUB_BACKEND_URL and SENSORHUB_SERVICE_KEY are required for the rest backend."
            )
        return RestBackend(
            base_url=settings.backend_url,
            service_key=settings.service_key,
            timeout=settings.backend_timeout,
        )

    store_path = Path(settings.store_path) if settings.store_path else None
    return LocalBackend(persistence_path=store_path)
