from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from app.api import router
from datastore.base import Backend
from datastore.factory import build_default_backend
from logging_config import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # A misconfigured backend must stop startup, not the first request.
    owned = app.state.backend is None
    if owned:
        app.state.backend = build_default_backend()
    backend = app.state.backend
    logger.info("SensorHub starting", extra={"backend": type(backend).__name__})
    try:
        yield
    finally:
        # Injected backends belong to whoever created the app.
        if owned:
            backend.close()
            build_default_backend.cache_clear()
            app.state.backend = None


def create_app(backend: Optional[Backend] = None) -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="SensorHub",
        description="Sensor registration, grouping and authenticated reading ingestion.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.backend = backend
    app.include_router(router)
    return app

app = create_app()
