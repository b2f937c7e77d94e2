# iptracker/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from iptracker.config import Settings, get_settings
from iptracker.detection import DetectionEngine, build_engine
from iptracker.middleware.access_log import AccessLogMiddleware
from iptracker.middleware.request_id import RequestIDMiddleware
from iptracker.net.http_client import close_http_client
from iptracker.routes.health import router as health_router
from iptracker.routes.metrics import router as metrics_router
from iptracker.routes.visitor import router as visitor_router
from iptracker.telemetry.errors import register_error_handlers
from iptracker.telemetry.logging import configure_logging

log = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    s: Settings = app.state.settings
    log.info(
        "config snapshot",
        extra={
            "event": "config_snapshot",
            "env": s.ENV,
            "geo_providers": s.geo_provider_names,
            "tor_lookup_enabled": bool(s.TOR_LOOKUP_URL.strip()),
            "geo_timeout_ms": s.GEO_TIMEOUT_MS,
            "tor_timeout_ms": s.TOR_TIMEOUT_MS,
        },
    )
    try:
        yield
    finally:
        await close_http_client()


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[DetectionEngine] = None,
) -> FastAPI:
    s = settings or get_settings()
    configure_logging(s.LOG_LEVEL, json_lines=s.LOG_JSON)

    app = FastAPI(title=s.APP_NAME, version=s.VERSION, lifespan=_lifespan)
    app.state.settings = s
    app.state.engine = engine or build_engine(s)

    # Last added runs first: request id must be set before the access log line.
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_error_handlers(app)

    app.include_router(visitor_router)
    app.include_router(health_router)
    app.include_router(metrics_router)
    return app


app = create_app()
