from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from allyhub.api.admin import router as admin_router
from allyhub.api.hub import router as hub_router
from allyhub.api.ingest import router as ingest_router
from allyhub.core import config
from allyhub.core.activity import background_jobs
from allyhub.core.config import (
    CORS_ALLOW_ORIGINS,
    CORS_ALLOW_CREDENTIALS,
    CORS_ALLOW_METHODS,
    CORS_ALLOW_HEADERS,
)
from allyhub.core.database import check_database, init_db, is_db_enabled, shutdown_db, start_db
from allyhub.core.errors import install_error_handlers
from allyhub.core.language import bot_language
from allyhub.core.metrics import metrics

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context: binds the DB engine to this loop and drains background writes on exit."""
    await start_db()
    if config.get_dev_create_all():
        await init_db()
    logger.info(
        "startup_config",
        extra={
            "DEV_CREATE_ALL": bool(config.get_dev_create_all()),
            "bot_language": bot_language.get(),
            "db_enabled": is_db_enabled(),
        },
    )
    try:
        yield
    finally:
        # Pending last-activity writes need the engine, so drain before disposing it
        await background_jobs.drain()
        await shutdown_db()


app = FastAPI(title="Alliance Hub", version="1.0.0", lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=CORS_ALLOW_CREDENTIALS,
    allow_methods=CORS_ALLOW_METHODS,
    allow_headers=CORS_ALLOW_HEADERS,
)

install_error_handlers(app)

# Routers
app.include_router(ingest_router)
app.include_router(hub_router)
app.include_router(admin_router)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        duration = time.perf_counter() - start
        route_obj = request.scope.get("route")
        route_path = getattr(route_obj, "path", request.url.path)
        status = getattr(response, "status_code", 500)
        metrics.record_http(request.method, route_path, status, duration)


@app.get("/metrics")
async def get_metrics():
    return metrics.snapshot()


@app.get("/")
async def root():
    """Simple health banner indicating server readiness."""
    return {"message": "Alliance Hub", "status": "running"}


@app.get("/healthz")
async def healthz():
    """Liveness plus a quick view of the database and the background writer."""
    db_ok = await check_database()
    return {
        "status": "ok",
        "database": {"status": "ok" if db_ok else "fail"},
        "background": {"pending": background_jobs.pending},
        "uptime_s": metrics.uptime_s(),
        "server_time": datetime.now(timezone.utc).isoformat(),
    }


# Database health probe endpoint to explicitly surface DB status
@app.get("/healthz/db")
async def healthz_db():
    """Database health probe endpoint.

    Returns:
        JSON with database.enabled and database.status (ok|fail).
    """
    enabled = is_db_enabled()
    ok = await check_database() if enabled else False
    return {
        "database": {
            "enabled": bool(enabled),
            "status": "ok" if ok else "fail",
        }
    }
