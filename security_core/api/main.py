"""
Name: FastAPI Application Entry Point

Responsibilities:
  - Build the FastAPI app (create_app) with request context middleware
  - Mount audit/admin routes under the /v1 prefix
  - Register RFC7807 exception handlers (AppHTTPException, SecurityCoreError)
  - Own the lifecycle: DB pool + schema on startup, executors on shutdown

Collaborators:
  - crosscutting.config.get_settings
  - infrastructure.db.pool / infrastructure.db.schema
  - container (background runner, alert dispatcher)
  - interfaces.api.http.router

Constraints:
  - The core does NOT authenticate: a host middleware must place a
    SessionPrincipal in request.state.principal before the routes run
  - Settings are validated at startup (lifespan), not at import time

Notes:
  - Middleware order: RequestContext wraps everything (request_id first)
  - /healthz follows Kubernetes health check convention
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from .. import __version__
from ..container import get_alert_dispatcher, get_background_runner, reset_container
from ..crosscutting.config import get_settings
from ..crosscutting.logger import logger
from ..crosscutting.middleware import RequestContextMiddleware
from ..infrastructure.db.pool import close_pool, get_pool, init_pool
from ..infrastructure.db.schema import ensure_schema
from ..interfaces.api.http.error_mapping import register_exception_handlers
from ..interfaces.api.http.router import router


def _uses_postgres() -> bool:
    settings = get_settings()
    return "postgres" in {settings.storage_backend, settings.rate_limit_backend}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle. Validates settings and initializes pool."""
    settings = get_settings()

    if _uses_postgres():
        pool = init_pool(
            database_url=settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )
        ensure_schema(pool)

    try:
        logger.info(
            "Security core API starting up",
            extra={
                "app_env": settings.app_env,
                "storage_backend": settings.storage_backend,
                "rate_limit_backend": settings.rate_limit_backend,
                "alert_channels": sorted(settings.get_alert_destinations()),
            },
        )
        yield
    finally:
        # R: primero drenar tareas en vuelo (pueden escribir en DB), luego el pool.
        if get_background_runner.cache_info().currsize:
            get_background_runner().shutdown(wait_for_pending=True)
        if get_alert_dispatcher.cache_info().currsize:
            get_alert_dispatcher().shutdown()
        reset_container()
        close_pool()
        logger.info("Security core API shutting down")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Security Core API",
        version=__version__,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "audit", "description": "Audit event ingestion"},
            {
                "name": "admin",
                "description": "Audit log, permission overrides and alert channels",
            },
        ],
    )

    # R: Add request context middleware
    app.add_middleware(RequestContextMiddleware)

    # R: Register API routes under /v1 prefix for versioning
    app.include_router(router, prefix="/v1")

    register_exception_handlers(app)

    @app.get("/healthz")
    def healthz(request: Request):
        """DB status only when a postgres backend is configured."""
        result = {
            "ok": True,
            "storage": get_settings().storage_backend,
            "request_id": getattr(request.state, "request_id", None),
        }
        if _uses_postgres():
            db_status = "disconnected"
            try:
                with get_pool().connection() as conn:
                    conn.execute("SELECT 1")
                db_status = "connected"
            except Exception as e:
                logger.warning("Health check: DB unavailable", extra={"error": str(e)})
            result["db"] = db_status
            result["ok"] = db_status == "connected"
        return result

    return app


app = create_app()
