from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from closings.core.config import settings

import closings.models  # noqa: F401  register all models at startup

from closings.auth.router import router as auth_router
from closings.core.errors import (
    ClosingsError,
    closings_exception_handler,
    global_exception_handler,
    http_exception_handler,
)
from closings.core.events import event_bus
from closings.core.sentry import init_sentry
from closings.middleware.tenant import TenantMiddleware
from closings.modules.health.router import router as health_flags_router
from closings.modules.pipeline.router import router as pipeline_router
from closings.modules.staff.router import router as staff_router
from closings.modules.transactions.router import router as transactions_router

# ── Sentry: initialised BEFORE the FastAPI app is created ─────────────────────
init_sentry(settings.SENTRY_DSN, settings.SENTRY_ENVIRONMENT, settings.APP_VERSION)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    logger.info("Starting closings API", env=settings.APP_ENV)
    yield
    logger.info("Shutting down closings API")
    event_bus.clear()


_is_prod = settings.APP_ENV == "production"

app = FastAPI(
    title="Closings API",
    description="Real-estate closing transaction lifecycle: status, title, assignment, health and pipeline.",
    version="0.1.0",
    docs_url=None if _is_prod else "/docs",
    redoc_url=None if _is_prod else "/redoc",
    openapi_url=None if _is_prod else "/openapi.json",
    lifespan=lifespan,
)

app.add_exception_handler(ClosingsError, closings_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(Exception, global_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
)
app.add_middleware(TenantMiddleware)


# ── X-API-Version response header ────────────────────────────────────────────


@app.middleware("http")
async def add_version_header(request: Request, call_next) -> Response:
    response = await call_next(request)
    response.headers["X-API-Version"] = "v1"
    return response


# ── Health check (root-level, not under /v1) ─────────────────────────────────


@app.get("/health")
async def health_check() -> dict:
    """Probe the record store."""
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    from closings.core.database import async_session_factory

    checks: dict[str, dict] = {}
    try:
        async with async_session_factory() as db:
            await db.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy"}
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("health_check_database_failed", error=str(exc))
        checks["database"] = {"status": "unhealthy", "error": str(exc)}

    overall = (
        "healthy"
        if all(c["status"] == "healthy" for c in checks.values())
        else "degraded"
    )
    return {"status": overall, "service": "closings-api", "checks": checks}


# ── /v1 versioned router ──────────────────────────────────────────────────────

api_v1 = APIRouter(prefix="/v1")

api_v1.include_router(auth_router)
api_v1.include_router(transactions_router)
api_v1.include_router(staff_router)
api_v1.include_router(health_flags_router)
api_v1.include_router(pipeline_router)

app.include_router(api_v1)
