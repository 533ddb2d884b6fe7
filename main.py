"""ASGI entrypoint for the municipal Civic Portal.

Citizens file complaints, pay bills, read notices and vote on budget
proposals; staff, supervisors and administrators work the same data
through role-scoped endpoints under ``settings.api_prefix``.
"""
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from civic_portal import __version__
from civic_portal.api.routes import router
from civic_portal.core.config import settings
from civic_portal.core.database import close_db, get_engine, init_db
from civic_portal.core.exceptions import PortalError
from civic_portal.core.logging import bind_request, get_logger, setup_logging
from civic_portal.infrastructure.redis import get_redis_client

setup_logging(level=settings.log_level, json_format=settings.is_production)
logger = get_logger(__name__)

APP_NAME = "Civic Portal"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{APP_NAME} {__version__} starting ({settings.environment})")
    # Production schemas are managed by migrations
    if not settings.is_production or settings.is_sqlite:
        await init_db()
        logger.info("Database tables ensured")
    if get_redis_client() is None:
        logger.info("Redis unavailable; dashboards are computed on every request")

    yield

    await close_db()
    logger.info(f"{APP_NAME} stopped")


app = FastAPI(
    title=APP_NAME,
    description="Municipal e-governance API: complaints, billing, notices and participatory budgeting",
    version=__version__,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


def error_body(request: Request, code: str, message: str, details=None) -> dict:
    return {
        "error": {"code": code, "message": message, "details": details or {}},
        "request_id": getattr(request.state, "request_id", None),
    }


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag the request with an id, bind it to the log context and time it."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id
    bind_request(request_id)
    started = time.perf_counter()

    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            f"Unhandled error on {request.method} {request.url.path}",
            extra={"method": request.method, "path": request.url.path},
        )
        response = JSONResponse(
            status_code=500,
            content=error_body(request, "INTERNAL_ERROR", "Internal server error"),
        )

    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms}ms)",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"{exc.code}: {exc.message}", extra={"error_code": exc.code, "status_code": exc.status_code})
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.to_dict(), "request_id": getattr(request.state, "request_id", None)},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err["loc"] if part != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=error_body(request, "VALIDATION_ERROR", "Request validation failed", {"errors": errors}),
    )


app.include_router(router, prefix=settings.api_prefix)


@app.get("/")
def root():
    return {
        "service": APP_NAME,
        "version": __version__,
        "status": "running",
        "environment": settings.environment,
    }


@app.get("/health")
def health_check():
    """Liveness probe; does not touch the database or Redis."""
    return {"status": "healthy", "version": __version__}


@app.get("/ready")
async def readiness_check():
    """Readiness probe. The database is required; Redis is optional."""
    checks = {}

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error(f"Database readiness check failed: {e}")
        checks["database"] = "error"

    redis = get_redis_client()
    checks["redis"] = "ok" if redis is not None else "disabled"

    ready = checks["database"] == "ok"
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "degraded", "checks": checks},
    )
