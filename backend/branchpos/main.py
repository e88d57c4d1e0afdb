"""FastAPI application entry point."""

import asyncio
import json
import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.engine import make_url
from starlette.middleware.base import BaseHTTPMiddleware

from branchpos.api.routes import api_router
from branchpos.core.config import settings
from branchpos.core.errors import POSError
from branchpos.core.metrics import MetricsMiddleware, metrics
from branchpos.core.rate_limit import limiter
from branchpos.db.base import Base, HeadOfficeBase
from branchpos.db.session import SessionLocal, engine, head_office_engine
from branchpos.services.held_order_service import run_held_order_cleanup
from branchpos.services.scheduler_service import scheduler
from branchpos.services.user_sync_service import run_user_sync

# Configure logging - use JSON format in production, human-readable in dev
root_logger = logging.getLogger()
root_logger.setLevel(getattr(logging, settings.log_level))
root_logger.handlers.clear()

if settings.debug:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
else:
    class JSONFormatter(logging.Formatter):
        def format(self, record):
            entry = {
                "ts": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "module": record.module,
                "line": record.lineno,
            }
            if record.exc_info:
                entry["exc"] = self.formatException(record.exc_info)
            return json.dumps(entry)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

root_logger.addHandler(handler)
logger = logging.getLogger(__name__)
request_logger = logging.getLogger("requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging all HTTP requests and responses."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in ["/health", "/", "/docs", "/openapi.json", "/metrics"]:
            return await call_next(request)

        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"

        try:
            response = await call_next(request)
        except Exception as e:
            request_logger.error(
                f"Error: {request.method} {request.url.path} - "
                f"Exception: {e} - Time: {time.time() - start_time:.3f}s - Client: {client_ip}"
            )
            raise

        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        request_logger.log(
            log_level,
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - Time: {time.time() - start_time:.3f}s - Client: {client_ip}",
        )
        return response


def _ensure_sqlite_dir(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        directory = os.path.dirname(url.database)
        if directory:
            os.makedirs(directory, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(f"Starting branch POS for branch {settings.branch_code}")

    # Production stores are managed by Alembic
    for url, metadata, bind in (
        (settings.database_url, Base.metadata, engine),
        (settings.head_office_database_url, HeadOfficeBase.metadata, head_office_engine),
    ):
        if url.startswith("sqlite"):
            _ensure_sqlite_dir(url)
            metadata.create_all(bind=bind)
    logger.info("Database tables ready")

    scheduler_task = None
    if settings.user_sync_enabled:
        scheduler.add_task("user_sync", run_user_sync, settings.user_sync_interval_seconds)
    if settings.held_order_cleanup_enabled:
        scheduler.add_task(
            "held_order_cleanup", run_held_order_cleanup, settings.held_order_cleanup_interval_seconds
        )
    if settings.user_sync_enabled or settings.held_order_cleanup_enabled:
        scheduler_task = scheduler.run_in_background()

    yield

    if scheduler_task is not None:
        scheduler.stop()
        try:
            await scheduler_task
        except asyncio.CancelledError:
            pass

    logger.info("Shutting down branch POS")


app = FastAPI(
    title="Branch POS",
    description="Restaurant point of sale: sales, tables, deliveries and customers",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(POSError)
async def pos_error_handler(request: Request, exc: POSError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.code},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Log the traceback; the client only learns that it may retry."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "retryable": True},
    )


app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.cors_origins != "*",
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With"],
    max_age=600,
)

app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
def health_check():
    """Liveness plus a branch store ping."""
    database = "healthy"
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database = "unhealthy"
    finally:
        db.close()

    return {
        "status": "healthy" if database == "healthy" else "degraded",
        "branch": settings.branch_code,
        "database": database,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/metrics")
def prometheus_metrics():
    """Prometheus-compatible metrics endpoint."""
    return PlainTextResponse(metrics.get_prometheus_metrics(), media_type="text/plain")
