"""
LEXIFY Lifecycle Service API
============================

FastAPI application exposing the request lifecycle.

Endpoints:
- GET  /health                                      - Health check
- POST /api/cron/requests                           - Run one sweep (x-cron-secret)
- GET  /api/me/requests/awaiting                    - Requests awaiting offer selection
- GET  /api/me/requests/overmax                     - Requests where all offers exceed the max price
- POST /api/me/requests/awaiting/select             - Select the winning offer
- POST /api/me/requests/{request_id}/extend-deadline - One-time decision deadline extension
- PUT  /api/admin/requests/{request_id}/conflict    - Accept/deny after conflict check
- PUT  /api/admin/requests/{request_id}/state       - Admin state override

Run with:
    uvicorn lexify_backend.api:app --host 0.0.0.0 --port 8000
"""

import logging
import os
from datetime import datetime
from typing import List

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .config import get_settings
from .db.session import get_db_session, init_db
from .lifecycle.errors import LifecycleError
from .schemas import HealthResponse
from .api_requests import router as requests_router

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="LEXIFY Lifecycle Service",
    description="Request lifecycle state machine: sweeps, offer selection, conflict checks and contracts",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)


# CORS - get allowed origins from environment, default to localhost for development
def _parse_cors_origins(raw: str) -> List[str]:
    origins: List[str] = []
    for item in raw.split(","):
        origin = item.strip().strip('"').strip("'").rstrip("/")
        if origin:
            origins.append(origin)
    return origins


_cors_raw = os.environ.get(
    "CORS_ALLOW_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000"
)
CORS_ALLOW_ORIGINS = _parse_cors_origins(_cors_raw)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(requests_router, prefix="/api")


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    """Rejected lifecycle operations carry their own status code and a plain message."""
    logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc}")
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# =============================================================================
# Health
# =============================================================================

def _database_ok() -> bool:
    try:
        with get_db_session() as db:
            db.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check():
    """Health check endpoint"""
    settings = get_settings()
    queue = None
    if settings.notifications_async:
        from .jobs.queue import get_queue_stats
        queue = get_queue_stats()

    return HealthResponse(
        status="healthy",
        version=settings.service_version,
        database=_database_ok(),
        notifications_async=settings.notifications_async,
        queue=queue,
        timestamp=datetime.utcnow(),
    )


@app.on_event("startup")
async def startup_event():
    """Initialize on startup"""
    settings = get_settings()
    logger.info(f"Starting LEXIFY Lifecycle Service v{settings.service_version}")
    for warning in settings.validate_config():
        logger.warning(f"Config: {warning}")
    init_db()
