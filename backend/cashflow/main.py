"""
FastAPI application for the cash-flow forecast service.

Every /api route except health requires the signed identity headers set by
the dashboard frontend; the verified user id is exposed to route handlers
through get_user_id().
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

from cashflow.config import settings
from cashflow.database import Base, engine
from cashflow.db_helpers import (
    authenticate_internal_request_from_headers,
    clear_request_user_id,
    set_request_user_id,
)
from cashflow.routes import api_router

logger = logging.getLogger(__name__)

PUBLIC_PATHS = {"/health", "/api/health"}


def _requires_identity(request: Request) -> bool:
    path = request.url.path
    return (
        request.method != "OPTIONS"
        and path.startswith("/api/")
        and path not in PUBLIC_PATHS
    )


def _signed_target(request: Request) -> str:
    """Path plus query string, exactly as the frontend signed it."""
    if request.url.query:
        return f"{request.url.path}?{request.url.query}"
    return request.url.path


if settings.auto_create_tables:
    logger.warning("[STARTUP] AUTO_CREATE_TABLES is set; creating forecast tables from model metadata")
    Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Cash-Flow Forecast API",
    description="Budget generation, rolling forecast, cash runway and budget variance",
    version="0.1.0",
    docs_url="/docs" if settings.api_docs_enabled else None,
    redoc_url=None,
    openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)


@app.middleware("http")
async def signed_identity_middleware(request: Request, call_next):
    if not _requires_identity(request):
        return await call_next(request)

    try:
        user_id = authenticate_internal_request_from_headers(
            method=request.method,
            path_with_query=_signed_target(request),
            headers=request.headers,
        )
    except HTTPException as exc:
        logger.info(f"[AUTH] Rejected {request.method} {request.url.path}: {exc.detail}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    token = set_request_user_id(user_id)
    try:
        return await call_next(request)
    finally:
        clear_request_user_id(token)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


@app.get("/health")
@app.get("/api/health")
def health():
    return {"status": "healthy", "service": "cashflow-forecast"}
