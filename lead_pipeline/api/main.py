"""
Lead Pipeline API - Main Application.

FastAPI application with CORS enabled for frontend communication. Service
failures are mapped to HTTP statuses here:

- ValidationError        -> 400
- NotFoundError          -> 404
- ConflictError          -> 409
- TransientStorageError  -> 503 with Retry-After
- StorageError           -> 500 with a generic message
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lead_pipeline import __version__
from lead_pipeline.domain.errors import (
    ConflictError,
    NotFoundError,
    StorageError,
    TransientStorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = "5"

# Create FastAPI application
app = FastAPI(
    title="Lead Pipeline API",
    description="REST API for lead review, assignment, integrity alerts and reconciliation",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# TODO: Restrict origins once the review dashboard has a fixed deployment URL
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
def handle_validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
def handle_not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
def handle_conflict(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(TransientStorageError)
def handle_transient_storage_error(request: Request, exc: TransientStorageError):
    return JSONResponse(
        status_code=503,
        content={"detail": "Storage is temporarily unavailable. Please retry."},
        headers={"Retry-After": RETRY_AFTER_SECONDS},
    )


@app.exception_handler(StorageError)
def handle_storage_error(request: Request, exc: StorageError):
    logger.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal storage error"})


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "lead-pipeline-api",
    }


@app.get("/", tags=["Root"])
def root():
    return {
        "message": "Lead Pipeline API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# Import and include routers
from lead_pipeline.api.routers import alerts, leads, reconciliation  # noqa: E402

app.include_router(leads.router, prefix="/api/v1", tags=["Leads"])
app.include_router(alerts.router, prefix="/api/v1", tags=["Alerts"])
app.include_router(reconciliation.router, prefix="/api/v1", tags=["Reconciliation"])
