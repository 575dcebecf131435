# src/consensus_engine/main.py
"""Main entry point for the Consensus Engine application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from consensus_engine.api.v1 import (
    compatibility_router,
    questions_router,
    users_router,
    votes_router,
)
from consensus_engine.core.errors import (
    EXPIRED_POLL,
    INVALID_VALUE,
    QUESTION_NOT_FOUND,
    TRY_AGAIN,
    VOTER_KIND_ANONYMITY_CONFLICT,
    ConsensusError,
)
from consensus_engine.core.settings import settings
from consensus_engine.services.notifications import NotificationDeliveryWorker

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[str, int] = {
    EXPIRED_POLL: status.HTTP_409_CONFLICT,
    INVALID_VALUE: status.HTTP_400_BAD_REQUEST,
    VOTER_KIND_ANONYMITY_CONFLICT: status.HTTP_400_BAD_REQUEST,
    QUESTION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    TRY_AGAIN: status.HTTP_503_SERVICE_UNAVAILABLE,
}

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Opinion aggregation and compatibility API",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(votes_router, prefix="/api/v1")
app.include_router(questions_router, prefix="/api/v1")
app.include_router(compatibility_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")


@app.exception_handler(ConsensusError)
async def consensus_error_handler(request: Request, exc: ConsensusError) -> JSONResponse:
    """Translate service-layer errors into ``{"error": code, "detail": message}``."""
    status_code = ERROR_STATUS_CODES.get(exc.code, status.HTTP_400_BAD_REQUEST)
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.warning("%s %s failed with %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=status_code, content={"error": exc.code, "detail": exc.message})


@app.on_event("startup")
async def on_startup() -> None:
    if settings.notifications_enabled and settings.notification_worker_enabled:
        worker = NotificationDeliveryWorker()
        await worker.start()
        app.state.notification_worker = worker
    else:
        app.state.notification_worker = None


@app.on_event("shutdown")
async def on_shutdown() -> None:
    worker: NotificationDeliveryWorker | None = getattr(app.state, "notification_worker", None)
    if worker:
        await worker.stop()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Opinion aggregation and compatibility API",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("consensus_engine.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
