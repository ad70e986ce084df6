"""FastAPI application for the rental lifecycle API."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response

from .core.config import settings
from .core.errors import LifecycleError, lifecycle_error_handler
from .core.scheduler import build_scheduler, configure_logging
from .routers import applications, bulk, insurance, leases, listings, maintenance, payments

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    scheduler = None
    if settings.scheduler_enabled:
        scheduler = build_scheduler()
        scheduler.start()
        logger.info("Scheduler started with %d job(s)", len(scheduler.get_jobs()))
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")


app = FastAPI(title="Rentline API", version="0.1.0", lifespan=lifespan)

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_exception_handler(LifecycleError, lifecycle_error_handler)

app.include_router(listings.router, prefix="/api/listings", tags=["listings"])
app.include_router(applications.router, prefix="/api/applications", tags=["applications"])
app.include_router(leases.router, prefix="/api/leases", tags=["leases"])
app.include_router(maintenance.router, prefix="/api/maintenance", tags=["maintenance"])
app.include_router(payments.router, prefix="/api/payments", tags=["payments"])
app.include_router(insurance.router, prefix="/api/insurance", tags=["insurance"])
app.include_router(bulk.router, prefix="/api/bulk", tags=["bulk"])


@app.get("/api/health", tags=["meta"])
async def health() -> dict[str, str]:
    """Simple liveness probe."""

    return {"status": "ok"}


@app.head("/api/health", tags=["meta"])
async def health_head() -> Response:
    """Allow HEAD for uptime monitors that only need the status code."""

    return Response(status_code=200)


@app.get("/robots.txt", response_class=PlainTextResponse, include_in_schema=False)
async def robots() -> PlainTextResponse:
    return PlainTextResponse("User-agent: *\nDisallow: /api/")
