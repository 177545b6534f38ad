"""
FastAPI Main Application Entry Point for the Deadline Compliance Engine.

This backend service handles:
- Statutory working-day deadline calculation
- Compliance status tracking with an append-only audit timeline
- Stakeholder alerts and the one-time emergency protocol
- Background compliance monitoring
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.exceptions import ComplianceEngineException
from app.api.routes import (
    compliance_router,
    monitor_router,
    holiday_router,
)
from app.services.engine import build_engine


# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Build the engine (fails fast on configuration errors)
    - Start the compliance monitor on the designated instance

    Shutdown:
    - Stop the monitor gracefully
    """
    # Startup
    logger.info(f"🚀 Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Debug mode: {settings.debug}")
    logger.info(f"Jurisdiction: {settings.jurisdiction_code} ({settings.jurisdiction_timezone})")
    logger.info(f"Persistence backend: {settings.persistence_backend}")
    logger.info(f"Scheduler enabled: {settings.enable_scheduler}")
    logger.info(f"Run scheduler (this instance): {settings.run_scheduler}")

    # An engine placed on app.state beforehand (tests) is used as-is
    if getattr(app.state, "engine", None) is None:
        app.state.engine = build_engine(settings)
    engine = app.state.engine

    # Only ONE instance should run the monitor in multi-worker deployments;
    # set RUN_SCHEDULER=true on exactly one worker/container
    if settings.enable_scheduler and settings.run_scheduler:
        engine.monitor.start()
        logger.info("✅ Compliance monitor started")

    yield

    # Shutdown
    if engine.monitor.is_running:
        await engine.monitor.stop()
        logger.info("✅ Compliance monitor stopped")

    logger.info("👋 Shutting down...")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    # Deadline Compliance Engine

    Tracks the statutory working-day deadline of every registered case.

    ## Timeline rule
    The legal deadline is **N working days after** the trigger date.
    Weekends and public holidays are skipped; the trigger date never counts.

    ## Status tiers
    | Days remaining | Status |
    |---|---|
    | ≤ 0 | emergency |
    | ≤ 1 | at_risk |
    | ≤ 2 | in_progress |
    | otherwise | pending |

    Status only ever escalates. Reaching `emergency` activates the
    emergency protocol exactly once per case.
    """,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# Configure CORS for the operator dashboard
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handler for engine exceptions
@app.exception_handler(ComplianceEngineException)
async def compliance_exception_handler(request, exc: ComplianceEngineException):
    """Handle all ComplianceEngineException subclasses."""
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__}: {exc.message} {exc.details}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


# Include API routers
app.include_router(compliance_router)
app.include_router(monitor_router)
app.include_router(holiday_router)


# Health check endpoint
@app.get("/health", tags=["System"])
async def health_check():
    """
    Health check endpoint for monitoring.

    Returns service status, monitor health and configuration.
    """
    engine = getattr(app.state, "engine", None)
    monitor_status = engine.monitor.get_status() if engine else None

    overall_status = "healthy"
    if engine is None or monitor_status["status"] != "healthy":
        overall_status = "degraded"

    return {
        "status": overall_status,
        "service": settings.app_name,
        "version": settings.app_version,
        "debug": settings.debug,
        "jurisdiction": settings.jurisdiction_code,
        "holiday_years": sorted(engine.calendar.covered_years) if engine else [],
        "monitor": monitor_status,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


# Root endpoint
@app.get("/", tags=["System"])
async def root():
    """Root endpoint with API information."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs" if settings.debug else "Docs disabled in production",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
