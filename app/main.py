"""
FamilyHub Subscription Backend API - Main Application
"""
import logging
import sys
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
import uvicorn

from .core.config import Settings, settings
from .core.errors import (
    ErrorCategory,
    SubscriptionError,
    request_validation_error_handler,
    subscription_error_handler,
)
from .core.firebase import create_firestore_client, initialize_firebase_app
from .api.v1 import api_router
from .services.expiration_sweeper import ExpirationSweeper
from .services.receipt_verifier import build_verifiers
from .services.scheduler_service import SchedulerService
from .services.subscription_service import SubscriptionService
from .services.subscription_writer import SubscriptionWriter, build_profile_locations

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)

logger = logging.getLogger(__name__)


def build_services(config: Settings, db) -> SubscriptionService:
    """Wire verifiers, writer and sweeper around one Firestore client."""
    locations = build_profile_locations(config)
    writer = SubscriptionWriter(db, locations)
    sweeper = ExpirationSweeper(db, locations, batch_size=config.SWEEP_BATCH_SIZE)
    return SubscriptionService(build_verifiers(config), writer, sweeper)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting FamilyHub Subscription API...")

    try:
        firebase_app = initialize_firebase_app(settings)
        db = create_firestore_client(firebase_app)
        logger.info(f"Firestore client ready for project {settings.FIREBASE_PROJECT_ID}")

        service = build_services(settings, db)
        app.state.firebase_app = firebase_app
        app.state.subscription_service = service

        scheduler = SchedulerService(service.sweeper, interval_hours=settings.SWEEP_INTERVAL_HOURS)
        app.state.scheduler_service = scheduler
        if settings.SCHEDULER_ENABLED:
            scheduler.start()
        else:
            logger.info("Scheduler disabled by configuration")

        logger.info(f"Debug mode: {settings.DEBUG}")
        logger.info(f"Running at: http://{settings.API_HOST}:{settings.API_PORT}")

    except Exception as e:
        logger.error(f"Failed to initialize backend: {e}")
        raise

    yield  # Application runs here

    # Shutdown
    logger.info("Shutting down FamilyHub Subscription API...")

    try:
        app.state.scheduler_service.shutdown()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Receipt validation and subscription state for FamilyHub",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    lifespan=lifespan,
    redirect_slashes=False
)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Structured subscription errors
app.add_exception_handler(SubscriptionError, subscription_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unexpected errors."""
    # Generate a unique error ID for tracking
    error_id = str(uuid.uuid4())[:8]

    # Always log the full error on the server
    logger.error(
        f"[ERROR_ID: {error_id}] Unhandled exception on {request.method} {request.url.path}",
        exc_info=True
    )

    error = {
        "category": ErrorCategory.INTERNAL,
        "message": "An internal server error occurred. Please try again later.",
        "error_id": error_id,
    }
    if settings.DEBUG:
        # Development: name the exception; the traceback stays in the server log
        error["details"] = {
            "type": type(exc).__name__,
            "message": str(exc),
        }

    return JSONResponse(status_code=500, content={"success": False, "error": error})


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.PROJECT_NAME,
        "version": "1.0.0",
        "status": "running",
        "environment": settings.ENVIRONMENT,
        "docs_url": "/docs" if settings.DEBUG else "disabled",
        "features": [
            "Google Play subscription validation",
            "App Store receipt validation",
            "Firestore subscription state and history",
            "Scheduled expiration sweeps",
        ]
    }


# Health check endpoint
@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint for monitoring."""
    from app.utils.time_utils import to_utc_isoformat, utc_now

    try:
        scheduler_service = getattr(request.app.state, "scheduler_service", None)
        scheduler = scheduler_service.scheduler if scheduler_service else None
        scheduler_running = bool(scheduler and scheduler.running)
        scheduled_jobs = len(scheduler_service.get_scheduled_jobs()) if scheduler_running else 0

        service = getattr(request.app.state, "subscription_service", None)
        verifiers = {
            platform.value: ("live" if verifier.is_live else "mock")
            for platform, verifier in (service.verifiers.items() if service else [])
        }

        return {
            "status": "healthy",
            "timestamp": to_utc_isoformat(utc_now()),
            "service": "familyhub-subscriptions",
            "version": "1.0.0",
            "services": {
                "scheduler": {
                    "status": "running" if scheduler_running else "stopped",
                    "scheduled_jobs": scheduled_jobs
                },
                "verifiers": verifiers,
                "firebase": {
                    "project_id": settings.FIREBASE_PROJECT_ID,
                    "emulator": settings.is_emulator
                }
            }
        }

    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e)
        }


# Include API router
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


if __name__ == "__main__":
    # Run the application
    uvicorn.run(
        "app.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
