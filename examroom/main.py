"""
Exam Room Service - FastAPI Application
"""
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import settings
from .proctor.api import router as exam_room_router
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Proctored exam sessions and guided identity capture",
    version=__version__,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None
)


# ============================================================================
# Request Logging Middleware
# ============================================================================

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests with timing."""
    start = time.time()
    method = request.method
    path = request.url.path

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"RequestError {method} {path}: {e}")
        raise

    if path not in ["/health", "/favicon.ico"]:
        duration_ms = int((time.time() - start) * 1000)
        logger.info(f"{method} {path} -> {response.status_code} in {duration_ms}ms")
    return response


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when using wildcard origin
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(exam_room_router)


@app.on_event("startup")
async def startup_event():
    """Configure logging and report the active configuration."""
    setup_logging(
        service_name="exam-room",
        level=settings.LOG_LEVEL,
        log_to_file=settings.LOG_TO_FILE,
        log_dir=settings.LOG_DIR
    )
    logger.info(f"{settings.APP_NAME} v{__version__} starting")
    logger.info(
        f"Escalation: desktop={settings.DESKTOP_TERMINATION_DELAY}s "
        f"mobile={settings.MOBILE_GRACE_PERIOD}s"
    )
    logger.info(
        f"Capture: poll={settings.CAPTURE_POLL_INTERVAL}s "
        f"samples={settings.CAPTURE_REQUIRED_SAMPLES} settle={settings.CAPTURE_SETTLE_SECONDS}s"
    )
    logger.info(f"Grading hand-off: {settings.GRADING_API_URL or 'in-memory'}")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": __version__
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": settings.APP_NAME,
        "docs": "/docs" if settings.DEBUG else "Disabled in production"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("examroom.main:app", host="0.0.0.0", port=8001, reload=settings.DEBUG)
