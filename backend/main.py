"""
FastAPI application entry point for Herald

Initializes the FastAPI app, registers routers, and sets up startup/shutdown events.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Response

from herald.core.config import settings
from herald.core.logging_config import setup_logging, get_logger
from herald.core.metrics import init_metrics, get_metrics, get_content_type
from herald.middleware.logging_middleware import RequestLoggingMiddleware
from herald.api.v1.notifications import router as notifications_router, reset_notification_engine

# Application version
APP_VERSION = "1.0.0"

logger = get_logger(__name__)

init_metrics(version=APP_VERSION)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    - Startup: configures structured logging
    - Shutdown: drops the cached notification engine
    """
    setup_logging()
    logger.info(
        "Application starting",
        extra={
            "event_type": "app_startup",
            "version": APP_VERSION,
            "document_store": settings.DOCUMENT_STORE_BACKEND,
            "fcm_ready": settings.fcm_ready,
        }
    )

    yield

    reset_notification_engine()
    logger.info(
        "Application shutdown complete",
        extra={"event_type": "app_shutdown_complete", "version": APP_VERSION}
    )


app = FastAPI(
    title="Herald API",
    description="Push notification targeting and delivery",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(notifications_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root():
    """Root endpoint - API status check"""
    return {
        "name": "Herald API",
        "version": APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "fcm_ready": settings.fcm_ready,
        "document_store": settings.DOCUMENT_STORE_BACKEND,
    }


@app.get("/metrics")
async def prometheus_metrics():
    """Prometheus metrics endpoint"""
    return Response(
        content=get_metrics(),
        media_type=get_content_type()
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
