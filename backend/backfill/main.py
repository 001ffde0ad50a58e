"""
FastAPI application entry point with application factory pattern.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError

from backfill.core.config import settings
from backfill.core.logging import setup_logging, get_logger
from backfill.api.health import router as health_router
from backfill.api.v1 import imports_router, metrics_router
from backfill.core.database import AsyncSessionLocal, engine, Base
from backfill.core.sentry import init_sentry
from backfill.middleware.logging import LoggingMiddleware
from backfill.middleware.metrics import MetricsMiddleware
from backfill.queues.job_queue import JobQueue
from backfill.services.imports.limiter import ImportLimiter
from backfill.services.job_cleanup import ImportJobCleanupService
from backfill.storage.import_storage import ImportStorage

# Setup logging
setup_logging()
logger = get_logger(__name__)

# Setup Sentry (if configured)
if settings.SENTRY_DSN:
    init_sentry(dsn=settings.SENTRY_DSN)
    logger.info("Sentry error tracking initialized")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events.
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    # Create database tables (in production, use migrations)
    if settings.ENVIRONMENT == "local":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    app.state.import_limiter = ImportLimiter()
    app.state.import_storage = ImportStorage()
    app.state.job_queue = JobQueue()

    # Fail imports interrupted by a previous shutdown or worker crash
    try:
        async with AsyncSessionLocal() as db:
            cleaned_count = await ImportJobCleanupService.cleanup_stale_imports(db)
            if cleaned_count > 0:
                logger.info(f"Startup cleanup: marked {cleaned_count} interrupted import(s) as failed")
    except SQLAlchemyError as e:
        logger.error(f"Failed to cleanup interrupted imports on startup: {e}")

    yield

    # Shutdown
    logger.info("Shutting down application")
    await engine.dispose()


def create_app() -> FastAPI:
    """
    Application factory function.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Historical analytics import API",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handling middleware
    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        logger.error(
            f"Unhandled exception: {exc}",
            extra={"extra_fields": {"path": request.url.path, "method": request.method}},
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    # Root endpoint
    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health",
            "api_v1": settings.API_V1_PREFIX,
        }

    # Include routers
    app.include_router(health_router, tags=["Health"])
    app.include_router(metrics_router)
    app.include_router(imports_router, prefix=settings.API_V1_PREFIX)

    # Add metrics middleware if enabled
    if settings.ENABLE_METRICS:
        app.add_middleware(MetricsMiddleware)

    app.add_middleware(LoggingMiddleware)

    return app


# Create app instance
app = create_app()
