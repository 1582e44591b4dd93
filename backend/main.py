"""
FastAPI Application Entry Point for the DAO tracking backend.

This module serves as the main entry point of the API server that tracks
procurement case files (DAO), their checklist tasks and the notifications
their changes produce.

Key Features:
- Async lifecycle management; storage is selected lazily on first use
- Middleware stack for correlation IDs, CORS, security headers and errors
- Case-file, task and notification routers under the API prefix
- Health endpoints for the service, the error handler and SMTP

Architecture Components:
- API Layer: FastAPI routers and dependency injection
- Service Layer: DaoService orchestrating storage, numbering and notifications
- Data Layer: MongoDB through motor, with an in-memory fallback
- Notification Layer: in-app event feed and SMTP email
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse

from backend.app.api.deps import (
    cleanup_all_services,
    get_mailer,
    get_service_status,
    get_storage_service,
)
from backend.app.api.middleware.cors import setup_cors_middleware
from backend.app.api.middleware.error_handler import setup_error_handlers
from backend.app.api.middleware.logging import setup_logging_middleware
from backend.app.api.routes import daos, notifications, tasks
from backend.app.services.mail_service import Mailer
from backend.app.services.storage_service import DaoStorageService
from backend.app.utils.logging import get_logger, initialize_logging_from_settings
from backend.config.settings import get_settings

# Initialize logging as early as possible
initialize_logging_from_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager for startup and shutdown procedures.

    Validates the configuration on startup and releases the storage
    connection on shutdown.
    """
    settings = get_settings()
    logger.info(
        "=== DAO Tracker Backend Starting Up ===",
        environment=settings.environment,
        debug_mode=settings.debug
    )

    errors = settings.validate_configuration()
    if errors:
        logger.warning("Configuration problems detected", errors=errors)

    yield

    logger.info("=== DAO Tracker Backend Shutting Down ===")
    await cleanup_all_services()
    logger.info("Shutdown completed")


def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="Procurement case files, checklist tasks and notifications",
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan
    )

    configure_middleware(app)
    configure_routes(app)

    return app


def configure_middleware(app: FastAPI) -> None:
    """
    Configure application middleware stack.

    Middleware added last runs first, so the request context (correlation
    ID) wraps everything else.
    """
    settings = get_settings()

    setup_error_handlers(app, settings.api_prefix)
    setup_cors_middleware(app, settings)
    setup_logging_middleware(app)

    logger.info("Middleware configuration completed")


def configure_routes(app: FastAPI) -> None:
    """Configure application routes and API endpoints."""
    settings = get_settings()
    prefix = settings.api_prefix

    @app.get(f"{prefix}/health", tags=["system"])
    async def health_check(storage: DaoStorageService = Depends(get_storage_service)):
        """Service health with the active storage mode."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.environment,
            "storage": await storage.health(),
            "services": get_service_status(),
        }

    @app.get(f"{prefix}/health/smtp", tags=["system"])
    async def smtp_health(mailer: Mailer = Depends(get_mailer)):
        """Check that the SMTP transport accepts connections."""
        try:
            await mailer.verify()
        except Exception as e:
            logger.warning("SMTP verification failed", error=str(e))
            return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
        return {"ok": True}

    @app.get("/", tags=["system"], include_in_schema=False)
    async def root():
        return {
            "name": f"{settings.app_name} API",
            "version": settings.app_version,
            "docs_url": "/docs",
            "health_url": f"{prefix}/health",
        }

    app.include_router(daos.router, prefix=f"{prefix}/dao", tags=["dao"])
    app.include_router(tasks.router, prefix=f"{prefix}/dao", tags=["tasks"])
    app.include_router(notifications.router, prefix=f"{prefix}/notifications", tags=["notifications"])

    logger.info("Routes configuration completed", api_prefix=prefix)


app = create_application()


# Development server entry point
if __name__ == "__main__":
    import uvicorn

    logger.info("Starting DAO Tracker development server...")
    uvicorn.run(
        "backend.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_dirs=["backend/app", "backend/config"],
    )
