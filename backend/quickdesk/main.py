"""
Main FastAPI application.

WHY: This is the entry point for the application. It configures logging,
middleware, routes, exception handlers, and the lifecycle of the
notification dispatcher.
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from quickdesk.core.config import settings
from quickdesk.core.exceptions import AppException
from quickdesk.core.exception_handlers import (
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)
from quickdesk.db.session import AsyncSessionLocal
from quickdesk.middleware import RequestContextMiddleware
from quickdesk.api import categories, notifications, tickets, uploads, users
from quickdesk.services.category_service import CategoryService
from quickdesk.services.notification_queue import get_notification_queue
from quickdesk.services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Root logger level and format from settings."""
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def seed_default_categories() -> None:
    """
    Insert the configured default categories that do not exist yet.

    Safe to run on every start; existing categories are never modified.
    """
    async with AsyncSessionLocal() as session:
        await CategoryService(session).seed_categories(settings.DEFAULT_CATEGORIES)
        await session.commit()


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    WHY: Factory pattern allows easier testing with different configurations
    and makes it possible to create multiple app instances if needed.

    Returns:
        Configured FastAPI application instance
    """
    configure_logging()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Help-desk ticket lifecycle and workflow API",
        version=settings.VERSION,
        docs_url=f"{settings.API_PREFIX}/docs",
        redoc_url=f"{settings.API_PREFIX}/redoc",
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
    )

    # Register exception handlers
    # WHY: Exception handlers ensure consistent error responses across the API
    # and prevent sensitive data leaks in error messages
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Request id for log correlation, echoed as X-Request-ID
    app.add_middleware(RequestContextMiddleware)

    # Configure CORS
    # WHY: The web client runs on a different origin during development.
    # In production, restrict CORS_ORIGINS to specific domains.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    dispatcher = NotificationDispatcher(get_notification_queue())
    app.state.notification_dispatcher = dispatcher

    @app.get(f"{settings.API_PREFIX}/health", tags=["health"])
    async def health_check() -> dict:
        """
        Health check endpoint.

        WHY: Allows load balancers and monitoring to verify service health
        without checking authentication or database connectivity.
        """
        return {
            "success": True,
            "message": "QuickDesk API is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.on_event("startup")
    async def startup_event():
        """
        Application startup event handler.

        WHY: Seeds the default categories (when enabled) and starts the
        background notification dispatcher.
        """
        if settings.SEED_DEFAULT_CATEGORIES:
            await seed_default_categories()
        dispatcher.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        """
        Application shutdown event handler.

        WHY: Stops the dispatcher; events still queued are dropped.
        """
        await dispatcher.stop()

    # Register API routers
    app.include_router(tickets.router, prefix=settings.API_PREFIX)
    app.include_router(categories.router, prefix=settings.API_PREFIX)
    app.include_router(notifications.router, prefix=settings.API_PREFIX)
    app.include_router(users.router, prefix=settings.API_PREFIX)
    app.include_router(uploads.router, prefix=settings.API_PREFIX)

    return app


# Create app instance
# WHY: Creating the app instance here allows it to be imported by uvicorn
# and other modules that need access to the FastAPI app.
app = create_app()


if __name__ == "__main__":
    import uvicorn

    # WHY: This allows running the app directly with `python -m quickdesk.main`
    # for development. In production, use `uvicorn quickdesk.main:app` directly.
    uvicorn.run(
        "quickdesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info" if settings.DEBUG else "warning",
    )
