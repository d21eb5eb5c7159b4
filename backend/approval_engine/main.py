"""
License Approval Workflow Engine - Main FastAPI Application

This is the entry point for the FastAPI application.
It configures middleware, routes, and lifecycle handlers.
"""

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config.settings import settings
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .container import build_manager
from .repositories.mongo_client import create_indexes, close_connection, health_check
from .scheduler.overdue_scheduler import start_scheduler, stop_scheduler
from .services.workflow_manager import WorkflowManager
from .utils.logger import setup_logging, get_logger

# Setup logging first
setup_logging()
logger = get_logger(__name__)

VERSION = "1.0.0"


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        - Builds the workflow manager unless one was injected
        - Creates MongoDB indexes (mongo backend)
        - Starts the overdue sweep

    Shutdown:
        - Stops scheduler
        - Closes database connections
    """
    logger.info("Starting License Approval Workflow Engine...")

    if getattr(app.state, "manager", None) is None:
        app.state.manager = build_manager(settings)

    if settings.store_backend == "mongo":
        create_indexes()
        logger.info("MongoDB indexes created")

    start_scheduler(app.state.manager)
    logger.info("Application started successfully")

    yield

    logger.info("Shutting down...")
    stop_scheduler()
    if settings.store_backend == "mongo":
        close_connection()
    logger.info("Application shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app(manager: Optional[WorkflowManager] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        manager: Pre-built workflow manager (tests); built from settings at startup when omitted

    Returns:
        Configured FastAPI application instance
    """
    application = FastAPI(
        title="License Approval Workflow Engine",
        description="Multi-step approval workflows for software license requests",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
    )
    application.state.manager = manager

    _configure_middleware(application)
    register_error_handlers(application)
    _configure_routes(application)

    return application


def _configure_middleware(app: FastAPI) -> None:
    """Configure application middleware."""
    # allow_credentials must be False when allowing all origins
    allow_all = settings.cors_origins.strip() == "*"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_origins_list,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )
    app.add_middleware(CorrelationIdMiddleware)


def _configure_routes(app: FastAPI) -> None:
    """Configure application routes."""
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health():
        """
        Health check endpoint.

        Reports database connectivity when the mongo backend is in use.
        """
        body = {
            "status": "healthy",
            "version": VERSION,
            "environment": settings.environment,
            "store": settings.store_backend,
        }
        if settings.store_backend == "mongo":
            mongo_health = health_check()
            body["mongo"] = mongo_health
            if mongo_health.get("status") != "healthy":
                body["status"] = "degraded"
        return body

    @app.get("/", tags=["Health"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "License Approval Workflow Engine",
            "version": VERSION,
            "docs": "/api/docs" if settings.debug else None
        }


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()
