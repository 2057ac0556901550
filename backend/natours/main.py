"""
Natours API - Main Application Entry Point

A tour catalogue demonstrating:
- Generic resource handlers driven by explicit processing pipelines
- Query-string filtering, sorting, projection and pagination
- JWT sessions over bearer headers or cookies, with role checks
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.templating import Jinja2Templates

from natours.api.errors import ErrorNormalizer, register_exception_handlers
from natours.api.middleware import RequestLoggingMiddleware
from natours.api.router import api_router
from natours.api.routes import views
from natours.core.config import Settings, get_settings
from natours.core.logging import get_logger, setup_logging
from natours.core.metrics import metrics_endpoint
from natours.db.session import dispose_engine

TEMPLATES_DIR = Path(__file__).parent / "templates"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifecycle: startup and shutdown hooks."""
        setup_logging(settings)
        logger = get_logger(__name__)

        logger.info(
            "application_starting",
            app=settings.APP_NAME,
            version=settings.APP_VERSION,
            environment=settings.ENVIRONMENT,
        )

        yield

        # Cleanup
        await dispose_engine()
        logger.info("application_shutdown")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Tours, reviews and users with JWT sessions",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Custom middleware
    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(
        app,
        ErrorNormalizer(verbose=settings.verbose_errors, templates=app.state.templates),
    )

    # Routes
    app.include_router(api_router)
    app.include_router(views.router)

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint for Docker and load balancers."""
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
        }

    @app.get("/metrics", tags=["Health"], include_in_schema=False)
    def metrics():
        return metrics_endpoint()

    return app


app = create_app()
