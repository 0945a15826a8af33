"""
MealStack backend - application entry point
Meal-subscription ordering API: capacity-gated orders, cart checkout,
payment-gated checkout and the admin back-office.

Stack: FastAPI + DuckDB + JWT bearer auth
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .api import api_router
from .config.settings import Settings
from .config.settings import settings as default_settings
from .core.database import DatabaseManager
from .core.error_handler import (
    application_error_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from .core.exceptions import BaseApplicationError
from .core.logging import configure_logging
from .gateway import PaymentGateway, build_gateway
from .services import ServiceContainer

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle"""
    container: ServiceContainer = app.state.container
    problems = container.settings.insecure_settings()
    if problems and not container.settings.debug:
        logger.error("insecure_configuration", problems=problems)
        raise RuntimeError(f"Refusing to start with insecure settings: {'; '.join(problems)}")
    if problems:
        logger.warning("insecure_configuration", problems=problems)

    container.db.init_database()
    logger.info("app_started", version=container.settings.api_version)

    yield

    container.db.close()
    logger.info("app_stopped")


def create_app(settings: Optional[Settings] = None, db: Optional[DatabaseManager] = None,
               gateway: Optional[PaymentGateway] = None,
               clock: Optional[Callable[[], datetime]] = None) -> FastAPI:
    """
    Build the FastAPI application

    Every collaborator can be injected; anything omitted is built from settings.
    """
    settings = settings or default_settings
    configure_logging(settings.log_level, settings.log_json)

    container = ServiceContainer.build(
        settings=settings,
        db=db or DatabaseManager(settings.database_url),
        gateway=gateway or build_gateway(settings),
        clock=clock or datetime.now,
    )

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="MealStack meal-subscription ordering API",
        debug=settings.debug,
        lifespan=lifespan
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(BaseApplicationError, application_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health")
    def health_check():
        try:
            container.db.execute_one("SELECT 1 AS ok")
            return {
                "status": "healthy",
                "version": settings.api_version,
                "database": "connected"
            }
        except BaseApplicationError as e:
            return {
                "status": "unhealthy",
                "version": settings.api_version,
                "database": f"error: {e.message}"
            }

    @app.get("/")
    def root():
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "description": "MealStack meal-subscription ordering API"
        }

    return app


# Application instance (uvicorn mealstack.app:app)
app = create_app()
