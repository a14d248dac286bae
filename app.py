"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from hostel_backend.controllers.allocation_controller import router as allocation_router
from hostel_backend.controllers.application_controller import router as application_router
from hostel_backend.controllers.hostel_controller import router as hostel_router
from hostel_backend.repository.data_repository import DataRepository
from hostel_backend.services.allocation_service import AllocationService
from hostel_backend.services.application_service import ApplicationService
from hostel_backend.services.catalog_service import HostelCatalogService
from hostel_backend.services.evaluation_service import EvaluationService
from hostel_backend.utils.config import Settings, get_settings
from hostel_backend.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Instantiates all services with explicit dependency injection via app.state.
    Every service shares one repository, so the database is the only state
    they have in common.
    """
    settings = settings or get_settings()

    # --- Repository (SQLite connection factory) ---
    repository = DataRepository(settings)

    # --- Services (business logic, no direct DB access) ---
    catalog_service = HostelCatalogService(repository=repository, settings=settings)
    application_service = ApplicationService(repository=repository, settings=settings)
    evaluation_service = EvaluationService(
        application_service=application_service,
        settings=settings,
    )
    allocation_service = AllocationService(
        repository=repository,
        catalog_service=catalog_service,
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(hostel_router)
    app.include_router(application_router)
    app.include_router(allocation_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.catalog_service = catalog_service
    app.state.application_service = application_service
    app.state.evaluation_service = evaluation_service
    app.state.allocation_service = allocation_service

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    The schema must exist before the optional demo catalogue is seeded.
    """
    repository: DataRepository = app.state.repository
    settings: Settings = app.state.settings

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo hostels (skipped if catalogue not empty)")
        repository.seed_demo_data()

    logger.info("Startup complete, system ready")


# Module-level app object for uvicorn
app = create_app()
