"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from hostel_backend.services.allocation_service import AllocationService
from hostel_backend.services.application_service import ApplicationService
from hostel_backend.services.catalog_service import HostelCatalogService
from hostel_backend.services.evaluation_service import EvaluationService


def _service_from_state(request: Request, attribute: str, label: str) -> Any:
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} service is not initialized",
        )
    return service


def get_catalog_service(request: Request) -> HostelCatalogService:
    return _service_from_state(request, "catalog_service", "Hostel catalog")


def get_application_service(request: Request) -> ApplicationService:
    return _service_from_state(request, "application_service", "Application")


def get_evaluation_service(request: Request) -> EvaluationService:
    service = getattr(request.app.state, "evaluation_service", None)
    if service is None:
        application_service = getattr(request.app.state, "application_service", None)
        if application_service is not None:
            service = EvaluationService(application_service=application_service)
            request.app.state.evaluation_service = service
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Evaluation service is not initialized",
        )
    return service


def get_allocation_service(request: Request) -> AllocationService:
    return _service_from_state(request, "allocation_service", "Allocation")
