"""HTTP controller layer for the pick-then-commit room assignment flow."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from hostel_backend.controllers.dependencies import get_allocation_service
from hostel_backend.controllers.hostel_controller import HostelResponse, to_hostel_response
from hostel_backend.domain.errors import ConflictError, NotFoundError, ValidationError
from hostel_backend.services.allocation_service import AllocationService
from hostel_backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["allocation"])


class CandidatesResponse(BaseModel):
    application_id: str
    gender: str
    hostels: list[HostelResponse]


class AssignRequest(BaseModel):
    hostel_id: str = Field(min_length=1)
    room_id: str = Field(min_length=1)


class AssignmentResponse(BaseModel):
    application_id: str
    hostel_id: str
    hostel_name: str
    room_id: str
    room_number: str
    occupancy: int = Field(ge=1)
    capacity: int = Field(ge=1, le=4)
    assigned_at: str


class AssignmentStatusResponse(BaseModel):
    """Current binding, for callers recovering from a timed-out assign."""

    application_id: str
    status: str
    assigned: bool
    hostel_id: Optional[str] = None
    hostel_name: Optional[str] = None
    room_id: Optional[str] = None
    room_number: Optional[str] = None
    assigned_at: Optional[str] = None


@router.get(
    "/applications/{application_id}/candidates",
    response_model=CandidatesResponse,
    status_code=status.HTTP_200_OK,
)
async def find_candidates(
    application_id: str,
    search: Optional[str] = Query(default=None),
    service: AllocationService = Depends(get_allocation_service),
) -> CandidatesResponse:
    """Vacant rooms grouped by hostel; an empty list means no vacancy."""
    try:
        application = service.get_application(application_id)
        grouped = service.find_candidates(application).grouped()
        if search:
            needle = search.strip().lower()
            grouped = [entry for entry in grouped if needle in entry.hostel.name.lower()]
        return CandidatesResponse(
            application_id=application.application_id,
            gender=application.gender,
            hostels=[to_hostel_response(entry) for entry in grouped],
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected candidate lookup failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load available rooms",
        ) from exc


@router.post(
    "/applications/{application_id}/assignment",
    response_model=AssignmentResponse,
    status_code=status.HTTP_200_OK,
)
async def assign_room(
    application_id: str,
    payload: AssignRequest,
    service: AllocationService = Depends(get_allocation_service),
) -> AssignmentResponse:
    try:
        result = service.assign_by_ids(
            application_id=application_id,
            hostel_id=payload.hostel_id,
            room_id=payload.room_id,
        )
        return AssignmentResponse(
            application_id=result.application_id,
            hostel_id=result.hostel_id,
            hostel_name=result.hostel_name,
            room_id=result.room_id,
            room_number=result.room_number,
            occupancy=result.occupancy,
            capacity=result.capacity,
            assigned_at=result.assigned_at,
        )
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except ConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected room assignment failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to assign room; re-fetch the application before retrying",
        ) from exc


@router.get(
    "/applications/{application_id}/assignment",
    response_model=AssignmentStatusResponse,
    status_code=status.HTTP_200_OK,
)
async def get_assignment(
    application_id: str,
    service: AllocationService = Depends(get_allocation_service),
) -> AssignmentStatusResponse:
    try:
        application = service.get_application(application_id)
        return AssignmentStatusResponse(
            application_id=application.application_id,
            status=application.status,
            assigned=application.is_allocated,
            hostel_id=application.hostel_id,
            hostel_name=application.hostel_name,
            room_id=application.room_id,
            room_number=application.room_number,
            assigned_at=application.assigned_at,
        )
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected assignment lookup failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load assignment",
        ) from exc
