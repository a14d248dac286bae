"""HTTP controller layer for application submission, status and evaluation."""

from __future__ import annotations

from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from hostel_backend.controllers.dependencies import (
    get_application_service,
    get_evaluation_service,
)
from hostel_backend.domain.errors import ConflictError, NotFoundError, ValidationError
from hostel_backend.domain.models import Application
from hostel_backend.services.application_service import ApplicationService
from hostel_backend.services.evaluation_service import EvaluationService
from hostel_backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["applications"])

MarkInput = Union[float, str, None]


class ApplicationSubmitRequest(BaseModel):
    """Identity and gender are typed; every other field passes through as payload."""

    model_config = ConfigDict(extra="allow")

    student_id: str = Field(min_length=1)
    gender: str
    full_name: str = ""


class ApplicationCreatedResponse(BaseModel):
    application_id: str


class EvaluationResponse(BaseModel):
    distance_marks: float
    income_marks: float
    special_reasons_parent_marks: float
    special_reasons_marks: float
    total_marks: float = Field(ge=0.0, le=400.0)
    recommendation: Optional[str] = None
    final_decision: Optional[str] = None
    signature: Optional[str] = None
    checker: Optional[str] = None
    evaluated_at: Optional[str] = None


class ApplicationResponse(BaseModel):
    application_id: str
    student_id: str
    gender: str
    full_name: str
    status: str
    payload: dict[str, Any]
    evaluation: Optional[EvaluationResponse] = None
    hostel_id: Optional[str] = None
    hostel_name: Optional[str] = None
    room_id: Optional[str] = None
    room_number: Optional[str] = None
    assigned_at: Optional[str] = None
    created_at: str
    status_updated_at: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: str


class EvaluationRequest(BaseModel):
    distance_marks: MarkInput = None
    income_marks: MarkInput = None
    special_reasons_parent_marks: MarkInput = None
    special_reasons_marks: MarkInput = None
    recommendation: Optional[str] = None
    final_decision: Optional[str] = None
    signature: Optional[str] = None
    checker: Optional[str] = None


class EvaluationResultResponse(BaseModel):
    application: ApplicationResponse
    status_changed: bool
    allocation_required: bool


class ApplicationStatsResponse(BaseModel):
    pending: int = Field(ge=0)
    approved: int = Field(ge=0)
    rejected: int = Field(ge=0)
    total: int = Field(ge=0)


def to_application_response(application: Application) -> ApplicationResponse:
    evaluation = application.evaluation
    return ApplicationResponse(
        application_id=application.application_id,
        student_id=application.student_id,
        gender=application.gender,
        full_name=application.full_name,
        status=application.status,
        payload=application.payload,
        evaluation=(
            EvaluationResponse(**evaluation.to_dict()) if evaluation is not None else None
        ),
        hostel_id=application.hostel_id,
        hostel_name=application.hostel_name,
        room_id=application.room_id,
        room_number=application.room_number,
        assigned_at=application.assigned_at,
        created_at=application.created_at,
        status_updated_at=application.status_updated_at,
    )


@router.post(
    "/applications",
    response_model=ApplicationCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_application(
    payload: ApplicationSubmitRequest,
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationCreatedResponse:
    try:
        application_id = service.submit(payload.model_dump())
        return ApplicationCreatedResponse(application_id=application_id)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected application submission failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to submit application",
        ) from exc


@router.get(
    "/applications",
    response_model=list[ApplicationResponse],
    status_code=status.HTTP_200_OK,
)
async def list_applications(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    search: Optional[str] = Query(default=None),
    service: ApplicationService = Depends(get_application_service),
) -> list[ApplicationResponse]:
    try:
        applications = service.list_applications(status=status_filter, search=search)
        return [to_application_response(application) for application in applications]
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected application listing failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load applications",
        ) from exc


@router.get(
    "/applications/stats",
    response_model=ApplicationStatsResponse,
    status_code=status.HTTP_200_OK,
)
async def application_stats(
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationStatsResponse:
    try:
        stats = service.stats()
        return ApplicationStatsResponse(
            pending=stats.pending,
            approved=stats.approved,
            rejected=stats.rejected,
            total=stats.total,
        )
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected application stats failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute application stats",
        ) from exc


@router.get(
    "/students/{student_id}/applications",
    response_model=list[ApplicationResponse],
    status_code=status.HTTP_200_OK,
)
async def list_student_applications(
    student_id: str,
    service: ApplicationService = Depends(get_application_service),
) -> list[ApplicationResponse]:
    try:
        return [
            to_application_response(application)
            for application in service.list_for_student(student_id)
        ]
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected student application listing failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load student applications",
        ) from exc


@router.get(
    "/applications/{application_id}",
    response_model=ApplicationResponse,
    status_code=status.HTTP_200_OK,
)
async def get_application(
    application_id: str,
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    try:
        return to_application_response(service.get(application_id))
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected application lookup failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load application",
        ) from exc


@router.put(
    "/applications/{application_id}/status",
    response_model=ApplicationResponse,
    status_code=status.HTTP_200_OK,
)
async def set_application_status(
    application_id: str,
    payload: StatusUpdateRequest,
    service: ApplicationService = Depends(get_application_service),
) -> ApplicationResponse:
    try:
        return to_application_response(service.set_status(application_id, payload.status))
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
    except ConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected application status failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update application status",
        ) from exc


@router.put(
    "/applications/{application_id}/evaluation",
    response_model=EvaluationResultResponse,
    status_code=status.HTTP_200_OK,
)
async def evaluate_application(
    application_id: str,
    payload: EvaluationRequest,
    service: EvaluationService = Depends(get_evaluation_service),
) -> EvaluationResultResponse:
    """Score the application; an approve decision signals that a room is needed."""
    try:
        outcome = service.evaluate(application_id, payload.model_dump())
        return EvaluationResultResponse(
            application=to_application_response(outcome.application),
            status_changed=outcome.status_changed,
            allocation_required=outcome.allocation_required,
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
    except ConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected application evaluation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to evaluate application",
        ) from exc


@router.delete(
    "/applications/{application_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_application(
    application_id: str,
    service: ApplicationService = Depends(get_application_service),
) -> None:
    try:
        service.delete(application_id)
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected application deletion failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete application",
        ) from exc
