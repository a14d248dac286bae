"""HTTP controller layer for the hostel and room catalogue."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from hostel_backend.controllers.dependencies import get_catalog_service
from hostel_backend.domain.errors import ConflictError, NotFoundError, ValidationError
from hostel_backend.domain.models import HostelWithRooms, Resident, Room
from hostel_backend.services.catalog_service import HostelCatalogService
from hostel_backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["hostels"])


class HostelCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    gender: str
    total_rooms: int
    description: str = ""


class HostelUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    total_rooms: Optional[int] = None
    description: Optional[str] = None
    gender: Optional[str] = None


class HostelCreatedResponse(BaseModel):
    hostel_id: str


class RoomCreateRequest(BaseModel):
    room_number: str = Field(min_length=1)
    capacity: int
    floor: int


class RoomCreatedResponse(BaseModel):
    room_id: str


class ResidentResponse(BaseModel):
    student_id: str
    display_name: str
    application_id: str
    registration_number: Optional[str] = None
    assigned_date: str
    email: Optional[str] = None
    phone: Optional[str] = None
    department: Optional[str] = None


class RoomResponse(BaseModel):
    room_id: str
    hostel_id: str
    room_number: str
    floor: int = Field(gt=0)
    capacity: int = Field(ge=1, le=4)
    occupancy: int = Field(ge=0)
    free_beds: int = Field(ge=0)
    residents: list[ResidentResponse]


class HostelResponse(BaseModel):
    hostel_id: str
    name: str
    gender: str
    total_rooms: int = Field(gt=0)
    description: str
    created_at: str
    rooms: list[RoomResponse]


def to_resident_response(resident: Resident) -> ResidentResponse:
    return ResidentResponse(**resident.to_dict())


def to_room_response(room: Room) -> RoomResponse:
    return RoomResponse(
        room_id=room.room_id,
        hostel_id=room.hostel_id,
        room_number=room.room_number,
        floor=room.floor,
        capacity=room.capacity,
        occupancy=room.occupancy,
        free_beds=room.free_beds,
        residents=[to_resident_response(resident) for resident in room.residents],
    )


def to_hostel_response(entry: HostelWithRooms) -> HostelResponse:
    hostel = entry.hostel
    return HostelResponse(
        hostel_id=hostel.hostel_id,
        name=hostel.name,
        gender=hostel.gender,
        total_rooms=hostel.total_rooms,
        description=hostel.description,
        created_at=hostel.created_at,
        rooms=[to_room_response(room) for room in entry.rooms],
    )


@router.post(
    "/hostels",
    response_model=HostelCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_hostel(
    payload: HostelCreateRequest,
    service: HostelCatalogService = Depends(get_catalog_service),
) -> HostelCreatedResponse:
    try:
        hostel_id = service.create_hostel(
            name=payload.name,
            gender=payload.gender,
            total_rooms=payload.total_rooms,
            description=payload.description,
        )
        return HostelCreatedResponse(hostel_id=hostel_id)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected hostel creation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create hostel",
        ) from exc


@router.get(
    "/hostels",
    response_model=list[HostelResponse],
    status_code=status.HTTP_200_OK,
)
async def list_hostels(
    service: HostelCatalogService = Depends(get_catalog_service),
) -> list[HostelResponse]:
    try:
        return [to_hostel_response(entry) for entry in service.list_hostels_with_rooms()]
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected hostel listing failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load hostels",
        ) from exc


@router.get(
    "/hostels/{hostel_id}",
    response_model=HostelResponse,
    status_code=status.HTTP_200_OK,
)
async def get_hostel(
    hostel_id: str,
    service: HostelCatalogService = Depends(get_catalog_service),
) -> HostelResponse:
    try:
        return to_hostel_response(service.get_hostel_with_rooms(hostel_id))
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected hostel lookup failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load hostel",
        ) from exc


@router.patch(
    "/hostels/{hostel_id}",
    response_model=HostelResponse,
    status_code=status.HTTP_200_OK,
)
async def update_hostel(
    hostel_id: str,
    payload: HostelUpdateRequest,
    service: HostelCatalogService = Depends(get_catalog_service),
) -> HostelResponse:
    try:
        service.update_hostel(
            hostel_id,
            name=payload.name,
            total_rooms=payload.total_rooms,
            description=payload.description,
            gender=payload.gender,
        )
        return to_hostel_response(service.get_hostel_with_rooms(hostel_id))
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
        logger.exception("Unexpected hostel update failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update hostel",
        ) from exc


@router.delete(
    "/hostels/{hostel_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_hostel(
    hostel_id: str,
    service: HostelCatalogService = Depends(get_catalog_service),
) -> None:
    """Cascade delete; callers confirm intent before calling."""
    try:
        service.delete_hostel(hostel_id)
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected hostel deletion failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete hostel",
        ) from exc


@router.post(
    "/hostels/{hostel_id}/rooms",
    response_model=RoomCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_room(
    hostel_id: str,
    payload: RoomCreateRequest,
    service: HostelCatalogService = Depends(get_catalog_service),
) -> RoomCreatedResponse:
    try:
        room_id = service.add_room(
            hostel_id=hostel_id,
            room_number=payload.room_number,
            capacity=payload.capacity,
            floor=payload.floor,
        )
        return RoomCreatedResponse(room_id=room_id)
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
        logger.exception("Unexpected room creation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add room",
        ) from exc


@router.delete(
    "/hostels/{hostel_id}/rooms/{room_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_room(
    hostel_id: str,
    room_id: str,
    service: HostelCatalogService = Depends(get_catalog_service),
) -> None:
    try:
        service.delete_room(hostel_id, room_id)
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
        logger.exception("Unexpected room deletion failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete room",
        ) from exc
