"""Hostel and room catalogue with capacity bookkeeping."""

from __future__ import annotations

from typing import Iterator, Optional

from hostel_backend.domain.constraints import (
    RoomConstraints,
    validate_floor,
    validate_gender,
    validate_name,
    validate_room_capacity,
    validate_total_rooms,
)
from hostel_backend.domain.errors import ConflictError, NotFoundError
from hostel_backend.domain.models import Hostel, HostelWithRooms, Room
from hostel_backend.repository.data_repository import DataRepository
from hostel_backend.utils.config import Settings, get_settings
from hostel_backend.utils.logger import get_logger


logger = get_logger(__name__)


class EligibleRooms:
    """Lazy, restartable sequence of ``(hostel, room)`` pairs with a free bed.

    Each iteration queries the store again, so a second pass reflects any
    assignment made since the first one. Hostels without a vacant room yield
    nothing and therefore never appear.
    """

    def __init__(self, repository: DataRepository, gender: str) -> None:
        self._repository = repository
        self._gender = gender

    @property
    def gender(self) -> str:
        return self._gender

    def __iter__(self) -> Iterator[tuple[Hostel, Room]]:
        for hostel in self._repository.list_hostels(gender=self._gender):
            for room in self._repository.list_rooms(hostel.hostel_id, vacant_only=True):
                yield hostel, room

    def grouped(self) -> list[HostelWithRooms]:
        grouped: dict[str, tuple[Hostel, list[Room]]] = {}
        for hostel, room in self:
            grouped.setdefault(hostel.hostel_id, (hostel, []))[1].append(room)
        return [
            HostelWithRooms(hostel=hostel, rooms=tuple(rooms))
            for hostel, rooms in grouped.values()
        ]


class HostelCatalogService:
    """Owns hostel and room lifecycles."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._room_constraints = RoomConstraints(
            min_capacity=self._settings.room_min_capacity,
            max_capacity=self._settings.room_max_capacity,
        )

    def create_hostel(
        self,
        name: str,
        gender: str,
        total_rooms: int,
        description: str = "",
    ) -> str:
        hostel_id = self._repository.create_hostel(
            name=validate_name(name),
            gender=validate_gender(gender),
            total_rooms=validate_total_rooms(total_rooms),
            description=(description or "").strip(),
        )
        logger.info("Hostel %s created (%s)", hostel_id, name)
        return hostel_id

    def get_hostel(self, hostel_id: str) -> Hostel:
        hostel = self._repository.get_hostel(hostel_id)
        if hostel is None:
            raise NotFoundError(f"hostel {hostel_id} not found")
        return hostel

    def get_hostel_with_rooms(self, hostel_id: str) -> HostelWithRooms:
        hostel = self.get_hostel(hostel_id)
        return HostelWithRooms(
            hostel=hostel,
            rooms=tuple(self._repository.list_rooms(hostel.hostel_id)),
        )

    def list_hostels_with_rooms(self) -> list[HostelWithRooms]:
        return [
            HostelWithRooms(
                hostel=hostel,
                rooms=tuple(self._repository.list_rooms(hostel.hostel_id)),
            )
            for hostel in self._repository.list_hostels()
        ]

    def update_hostel(
        self,
        hostel_id: str,
        *,
        name: Optional[str] = None,
        total_rooms: Optional[int] = None,
        description: Optional[str] = None,
        gender: Optional[str] = None,
    ) -> Hostel:
        current = self.get_hostel(hostel_id)
        if gender is not None and validate_gender(gender) != current.gender:
            # Existing residents were placed under the current designation.
            raise ConflictError("hostel gender cannot be changed after creation")
        # Omitted fields are not written.
        updated = self._repository.update_hostel(
            hostel_id,
            name=validate_name(name) if name is not None else None,
            total_rooms=validate_total_rooms(total_rooms) if total_rooms is not None else None,
            description=description.strip() if description is not None else None,
        )
        if not updated:
            raise NotFoundError(f"hostel {hostel_id} not found")
        return self.get_hostel(hostel_id)

    def delete_hostel(self, hostel_id: str) -> None:
        """Delete a hostel and every room in it, occupied or not."""
        if not self._repository.delete_hostel(hostel_id):
            raise NotFoundError(f"hostel {hostel_id} not found")
        logger.info("Hostel %s deleted with all rooms", hostel_id)

    def add_room(
        self,
        hostel_id: str,
        room_number: str,
        capacity: int,
        floor: int,
    ) -> str:
        room_number = validate_name(room_number, "room_number")
        capacity = validate_room_capacity(capacity, self._room_constraints)
        floor = validate_floor(floor)
        self.get_hostel(hostel_id)
        room_id = self._repository.create_room(
            hostel_id=hostel_id,
            room_number=room_number,
            floor=floor,
            capacity=capacity,
        )
        if room_id is None:
            raise NotFoundError(f"hostel {hostel_id} not found")
        logger.info("Room %s (%s) added to hostel %s", room_id, room_number, hostel_id)
        return room_id

    def get_room(self, hostel_id: str, room_id: str) -> Room:
        room = self._repository.get_room(hostel_id, room_id)
        if room is None:
            raise NotFoundError(f"room {room_id} not found in hostel {hostel_id}")
        return room

    def delete_room(self, hostel_id: str, room_id: str) -> None:
        if self._repository.delete_room_if_empty(hostel_id, room_id):
            logger.info("Room %s deleted from hostel %s", room_id, hostel_id)
            return
        room = self._repository.get_room(hostel_id, room_id)
        if room is None:
            raise NotFoundError(f"room {room_id} not found in hostel {hostel_id}")
        logger.warning(
            "Refusing to delete room %s with occupancy %s", room_id, room.occupancy
        )
        if room.occupancy == 0:
            raise ConflictError("room was modified by a concurrent request; retry")
        raise ConflictError("room occupied")

    def list_eligible_rooms(self, gender: str) -> EligibleRooms:
        return EligibleRooms(self._repository, validate_gender(gender))
