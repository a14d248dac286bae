"""Binding approved applications to rooms without cross-document transactions.

An assignment touches two documents: the room (occupancy and residents) and
the application (hostel and room fields). The room is written first with a
conditional "increment if below capacity" update, then re-read and
re-validated once, and only then is the application bound. If the binding
fails the room write is undone; if undoing fails too, operators are told
through an ``InconsistencyWarning``. A failure therefore leaves the room
knowing more than the application, never an application pointing at a bed
the room does not record.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Any, NoReturn, Optional

from hostel_backend.domain.errors import ConflictError, NotFoundError
from hostel_backend.domain.models import (
    STATUS_APPROVED,
    Application,
    AssignmentResult,
    Hostel,
    Resident,
    Room,
)
from hostel_backend.repository.data_repository import DataRepository
from hostel_backend.services.catalog_service import EligibleRooms, HostelCatalogService
from hostel_backend.utils.config import Settings, get_settings
from hostel_backend.utils.logger import get_logger, report_inconsistency


logger = get_logger(__name__)


def _payload_value(payload: dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def build_resident(application: Application, assigned_date: str) -> Resident:
    """Resident record carrying the application's identity and contact fields."""
    payload = application.payload
    return Resident(
        student_id=application.student_id,
        display_name=application.full_name,
        application_id=application.application_id,
        registration_number=_payload_value(
            payload, "registration_number", "registrationNumber"
        ),
        assigned_date=assigned_date,
        email=_payload_value(payload, "email"),
        phone=_payload_value(payload, "phone", "mobile_number", "mobileNumber"),
        department=_payload_value(payload, "department"),
    )


class AllocationService:
    """Finds vacant rooms for an applicant and commits the chosen one."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        catalog_service: Optional[HostelCatalogService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._catalog_service = catalog_service or HostelCatalogService(
            repository=self._repository,
            settings=self._settings,
        )

    def find_candidates(self, application: Application) -> EligibleRooms:
        """Vacant rooms in hostels matching the applicant's gender; may be empty."""
        return self._catalog_service.list_eligible_rooms(application.gender)

    def get_application(self, application_id: str) -> Application:
        application = self._repository.get_application(application_id)
        if application is None:
            raise NotFoundError(f"application {application_id} not found")
        return application

    def assign_by_ids(
        self,
        application_id: str,
        hostel_id: str,
        room_id: str,
    ) -> AssignmentResult:
        """Load fresh snapshots of all three documents, then assign."""
        application = self.get_application(application_id)
        hostel = self._catalog_service.get_hostel(hostel_id)
        room = self._catalog_service.get_room(hostel_id, room_id)
        return self.assign(application, hostel, room)

    def _check_preconditions(self, application: Application, hostel: Hostel, room: Room) -> None:
        if application.status != STATUS_APPROVED:
            raise ConflictError(
                f"application {application.application_id} is {application.status}; "
                "only approved applications can be assigned a room"
            )
        if application.is_allocated:
            raise ConflictError(
                f"application {application.application_id} is already assigned to "
                f"room {application.room_number}"
            )
        if room.hostel_id != hostel.hostel_id:
            raise ConflictError(
                f"room {room.room_number} does not belong to hostel {hostel.name}"
            )
        if hostel.gender != application.gender:
            raise ConflictError(
                f"hostel {hostel.name} is for {hostel.gender} students; "
                f"applicant is {application.gender}"
            )
        if not room.has_vacancy:
            raise ConflictError(f"room {room.room_number} is full")

    def assign(
        self,
        application: Application,
        hostel: Hostel,
        room: Room,
    ) -> AssignmentResult:
        self._check_preconditions(application, hostel, room)
        assigned_at = datetime.now(timezone.utc).isoformat()
        resident = build_resident(application, assigned_at)

        if not self._repository.add_resident_if_vacant(hostel.hostel_id, room.room_id, resident):
            self._raise_room_rejection(application, hostel, room)
        committed_room = self._revalidate_room(application, hostel, room)

        try:
            bound = self._repository.bind_application_to_room(
                application.application_id,
                hostel_id=hostel.hostel_id,
                hostel_name=hostel.name,
                room_id=room.room_id,
                room_number=room.room_number,
                assigned_at=assigned_at,
            )
        except sqlite3.Error:
            logger.exception(
                "Binding application %s to room %s failed",
                application.application_id,
                room.room_id,
            )
            self._release_bed(application, hostel, room)
            raise
        if not bound:
            self._release_bed(application, hostel, room)
            self._raise_binding_rejection(application)

        logger.info(
            "Application %s assigned to %s room %s (%s/%s)",
            application.application_id,
            hostel.name,
            room.room_number,
            committed_room.occupancy,
            committed_room.capacity,
        )
        return AssignmentResult(
            application_id=application.application_id,
            hostel_id=hostel.hostel_id,
            hostel_name=hostel.name,
            room_id=room.room_id,
            room_number=room.room_number,
            occupancy=committed_room.occupancy,
            capacity=committed_room.capacity,
            assigned_at=assigned_at,
        )

    def _raise_room_rejection(
        self,
        application: Application,
        hostel: Hostel,
        room: Room,
    ) -> NoReturn:
        current = self._repository.get_room(hostel.hostel_id, room.room_id)
        if current is None:
            raise NotFoundError(f"room {room.room_id} not found in hostel {hostel.hostel_id}")
        if any(r.application_id == application.application_id for r in current.residents):
            raise ConflictError(
                f"application {application.application_id} already holds a bed "
                f"in room {room.room_number}"
            )
        logger.warning(
            "Room %s rejected application %s at %s/%s",
            room.room_id,
            application.application_id,
            current.occupancy,
            current.capacity,
        )
        raise ConflictError(
            "room filled by a concurrent request; pick another room"
        )

    def _revalidate_room(
        self,
        application: Application,
        hostel: Hostel,
        room: Room,
    ) -> Room:
        """Single post-increment check; never loops."""
        current = self._repository.get_room(hostel.hostel_id, room.room_id)
        if current is None:
            report_inconsistency(
                logger,
                f"room {room.room_id} vanished right after taking application "
                f"{application.application_id}",
            )
            raise ConflictError("room was removed by a concurrent request; pick another room")
        if current.occupancy > current.capacity:
            self._release_bed(application, hostel, room)
            raise ConflictError("room filled by a concurrent request; pick another room")
        return current

    def _release_bed(self, application: Application, hostel: Hostel, room: Room) -> None:
        try:
            released = self._repository.remove_resident(
                hostel.hostel_id,
                room.room_id,
                application.application_id,
            )
        except sqlite3.Error:
            logger.exception(
                "Compensation for application %s in room %s failed",
                application.application_id,
                room.room_id,
            )
            released = False
        if not released:
            report_inconsistency(
                logger,
                f"room {room.room_id} in hostel {hostel.hostel_id} holds an orphaned bed "
                f"for application {application.application_id}",
            )
            return
        logger.warning(
            "Rolled back bed in room %s for application %s",
            room.room_id,
            application.application_id,
        )

    def _raise_binding_rejection(self, application: Application) -> NoReturn:
        current = self._repository.get_application(application.application_id)
        if current is None:
            raise NotFoundError(f"application {application.application_id} not found")
        if current.is_allocated:
            raise ConflictError(
                f"application {application.application_id} was assigned to room "
                f"{current.room_number} by a concurrent request"
            )
        raise ConflictError(
            f"application {application.application_id} is {current.status}; "
            "only approved applications can be assigned a room"
        )
