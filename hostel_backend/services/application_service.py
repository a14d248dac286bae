"""Application persistence and status lifecycle."""

from __future__ import annotations

import sqlite3
from typing import Any, NoReturn, Optional

from hostel_backend.domain.constraints import (
    validate_gender,
    validate_status,
    validate_status_transition,
)
from hostel_backend.domain.errors import ConflictError, NotFoundError, ValidationError
from hostel_backend.domain.models import (
    STATUS_APPROVED,
    Application,
    ApplicationStats,
    Evaluation,
)
from hostel_backend.repository.data_repository import DataRepository
from hostel_backend.utils.config import Settings, get_settings
from hostel_backend.utils.logger import get_logger, report_inconsistency


logger = get_logger(__name__)

# Fields owned by the lifecycle; a submission can never preset them.
_RESERVED_PAYLOAD_KEYS = frozenset(
    {
        "application_id",
        "status",
        "evaluation",
        "hostel_id",
        "hostel_name",
        "room_id",
        "room_number",
        "assigned_at",
        "created_at",
        "status_updated_at",
    }
)


class ApplicationService:
    """Stores applications and moves them between statuses.

    Status writes are deliberately permissive: any known status is accepted
    unless ``strict_status_transitions`` is enabled. The one rule always
    enforced is that an application bound to a room stays ``approved``,
    because nothing releases the room on the way out.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def submit(self, payload: dict[str, Any]) -> str:
        data = {
            key: value
            for key, value in dict(payload).items()
            if key not in _RESERVED_PAYLOAD_KEYS
        }
        student_id = data.pop("student_id", None)
        if not isinstance(student_id, str) or not student_id.strip():
            raise ValidationError("student_id is required")
        gender = validate_gender(data.pop("gender", None))
        full_name = str(data.pop("full_name", "") or "").strip()

        application_id = self._repository.create_application(
            student_id=student_id.strip(),
            gender=gender,
            full_name=full_name,
            payload=data,
        )
        logger.info("Application %s submitted by student %s", application_id, student_id)
        return application_id

    def get(self, application_id: str) -> Application:
        application = self._repository.get_application(application_id)
        if application is None:
            raise NotFoundError(f"application {application_id} not found")
        return application

    def list_applications(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[Application]:
        if status is not None:
            validate_status(status)
        return self._repository.list_applications(status=status, search=search or None)

    def list_for_student(self, student_id: str) -> list[Application]:
        return self._repository.list_applications_for_student(student_id)

    def stats(self) -> ApplicationStats:
        counts = self._repository.count_applications_by_status()
        return ApplicationStats(
            pending=counts.get("pending", 0),
            approved=counts.get("approved", 0),
            rejected=counts.get("rejected", 0),
            total=sum(counts.values()),
        )

    def _ensure_allocation_preserved(self, application: Application, new_status: str) -> None:
        if application.is_allocated and new_status != STATUS_APPROVED:
            raise ConflictError(
                f"application {application.application_id} already holds room "
                f"{application.room_number}; releasing an allocation is not supported"
            )

    def _raise_write_failure(self, application_id: str) -> NoReturn:
        if self._repository.get_application(application_id) is None:
            raise NotFoundError(f"application {application_id} not found")
        raise ConflictError(
            f"application {application_id} was modified by a concurrent request"
        )

    def set_status(self, application_id: str, new_status: str) -> Application:
        status = validate_status(new_status)
        current = self.get(application_id)
        if self._settings.strict_status_transitions:
            validate_status_transition(current.status, status)
        self._ensure_allocation_preserved(current, status)

        updated = self._repository.update_application_status(
            application_id,
            status,
            expected_status=(
                current.status if self._settings.strict_status_transitions else None
            ),
        )
        if not updated:
            self._raise_write_failure(application_id)
        logger.info(
            "Application %s status %s -> %s", application_id, current.status, status
        )
        return self.get(application_id)

    def record_evaluation(
        self,
        current: Application,
        evaluation: Evaluation,
        new_status: str,
    ) -> Application:
        """Persist an evaluation computed against ``current``."""
        if self._settings.strict_status_transitions:
            validate_status_transition(current.status, new_status)
        self._ensure_allocation_preserved(current, new_status)
        saved = self._repository.save_evaluation(
            current.application_id,
            evaluation,
            new_status,
            expected_status=current.status,
        )
        if not saved:
            self._raise_write_failure(current.application_id)
        return self.get(current.application_id)

    def delete(self, application_id: str) -> None:
        # The binding comes from the deleted row itself, never from an earlier read.
        current = self._repository.delete_application(application_id)
        if current is None:
            raise NotFoundError(f"application {application_id} not found")
        logger.info("Application %s deleted", application_id)

        if not current.is_allocated:
            return
        if not self._settings.release_room_on_application_delete:
            logger.warning(
                "Application %s deleted while holding room %s in hostel %s; "
                "room occupancy left unchanged",
                application_id,
                current.room_id,
                current.hostel_id,
            )
            return
        try:
            released = self._repository.remove_resident(
                current.hostel_id,
                current.room_id,
                application_id,
            )
        except sqlite3.Error:
            logger.exception("Room release failed for deleted application %s", application_id)
            released = False
        if not released:
            report_inconsistency(
                logger,
                f"room {current.room_id} in hostel {current.hostel_id} still counts "
                f"deleted application {application_id}",
            )
            return
        logger.info(
            "Released room %s held by deleted application %s",
            current.room_id,
            application_id,
        )
