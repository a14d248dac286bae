"""Domain-level validation rules for the hostel catalogue and applications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from hostel_backend.domain.errors import ConflictError, ValidationError
from hostel_backend.domain.models import (
    APPLICATION_STATUSES,
    GENDERS,
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
)


# Used only when strict transitions are enabled; same-status writes are always allowed.
ALLOWED_STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_APPROVED, STATUS_REJECTED}),
    STATUS_APPROVED: frozenset({STATUS_REJECTED}),
    STATUS_REJECTED: frozenset({STATUS_APPROVED}),
}


@dataclass(frozen=True)
class RoomConstraints:
    min_capacity: int
    max_capacity: int


def _coerce_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as exc:
            raise ValidationError(f"{field_name} must be an integer") from exc
    raise ValidationError(f"{field_name} must be an integer")


def validate_gender(value: Any) -> str:
    if not isinstance(value, str) or value.strip().lower() not in GENDERS:
        raise ValidationError(f"gender must be one of {', '.join(GENDERS)}")
    return value.strip().lower()


def validate_name(value: Any, field_name: str = "name") -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} must be a non-empty string")
    return value.strip()


def validate_total_rooms(value: Any) -> int:
    total_rooms = _coerce_int(value, "total_rooms")
    if total_rooms <= 0:
        raise ValidationError("total_rooms must be a positive integer")
    return total_rooms


def validate_room_capacity(value: Any, constraints: RoomConstraints) -> int:
    capacity = _coerce_int(value, "capacity")
    if not constraints.min_capacity <= capacity <= constraints.max_capacity:
        raise ValidationError(
            f"capacity must be between {constraints.min_capacity} "
            f"and {constraints.max_capacity}"
        )
    return capacity


def validate_floor(value: Any) -> int:
    floor = _coerce_int(value, "floor")
    if floor <= 0:
        raise ValidationError("floor must be a positive integer")
    return floor


def validate_status(value: Any) -> str:
    if value not in APPLICATION_STATUSES:
        raise ValidationError(
            f"status must be one of {', '.join(APPLICATION_STATUSES)}"
        )
    return value


def validate_status_transition(current: str, new: str) -> None:
    """Reject moves missing from the transition table."""
    if current == new:
        return
    if new not in ALLOWED_STATUS_TRANSITIONS.get(current, frozenset()):
        raise ConflictError(f"status transition {current} -> {new} is not allowed")
