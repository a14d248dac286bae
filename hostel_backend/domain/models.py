"""Domain models for hostels, rooms, applications and allocations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


GENDER_MALE = "male"
GENDER_FEMALE = "female"
GENDERS = (GENDER_MALE, GENDER_FEMALE)

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
APPLICATION_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)

RECOMMENDATIONS = ("recommended", "not_recommended", "reconsider")

DECISION_APPROVE = "approve"
DECISION_NOT_APPROVE = "not_approve"
FINAL_DECISIONS = (DECISION_APPROVE, DECISION_NOT_APPROVE)


@dataclass(frozen=True)
class Resident:
    """One bed in a room held by one application."""

    student_id: str
    display_name: str
    application_id: str
    registration_number: Optional[str]
    assigned_date: str
    email: Optional[str] = None
    phone: Optional[str] = None
    department: Optional[str] = None

    def to_dict(self) -> dict[str, Optional[str]]:
        return {
            "student_id": self.student_id,
            "display_name": self.display_name,
            "application_id": self.application_id,
            "registration_number": self.registration_number,
            "assigned_date": self.assigned_date,
            "email": self.email,
            "phone": self.phone,
            "department": self.department,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Resident":
        return cls(
            student_id=str(data["student_id"]),
            display_name=str(data.get("display_name") or ""),
            application_id=str(data["application_id"]),
            registration_number=data.get("registration_number"),
            assigned_date=str(data.get("assigned_date") or ""),
            email=data.get("email"),
            phone=data.get("phone"),
            department=data.get("department"),
        )


@dataclass(frozen=True)
class Hostel:
    hostel_id: str
    name: str
    gender: str
    total_rooms: int
    description: str
    created_at: str


@dataclass(frozen=True)
class Room:
    room_id: str
    hostel_id: str
    room_number: str
    floor: int
    capacity: int
    occupancy: int
    residents: tuple[Resident, ...]
    created_at: str

    @property
    def free_beds(self) -> int:
        return max(0, self.capacity - self.occupancy)

    @property
    def has_vacancy(self) -> bool:
        return self.occupancy < self.capacity


@dataclass(frozen=True)
class HostelWithRooms:
    hostel: Hostel
    rooms: tuple[Room, ...]


@dataclass(frozen=True)
class Evaluation:
    distance_marks: float
    income_marks: float
    special_reasons_parent_marks: float
    special_reasons_marks: float
    total_marks: float
    recommendation: Optional[str] = None
    final_decision: Optional[str] = None
    signature: Optional[str] = None
    checker: Optional[str] = None
    evaluated_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "distance_marks": self.distance_marks,
            "income_marks": self.income_marks,
            "special_reasons_parent_marks": self.special_reasons_parent_marks,
            "special_reasons_marks": self.special_reasons_marks,
            "total_marks": self.total_marks,
            "recommendation": self.recommendation,
            "final_decision": self.final_decision,
            "signature": self.signature,
            "checker": self.checker,
            "evaluated_at": self.evaluated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Evaluation":
        return cls(
            distance_marks=float(data.get("distance_marks", 0.0)),
            income_marks=float(data.get("income_marks", 0.0)),
            special_reasons_parent_marks=float(data.get("special_reasons_parent_marks", 0.0)),
            special_reasons_marks=float(data.get("special_reasons_marks", 0.0)),
            total_marks=float(data.get("total_marks", 0.0)),
            recommendation=data.get("recommendation"),
            final_decision=data.get("final_decision"),
            signature=data.get("signature"),
            checker=data.get("checker"),
            evaluated_at=data.get("evaluated_at"),
        )


@dataclass(frozen=True)
class Application:
    application_id: str
    student_id: str
    gender: str
    full_name: str
    status: str
    created_at: str
    payload: dict[str, Any] = field(default_factory=dict)
    evaluation: Optional[Evaluation] = None
    hostel_id: Optional[str] = None
    hostel_name: Optional[str] = None
    room_id: Optional[str] = None
    room_number: Optional[str] = None
    assigned_at: Optional[str] = None
    status_updated_at: Optional[str] = None

    @property
    def is_allocated(self) -> bool:
        return self.room_id is not None


@dataclass(frozen=True)
class AssignmentResult:
    application_id: str
    hostel_id: str
    hostel_name: str
    room_id: str
    room_number: str
    occupancy: int
    capacity: int
    assigned_at: str


@dataclass(frozen=True)
class ApplicationStats:
    pending: int
    approved: int
    rejected: int
    total: int
