from __future__ import annotations

from dataclasses import replace

import pytest

from hostel_backend.domain.errors import ConflictError, ValidationError
from hostel_backend.domain.models import Application
from hostel_backend.repository.data_repository import DataRepository
from hostel_backend.services.application_service import ApplicationService
from hostel_backend.services.evaluation_service import (
    EvaluationService,
    apply_evaluation,
    compute_total,
)
from hostel_backend.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str):
    base = get_settings()
    return replace(base, database_path=tmp_path / filename)


def _pending_application(**overrides) -> Application:
    values = {
        "application_id": "app-1",
        "student_id": "s-1",
        "gender": "female",
        "full_name": "Amara Perera",
        "status": "pending",
        "created_at": "2026-01-05T08:00:00+00:00",
    }
    values.update(overrides)
    return Application(**values)


def _build_services(tmp_path, filename: str):
    settings = _build_test_settings(tmp_path, filename)
    repository = DataRepository(settings)
    repository.initialize_database()
    application_service = ApplicationService(repository=repository, settings=settings)
    evaluation_service = EvaluationService(
        application_service=application_service,
        settings=settings,
    )
    return repository, application_service, evaluation_service


# --- compute_total ---

def test_total_sums_mixed_inputs() -> None:
    marks = {
        "distance_marks": "12.5",
        "income_marks": 30,
        "special_reasons_parent_marks": "",
        "special_reasons_marks": "13",
    }
    assert compute_total(marks) == 55.5


def test_total_treats_garbage_as_zero() -> None:
    marks = {
        "distance_marks": "abc",
        "income_marks": None,
        "special_reasons_parent_marks": "nan",
        "special_reasons_marks": 4,
    }
    assert compute_total(marks) == 4.0


def test_total_rounds_half_up_to_one_decimal() -> None:
    assert compute_total({"distance_marks": "0.05"}) == 0.1
    assert compute_total({"distance_marks": "10.25", "income_marks": "0"}) == 10.3


def test_total_handles_marks_beyond_default_decimal_precision() -> None:
    assert compute_total({"distance_marks": "1e30"}) == 1e30
    long_mark = "12345678901234567890123456789"
    assert compute_total({"income_marks": long_mark}) == float(long_mark)
    assert compute_total({"distance_marks": "1e400", "income_marks": "2"}) == 2.0


def test_oversized_mark_fails_bounds_not_rounding() -> None:
    with pytest.raises(ValidationError, match="distance_marks"):
        apply_evaluation(_pending_application(), {"distance_marks": "1e30"})


def test_total_accepts_camel_case_keys() -> None:
    marks = {"distanceMarks": "10", "incomeMarks": "20", "specialReasonsMarks": 5}
    assert compute_total(marks) == 35.0


# --- apply_evaluation ---

def test_approve_decision_moves_status_to_approved() -> None:
    updated, changed = apply_evaluation(
        _pending_application(),
        {
            "distance_marks": "12.5",
            "income_marks": 30,
            "special_reasons_parent_marks": "",
            "special_reasons_marks": "13",
            "final_decision": "approve",
        },
    )
    assert changed is True
    assert updated.status == "approved"
    assert updated.evaluation.total_marks == 55.5
    assert updated.evaluation.special_reasons_parent_marks == 0.0


def test_not_approve_decision_rejects() -> None:
    updated, changed = apply_evaluation(
        _pending_application(),
        {"income_marks": 10, "finalDecision": "not_approve"},
    )
    assert changed is True
    assert updated.status == "rejected"


def test_missing_decision_keeps_status() -> None:
    updated, changed = apply_evaluation(
        _pending_application(),
        {"income_marks": 10, "final_decision": "  "},
    )
    assert changed is False
    assert updated.status == "pending"
    assert updated.evaluation.final_decision is None


def test_evaluation_is_idempotent() -> None:
    marks = {"distance_marks": 40, "income_marks": 20.2, "final_decision": "approve"}
    first, _ = apply_evaluation(_pending_application(), marks, evaluated_at="t")
    second, changed = apply_evaluation(first, marks, evaluated_at="t")
    assert second == first
    assert changed is False


def test_mark_above_maximum_raises() -> None:
    with pytest.raises(ValidationError, match="income_marks"):
        apply_evaluation(_pending_application(), {"income_marks": 101})


def test_negative_mark_raises() -> None:
    with pytest.raises(ValidationError, match="distance_marks"):
        apply_evaluation(_pending_application(), {"distance_marks": "-1"})


def test_unknown_decision_raises() -> None:
    with pytest.raises(ValidationError, match="final_decision"):
        apply_evaluation(_pending_application(), {"final_decision": "maybe"})


def test_unknown_recommendation_raises() -> None:
    with pytest.raises(ValidationError, match="recommendation"):
        apply_evaluation(_pending_application(), {"recommendation": "strongly"})


# --- EvaluationService ---

def test_evaluate_persists_evaluation_and_status(tmp_path):
    _, application_service, evaluation_service = _build_services(tmp_path, "evaluate.db")
    application_id = application_service.submit(
        {"student_id": "s-1", "gender": "male", "full_name": "Kasun Silva"}
    )

    outcome = evaluation_service.evaluate(
        application_id,
        {
            "distance_marks": 25,
            "income_marks": "30.5",
            "recommendation": "recommended",
            "final_decision": "approve",
            "checker": " Warden ",
        },
    )

    assert outcome.status_changed is True
    assert outcome.allocation_required is True
    stored = application_service.get(application_id)
    assert stored.status == "approved"
    assert stored.evaluation.total_marks == 55.5
    assert stored.evaluation.recommendation == "recommended"
    assert stored.evaluation.checker == "Warden"
    assert stored.status_updated_at is not None


def test_partial_evaluation_keeps_pending(tmp_path):
    _, application_service, evaluation_service = _build_services(tmp_path, "partial.db")
    application_id = application_service.submit({"student_id": "s-2", "gender": "female"})

    outcome = evaluation_service.evaluate(application_id, {"distance_marks": 5})

    assert outcome.status_changed is False
    assert outcome.allocation_required is False
    stored = application_service.get(application_id)
    assert stored.status == "pending"
    assert stored.evaluation.total_marks == 5.0


def test_rejecting_allocated_application_conflicts(tmp_path):
    repository, application_service, evaluation_service = _build_services(
        tmp_path, "allocated_reject.db"
    )
    application_id = application_service.submit({"student_id": "s-3", "gender": "male"})
    application_service.set_status(application_id, "approved")
    assert repository.bind_application_to_room(
        application_id,
        hostel_id="h-1",
        hostel_name="North Hall",
        room_id="r-1",
        room_number="101",
        assigned_at="2026-01-06T10:00:00+00:00",
    )

    with pytest.raises(ConflictError):
        evaluation_service.evaluate(application_id, {"final_decision": "not_approve"})

    stored = application_service.get(application_id)
    assert stored.status == "approved"
    assert stored.room_id == "r-1"
    assert stored.evaluation is None


def test_total_for_camel_case_form_submission() -> None:
    marks = {
        "distanceMarks": "40",
        "incomeMarks": "",
        "specialReasonsParentMarks": "10.5",
        "specialReasonsMarks": "5",
    }
    assert compute_total(marks) == 55.5
