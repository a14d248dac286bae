"""Evaluation scoring and the decision-to-status mapping."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any, Mapping, Optional

from hostel_backend.domain.errors import ValidationError
from hostel_backend.domain.models import (
    DECISION_APPROVE,
    DECISION_NOT_APPROVE,
    FINAL_DECISIONS,
    RECOMMENDATIONS,
    STATUS_APPROVED,
    STATUS_REJECTED,
    Application,
    Evaluation,
)
from hostel_backend.services.application_service import ApplicationService
from hostel_backend.utils.config import Settings, get_settings
from hostel_backend.utils.logger import get_logger


logger = get_logger(__name__)

MARK_FIELDS = (
    "distance_marks",
    "income_marks",
    "special_reasons_parent_marks",
    "special_reasons_marks",
)

_CAMEL_CASE_ALIASES = {
    "distance_marks": "distanceMarks",
    "income_marks": "incomeMarks",
    "special_reasons_parent_marks": "specialReasonsParentMarks",
    "special_reasons_marks": "specialReasonsMarks",
    "final_decision": "finalDecision",
}

_ONE_DECIMAL = Decimal("0.1")

# Wide enough to hold four float-range marks at one decimal place.
_TOTAL_PRECISION = 400


def _lookup(data: Mapping[str, Any], key: str) -> Any:
    if key in data:
        return data[key]
    alias = _CAMEL_CASE_ALIASES.get(key)
    if alias is not None:
        return data.get(alias)
    return None


def _parse_mark(value: Any) -> Decimal:
    """Parse one mark; anything missing or unparseable counts as zero."""
    if value is None or isinstance(value, bool):
        return Decimal(0)
    if isinstance(value, (int, float, Decimal)):
        text = str(value)
    elif isinstance(value, str):
        text = value.strip()
    else:
        return Decimal(0)
    if not text:
        return Decimal(0)
    try:
        number = Decimal(text)
    except InvalidOperation:
        return Decimal(0)
    if not number.is_finite() or not math.isfinite(float(number)):
        return Decimal(0)
    return number


def compute_total(marks: Mapping[str, Any]) -> float:
    """Sum the four marks and round half-up to one decimal place."""
    with localcontext() as context:
        context.prec = _TOTAL_PRECISION
        total = sum(
            (_parse_mark(_lookup(marks, field_name)) for field_name in MARK_FIELDS),
            Decimal(0),
        )
        return float(total.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


def _optional_choice(value: Any, allowed: tuple[str, ...], field_name: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be one of {', '.join(allowed)}")
    normalized = value.strip()
    if not normalized:
        return None
    if normalized not in allowed:
        raise ValidationError(f"{field_name} must be one of {', '.join(allowed)}")
    return normalized


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def apply_evaluation(
    application: Application,
    marks_and_meta: Mapping[str, Any],
    *,
    max_mark: float = 100.0,
    evaluated_at: Optional[str] = None,
) -> tuple[Application, bool]:
    """Attach a freshly scored evaluation and derive the resulting status.

    ``approve`` yields ``approved``, ``not_approve`` yields ``rejected`` and
    an absent decision keeps the current status, so partial evaluations can
    be saved. Returns the updated application and whether its status moved.
    """
    marks: dict[str, float] = {}
    for field_name in MARK_FIELDS:
        mark = _parse_mark(_lookup(marks_and_meta, field_name))
        if not Decimal(0) <= mark <= Decimal(str(max_mark)):
            raise ValidationError(f"{field_name} must be between 0 and {max_mark:g}")
        marks[field_name] = float(mark)

    final_decision = _optional_choice(
        _lookup(marks_and_meta, "final_decision"), FINAL_DECISIONS, "final_decision"
    )
    evaluation = Evaluation(
        total_marks=compute_total(marks_and_meta),
        recommendation=_optional_choice(
            marks_and_meta.get("recommendation"), RECOMMENDATIONS, "recommendation"
        ),
        final_decision=final_decision,
        signature=_optional_text(marks_and_meta.get("signature")),
        checker=_optional_text(marks_and_meta.get("checker")),
        evaluated_at=evaluated_at or datetime.now(timezone.utc).isoformat(),
        **marks,
    )

    if final_decision == DECISION_APPROVE:
        new_status = STATUS_APPROVED
    elif final_decision == DECISION_NOT_APPROVE:
        new_status = STATUS_REJECTED
    else:
        new_status = application.status

    updated = replace(application, evaluation=evaluation, status=new_status)
    return updated, new_status != application.status


@dataclass(frozen=True)
class EvaluationOutcome:
    application: Application
    status_changed: bool
    allocation_required: bool


class EvaluationService:
    """Scores an application and persists the evaluation with its status."""

    def __init__(
        self,
        application_service: ApplicationService,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._application_service = application_service

    def evaluate(
        self,
        application_id: str,
        marks_and_meta: Mapping[str, Any],
    ) -> EvaluationOutcome:
        current = self._application_service.get(application_id)
        scored, status_changed = apply_evaluation(
            current,
            marks_and_meta,
            max_mark=self._settings.evaluation_max_mark,
        )
        saved = self._application_service.record_evaluation(
            current,
            scored.evaluation,
            scored.status,
        )
        logger.info(
            "Application %s evaluated: total=%s decision=%s status=%s",
            application_id,
            scored.evaluation.total_marks,
            scored.evaluation.final_decision,
            saved.status,
        )
        return EvaluationOutcome(
            application=saved,
            status_changed=status_changed,
            allocation_required=saved.status == STATUS_APPROVED and not saved.is_allocated,
        )
