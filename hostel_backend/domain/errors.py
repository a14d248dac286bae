"""Typed failures shared by the catalogue, application and allocation services."""

from __future__ import annotations


class HostelServiceError(Exception):
    """Base class for caller-facing failures."""


class ValidationError(HostelServiceError):
    """Raised when caller input violates a static constraint."""


class NotFoundError(HostelServiceError):
    """Raised when a referenced hostel, room or application does not exist."""


class ConflictError(HostelServiceError):
    """Raised when current persisted state forbids the requested change."""


class InconsistencyWarning(UserWarning):
    """Operator-facing signal that a compensating write did not complete.

    Never surfaced to end users; the affected documents need manual
    reconciliation.
    """
