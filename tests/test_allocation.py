from __future__ import annotations

import sqlite3
import threading
from dataclasses import replace

import pytest

from hostel_backend.domain.errors import ConflictError, InconsistencyWarning, NotFoundError
from hostel_backend.repository.data_repository import DataRepository
from hostel_backend.services.allocation_service import AllocationService
from hostel_backend.services.application_service import ApplicationService
from hostel_backend.services.catalog_service import HostelCatalogService
from hostel_backend.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str):
    base = get_settings()
    return replace(base, database_path=tmp_path / filename)


def _build_services(tmp_path, filename: str):
    settings = _build_test_settings(tmp_path, filename)
    repository = DataRepository(settings)
    repository.initialize_database()
    catalog = HostelCatalogService(repository=repository, settings=settings)
    applications = ApplicationService(repository=repository, settings=settings)
    allocation = AllocationService(
        repository=repository,
        catalog_service=catalog,
        settings=settings,
    )
    return repository, catalog, applications, allocation


def _approved(
    applications: ApplicationService,
    student_id: str,
    gender: str = "female",
    **payload,
):
    application_id = applications.submit(
        {
            "student_id": student_id,
            "gender": gender,
            "full_name": f"Student {student_id}",
            **payload,
        }
    )
    return applications.set_status(application_id, "approved")


def test_two_bed_room_fills_then_rejects(tmp_path):
    repository, catalog, applications, allocation = _build_services(tmp_path, "scenario.db")
    hostel_id = catalog.create_hostel("H", "female", 1)
    room_id = catalog.add_room(hostel_id, "R1", capacity=2, floor=1)
    first = _approved(applications, "a1")

    candidates = list(allocation.find_candidates(first))
    assert [(hostel.hostel_id, room.room_id) for hostel, room in candidates] == [
        (hostel_id, room_id)
    ]

    hostel, room = candidates[0]
    result = allocation.assign(first, hostel, room)
    assert (result.occupancy, result.capacity) == (1, 2)

    stored_room = repository.get_room(hostel_id, room_id)
    assert stored_room.occupancy == 1
    assert [r.application_id for r in stored_room.residents] == [first.application_id]
    stored_first = applications.get(first.application_id)
    assert stored_first.hostel_id == hostel_id
    assert stored_first.hostel_name == "H"
    assert stored_first.room_id == room_id
    assert stored_first.room_number == "R1"
    assert stored_first.assigned_at == result.assigned_at

    second = _approved(applications, "a2")
    assert allocation.assign_by_ids(second.application_id, hostel_id, room_id).occupancy == 2

    third = _approved(applications, "a3")
    with pytest.raises(ConflictError):
        allocation.assign_by_ids(third.application_id, hostel_id, room_id)

    final_room = repository.get_room(hostel_id, room_id)
    assert final_room.occupancy == 2
    assert len(final_room.residents) == final_room.occupancy
    assert applications.get(third.application_id).is_allocated is False
    assert list(allocation.find_candidates(third)) == []


def test_resident_carries_contact_fields(tmp_path):
    repository, catalog, applications, allocation = _build_services(tmp_path, "resident.db")
    hostel_id = catalog.create_hostel("H", "male", 1)
    room_id = catalog.add_room(hostel_id, "101", capacity=2, floor=1)
    application = _approved(
        applications,
        "s-9",
        gender="male",
        registrationNumber="REG-2026-09",
        email="s9@example.edu",
        mobile_number="0771234567",
        department="Physics",
    )

    allocation.assign_by_ids(application.application_id, hostel_id, room_id)

    (resident,) = repository.get_room(hostel_id, room_id).residents
    assert resident.student_id == "s-9"
    assert resident.display_name == "Student s-9"
    assert resident.registration_number == "REG-2026-09"
    assert resident.email == "s9@example.edu"
    assert resident.phone == "0771234567"
    assert resident.department == "Physics"


def test_preconditions_are_checked_before_any_write(tmp_path):
    repository, catalog, applications, allocation = _build_services(tmp_path, "preconditions.db")
    female_hostel = catalog.create_hostel("Lakeside", "female", 1)
    female_room = catalog.add_room(female_hostel, "101", capacity=2, floor=1)
    male_hostel = catalog.create_hostel("North", "male", 1)
    male_room = catalog.add_room(male_hostel, "101", capacity=2, floor=1)

    pending_id = applications.submit({"student_id": "p-1", "gender": "female"})
    with pytest.raises(ConflictError, match="only approved"):
        allocation.assign_by_ids(pending_id, female_hostel, female_room)

    applicant = _approved(applications, "f-1")
    with pytest.raises(ConflictError, match="male students"):
        allocation.assign_by_ids(applicant.application_id, male_hostel, male_room)

    with pytest.raises(ConflictError, match="does not belong"):
        allocation.assign(
            applicant,
            catalog.get_hostel(female_hostel),
            catalog.get_room(male_hostel, male_room),
        )

    with pytest.raises(NotFoundError):
        allocation.assign_by_ids(applicant.application_id, female_hostel, male_room)
    with pytest.raises(NotFoundError):
        allocation.assign_by_ids("does-not-exist", female_hostel, female_room)

    assert repository.get_room(female_hostel, female_room).occupancy == 0
    assert repository.get_room(male_hostel, male_room).occupancy == 0


def test_already_allocated_application_is_rejected(tmp_path):
    repository, catalog, applications, allocation = _build_services(tmp_path, "twice.db")
    hostel_id = catalog.create_hostel("H", "female", 2)
    first_room = catalog.add_room(hostel_id, "101", capacity=2, floor=1)
    second_room = catalog.add_room(hostel_id, "102", capacity=2, floor=1)
    applicant = _approved(applications, "a1")

    allocation.assign_by_ids(applicant.application_id, hostel_id, first_room)
    with pytest.raises(ConflictError, match="already assigned"):
        allocation.assign_by_ids(applicant.application_id, hostel_id, second_room)

    # Stale snapshot: the application looks unassigned but the room already holds it.
    with pytest.raises(ConflictError):
        allocation.assign(
            applicant,
            catalog.get_hostel(hostel_id),
            catalog.get_room(hostel_id, first_room),
        )
    assert repository.get_room(hostel_id, first_room).occupancy == 1
    assert repository.get_room(hostel_id, second_room).occupancy == 0


def test_concurrent_assign_on_last_bed(tmp_path):
    repository, catalog, applications, allocation = _build_services(tmp_path, "race.db")
    hostel_id = catalog.create_hostel("H", "female", 1)
    room_id = catalog.add_room(hostel_id, "101", capacity=1, floor=1)
    hostel = catalog.get_hostel(hostel_id)
    room = catalog.get_room(hostel_id, room_id)
    contenders = [_approved(applications, "a1"), _approved(applications, "a2")]

    barrier = threading.Barrier(len(contenders))
    successes: list[str] = []
    conflicts: list[ConflictError] = []
    lock = threading.Lock()

    def _attempt(application):
        barrier.wait()
        try:
            result = allocation.assign(application, hostel, room)
        except ConflictError as exc:
            with lock:
                conflicts.append(exc)
        else:
            with lock:
                successes.append(result.application_id)

    threads = [threading.Thread(target=_attempt, args=(app,)) for app in contenders]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert len(successes) == 1
    assert len(conflicts) == 1
    final_room = repository.get_room(hostel_id, room_id)
    assert final_room.occupancy == 1
    assert [r.application_id for r in final_room.residents] == successes
    allocated = [a for a in applications.list_applications() if a.is_allocated]
    assert [a.application_id for a in allocated] == successes


def test_bind_error_rolls_back_room(monkeypatch, tmp_path):
    repository, catalog, applications, allocation = _build_services(tmp_path, "bind_error.db")
    hostel_id = catalog.create_hostel("H", "female", 1)
    room_id = catalog.add_room(hostel_id, "101", capacity=2, floor=1)
    applicant = _approved(applications, "a1")

    def _broken_bind(*args, **kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(repository, "bind_application_to_room", _broken_bind)

    with pytest.raises(sqlite3.OperationalError):
        allocation.assign_by_ids(applicant.application_id, hostel_id, room_id)

    room = repository.get_room(hostel_id, room_id)
    assert room.occupancy == 0
    assert room.residents == ()
    assert applications.get(applicant.application_id).is_allocated is False


def test_status_change_between_read_and_bind_rolls_back(tmp_path):
    repository, catalog, applications, allocation = _build_services(tmp_path, "stale.db")
    hostel_id = catalog.create_hostel("H", "female", 1)
    room_id = catalog.add_room(hostel_id, "101", capacity=2, floor=1)
    snapshot = _approved(applications, "a1")
    applications.set_status(snapshot.application_id, "rejected")

    with pytest.raises(ConflictError, match="rejected"):
        allocation.assign(
            snapshot,
            catalog.get_hostel(hostel_id),
            catalog.get_room(hostel_id, room_id),
        )

    assert repository.get_room(hostel_id, room_id).occupancy == 0


def test_deleted_application_rolls_back_room(tmp_path):
    repository, catalog, applications, allocation = _build_services(tmp_path, "deleted.db")
    hostel_id = catalog.create_hostel("H", "female", 1)
    room_id = catalog.add_room(hostel_id, "101", capacity=2, floor=1)
    snapshot = _approved(applications, "a1")
    applications.delete(snapshot.application_id)

    with pytest.raises(NotFoundError):
        allocation.assign(
            snapshot,
            catalog.get_hostel(hostel_id),
            catalog.get_room(hostel_id, room_id),
        )

    room = repository.get_room(hostel_id, room_id)
    assert room.occupancy == 0
    assert room.residents == ()


def test_failed_rollback_emits_inconsistency_warning(monkeypatch, tmp_path):
    repository, catalog, applications, allocation = _build_services(tmp_path, "orphan.db")
    hostel_id = catalog.create_hostel("H", "female", 1)
    room_id = catalog.add_room(hostel_id, "101", capacity=2, floor=1)
    applicant = _approved(applications, "a1")

    monkeypatch.setattr(repository, "bind_application_to_room", lambda *a, **k: False)
    monkeypatch.setattr(repository, "remove_resident", lambda *a, **k: False)

    with pytest.warns(InconsistencyWarning, match="orphaned bed"):
        with pytest.raises(ConflictError):
            allocation.assign_by_ids(applicant.application_id, hostel_id, room_id)

    # The room knows more than the application, never the reverse.
    assert repository.get_room(hostel_id, room_id).occupancy == 1
    assert applications.get(applicant.application_id).is_allocated is False


def test_room_vanishing_after_write_warns(monkeypatch, tmp_path):
    repository, catalog, applications, allocation = _build_services(tmp_path, "vanished.db")
    hostel_id = catalog.create_hostel("H", "female", 1)
    room_id = catalog.add_room(hostel_id, "101", capacity=2, floor=1)
    hostel = catalog.get_hostel(hostel_id)
    room = catalog.get_room(hostel_id, room_id)
    applicant = _approved(applications, "a1")

    monkeypatch.setattr(repository, "get_room", lambda *a, **k: None)

    with pytest.warns(InconsistencyWarning, match="vanished"):
        with pytest.raises(ConflictError):
            allocation.assign(applicant, hostel, room)

    assert applications.get(applicant.application_id).is_allocated is False
