from __future__ import annotations

import importlib
from dataclasses import replace

from fastapi import FastAPI
from fastapi.testclient import TestClient

from hostel_backend.controllers.allocation_controller import router as allocation_router
from hostel_backend.controllers.application_controller import router as application_router
from hostel_backend.controllers.hostel_controller import router as hostel_router
from hostel_backend.repository.data_repository import DataRepository
from hostel_backend.services.allocation_service import AllocationService
from hostel_backend.services.application_service import ApplicationService
from hostel_backend.services.catalog_service import HostelCatalogService
from hostel_backend.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(base, database_path=tmp_path / filename)


def _build_test_app(tmp_path) -> tuple[FastAPI, DataRepository]:
    settings = _build_test_settings(tmp_path, "api_flow.db")
    repository = DataRepository(settings)
    repository.initialize_database()

    catalog_service = HostelCatalogService(repository=repository, settings=settings)
    application_service = ApplicationService(repository=repository, settings=settings)
    allocation_service = AllocationService(
        repository=repository,
        catalog_service=catalog_service,
        settings=settings,
    )

    app = FastAPI()
    app.include_router(hostel_router)
    app.include_router(application_router)
    app.include_router(allocation_router)
    app.state.catalog_service = catalog_service
    app.state.application_service = application_service
    app.state.allocation_service = allocation_service
    return app, repository


def test_submit_evaluate_assign_end_to_end(tmp_path):
    app, repository = _build_test_app(tmp_path)
    client = TestClient(app)

    hostel_response = client.post(
        "/hostels",
        json={"name": "Lakeside Hall", "gender": "female", "total_rooms": 1},
    )
    assert hostel_response.status_code == 201
    hostel_id = hostel_response.json()["hostel_id"]

    room_response = client.post(
        f"/hostels/{hostel_id}/rooms",
        json={"room_number": "101", "capacity": 1, "floor": 1},
    )
    assert room_response.status_code == 201
    room_id = room_response.json()["room_id"]

    submit_response = client.post(
        "/applications",
        json={
            "student_id": "s-1",
            "gender": "female",
            "full_name": "Amara Perera",
            "email": "amara@example.edu",
            "registrationNumber": "REG-1",
        },
    )
    assert submit_response.status_code == 201
    application_id = submit_response.json()["application_id"]

    evaluation_response = client.put(
        f"/applications/{application_id}/evaluation",
        json={
            "distance_marks": "40",
            "income_marks": "",
            "special_reasons_parent_marks": "10.5",
            "special_reasons_marks": 5,
            "final_decision": "approve",
        },
    )
    assert evaluation_response.status_code == 200
    evaluation_body = evaluation_response.json()
    assert evaluation_body["allocation_required"] is True
    assert evaluation_body["application"]["status"] == "approved"
    assert evaluation_body["application"]["evaluation"]["total_marks"] == 55.5

    candidates_response = client.get(f"/applications/{application_id}/candidates")
    assert candidates_response.status_code == 200
    hostels = candidates_response.json()["hostels"]
    assert [hostel["hostel_id"] for hostel in hostels] == [hostel_id]
    assert [room["room_id"] for room in hostels[0]["rooms"]] == [room_id]

    assign_response = client.post(
        f"/applications/{application_id}/assignment",
        json={"hostel_id": hostel_id, "room_id": room_id},
    )
    assert assign_response.status_code == 200
    assert assign_response.json()["occupancy"] == 1

    assignment_response = client.get(f"/applications/{application_id}/assignment")
    assert assignment_response.json()["assigned"] is True
    assert assignment_response.json()["room_number"] == "101"

    hostel_detail = client.get(f"/hostels/{hostel_id}").json()
    (room,) = hostel_detail["rooms"]
    assert room["occupancy"] == 1
    assert room["free_beds"] == 0
    assert room["residents"][0]["registration_number"] == "REG-1"

    # Full room, second applicant
    second_id = client.post(
        "/applications",
        json={"student_id": "s-2", "gender": "female"},
    ).json()["application_id"]
    assert client.put(
        f"/applications/{second_id}/status", json={"status": "approved"}
    ).status_code == 200
    assert client.get(f"/applications/{second_id}/candidates").json()["hostels"] == []
    conflict = client.post(
        f"/applications/{second_id}/assignment",
        json={"hostel_id": hostel_id, "room_id": room_id},
    )
    assert conflict.status_code == 409

    assert client.delete(f"/hostels/{hostel_id}/rooms/{room_id}").status_code == 409
    assert repository.get_room(hostel_id, room_id).occupancy == 1

    stats = client.get("/applications/stats").json()
    assert stats == {"pending": 0, "approved": 2, "rejected": 0, "total": 2}


def test_error_mapping(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    bad_gender = client.post(
        "/hostels",
        json={"name": "Oak", "gender": "mixed", "total_rooms": 2},
    )
    assert bad_gender.status_code == 400

    hostel_id = client.post(
        "/hostels",
        json={"name": "Oak", "gender": "male", "total_rooms": 2},
    ).json()["hostel_id"]
    too_big = client.post(
        f"/hostels/{hostel_id}/rooms",
        json={"room_number": "101", "capacity": 5, "floor": 1},
    )
    assert too_big.status_code == 400

    assert client.get("/hostels/does-not-exist").status_code == 404
    assert client.get("/applications/does-not-exist").status_code == 404
    assert client.delete("/applications/does-not-exist").status_code == 404
    assert client.get("/applications", params={"status": "archived"}).status_code == 400

    gender_change = client.patch(f"/hostels/{hostel_id}", json={"gender": "female"})
    assert gender_change.status_code == 409

    pending_id = client.post(
        "/applications",
        json={"student_id": "s-1", "gender": "male"},
    ).json()["application_id"]
    bad_mark = client.put(
        f"/applications/{pending_id}/evaluation",
        json={"income_marks": 150},
    )
    assert bad_mark.status_code == 400

    room_id = client.post(
        f"/hostels/{hostel_id}/rooms",
        json={"room_number": "101", "capacity": 2, "floor": 1},
    ).json()["room_id"]
    not_approved = client.post(
        f"/applications/{pending_id}/assignment",
        json={"hostel_id": hostel_id, "room_id": room_id},
    )
    assert not_approved.status_code == 409

    assert client.delete(f"/hostels/{hostel_id}/rooms/{room_id}").status_code == 204
    assert client.delete(f"/hostels/{hostel_id}").status_code == 204
    assert client.get("/hostels").json() == []


def test_student_listing_and_search(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    client.post(
        "/applications",
        json={"student_id": "s-1", "gender": "male", "full_name": "Kasun Silva"},
    )
    client.post(
        "/applications",
        json={"student_id": "s-2", "gender": "female", "full_name": "Amara Perera"},
    )

    mine = client.get("/students/s-1/applications").json()
    assert [application["full_name"] for application in mine] == ["Kasun Silva"]
    found = client.get("/applications", params={"search": "amara"}).json()
    assert [application["student_id"] for application in found] == ["s-2"]


def test_application_factory_runs_startup(monkeypatch, tmp_path):
    monkeypatch.setenv("HOSTEL_DATABASE_PATH", str(tmp_path / "factory.db"))
    monkeypatch.setenv("HOSTEL_SEED_DEMO_DATA", "true")
    get_settings.cache_clear()
    try:
        app_module = importlib.import_module("app")
        application = app_module.create_app(get_settings())
        with TestClient(application) as client:
            hostels = client.get("/hostels").json()
    finally:
        get_settings.cache_clear()

    assert sorted(hostel["gender"] for hostel in hostels) == ["female", "male"]
    assert sum(len(hostel["rooms"]) for hostel in hostels) == 8
