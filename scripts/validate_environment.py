#!/usr/bin/env python3
"""Validate local hostel allocation environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sqlite3
import sys
import tempfile
from dataclasses import replace
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from hostel_backend.repository.data_repository import DataRepository
from hostel_backend.services.allocation_service import AllocationService
from hostel_backend.services.application_service import ApplicationService
from hostel_backend.services.catalog_service import HostelCatalogService
from hostel_backend.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def _check_sqlite_json_support() -> None:
    """Room writes rely on json_insert('$[#]') and json_each inside UPDATE.

    Application deletes use DELETE ... RETURNING, available from SQLite 3.35.
    """
    if sqlite3.sqlite_version_info < (3, 35, 0):
        raise RuntimeError(f"SQLite >= 3.35 required, found {sqlite3.sqlite_version}")
    with sqlite3.connect(":memory:") as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT json_array_length(json_insert('[]', '$[#]', json('{\"a\": 1}')));"
        )
        length = int(cursor.fetchone()[0])
        if length != 1:
            raise RuntimeError(f"json_insert appended {length} items, expected 1")
        cursor.execute("SELECT COUNT(*) FROM json_each('[1, 2, 3]');")
        if int(cursor.fetchone()[0]) != 3:
            raise RuntimeError("json_each returned an unexpected row count")


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="hostel-env-")

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    from importlib.metadata import PackageNotFoundError, version

    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except (ImportError, PackageNotFoundError) as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 3: SQLite JSON functions
    try:
        _check_sqlite_json_support()
        ok, line = _print_result("SQLite " + sqlite3.sqlite_version + " JSON support", True)
    except (sqlite3.Error, RuntimeError) as exc:
        ok, line = _print_result("SQLite JSON support", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "hostel_validation.db",
        )
        repository = DataRepository(validation_settings)

        # CHECK 4: Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except RuntimeError as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Demo catalogue seeding
        catalog_service = HostelCatalogService(
            repository=repository,
            settings=validation_settings,
        )
        try:
            repository.seed_demo_data()
            catalogue = catalog_service.list_hostels_with_rooms()
            room_count = sum(len(entry.rooms) for entry in catalogue)
            if len(catalogue) != 2 or room_count != 8:
                raise RuntimeError(
                    f"expected 2 hostels and 8 rooms, got {len(catalogue)} and {room_count}"
                )
            ok, line = _print_result("Demo catalogue: 2 hostels, 8 rooms", True)
        except Exception as exc:
            ok, line = _print_result("Demo catalogue", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 6: Allocation round trip
        try:
            application_service = ApplicationService(
                repository=repository,
                settings=validation_settings,
            )
            allocation_service = AllocationService(
                repository=repository,
                catalog_service=catalog_service,
                settings=validation_settings,
            )
            application_id = application_service.submit(
                {"student_id": "env-check", "gender": "female", "full_name": "Env Check"}
            )
            application = application_service.set_status(application_id, "approved")
            hostel, room = next(iter(allocation_service.find_candidates(application)))
            result = allocation_service.assign(application, hostel, room)
            ok, line = _print_result(
                "Allocation round trip",
                True,
                f": {result.hostel_name} room {result.room_number}",
            )
        except Exception as exc:
            ok, line = _print_result("Allocation round trip", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Hostel Allocation Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
