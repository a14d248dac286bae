"""Repository layer responsible for all database access.

Rows in ``Hostels``, ``Rooms`` and ``Applications`` are treated as documents:
every mutating method below is one statement against one row, so callers get
per-document atomicity and nothing more. Room residents live inside the room
row as a JSON array.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
from uuid import uuid4

from hostel_backend.domain.models import (
    APPLICATION_STATUSES,
    Application,
    Evaluation,
    Hostel,
    Resident,
    Room,
)
from hostel_backend.utils.config import Settings, get_settings
from hostel_backend.utils.logger import get_logger


logger = get_logger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid4().hex


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(
            self._db_path,
            timeout=self._settings.database_timeout_seconds,
        )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Hostels (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        gender TEXT NOT NULL CHECK (gender IN ('male', 'female')),
                        total_rooms INTEGER NOT NULL CHECK (total_rooms > 0),
                        description TEXT NOT NULL DEFAULT '',
                        created_at TEXT NOT NULL
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Rooms (
                        id TEXT PRIMARY KEY,
                        hostel_id TEXT NOT NULL,
                        room_number TEXT NOT NULL,
                        floor INTEGER NOT NULL CHECK (floor > 0),
                        capacity INTEGER NOT NULL CHECK (capacity BETWEEN 1 AND 4),
                        occupancy INTEGER NOT NULL DEFAULT 0
                            CHECK (occupancy >= 0 AND occupancy <= capacity),
                        residents TEXT NOT NULL DEFAULT '[]',
                        created_at TEXT NOT NULL,
                        FOREIGN KEY (hostel_id) REFERENCES Hostels(id) ON DELETE CASCADE
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Applications (
                        id TEXT PRIMARY KEY,
                        student_id TEXT NOT NULL,
                        gender TEXT NOT NULL,
                        full_name TEXT NOT NULL DEFAULT '',
                        payload TEXT NOT NULL DEFAULT '{}',
                        status TEXT NOT NULL DEFAULT 'pending',
                        evaluation TEXT,
                        hostel_id TEXT,
                        hostel_name TEXT,
                        room_id TEXT,
                        room_number TEXT,
                        assigned_at TEXT,
                        created_at TEXT NOT NULL,
                        status_updated_at TEXT
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_rooms_hostel
                    ON Rooms(hostel_id);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_hostels_gender
                    ON Hostels(gender);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_applications_status_created
                    ON Applications(status, created_at);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_applications_student
                    ON Applications(student_id);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self) -> None:
        """Seed one hostel per gender with a few rooms only when the catalogue is empty."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM Hostels;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Hostel catalogue already present; skipping seed")
                    return

                hostels = [
                    (_new_id(), "North Hall", "male", 4, "Male undergraduate hostel"),
                    (_new_id(), "Lakeside Hall", "female", 4, "Female undergraduate hostel"),
                ]
                created_at = _utc_now()
                cursor.executemany(
                    """
                    INSERT INTO Hostels (id, name, gender, total_rooms, description, created_at)
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    [(*hostel, created_at) for hostel in hostels],
                )

                rooms = []
                for hostel_id, _, _, total_rooms, _ in hostels:
                    for index in range(total_rooms):
                        floor = 1 + index // 2
                        rooms.append(
                            (
                                _new_id(),
                                hostel_id,
                                f"{floor}{index % 2 + 1:02d}",
                                floor,
                                2 if index % 2 == 0 else 4,
                                created_at,
                            )
                        )
                cursor.executemany(
                    """
                    INSERT INTO Rooms (id, hostel_id, room_number, floor, capacity, created_at)
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    rooms,
                )
                conn.commit()
            logger.info("Demo seed completed with %s hostels and %s rooms", len(hostels), len(rooms))
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo data seeding failed: {exc}") from exc

    # Hostels

    @staticmethod
    def _row_to_hostel(row: sqlite3.Row) -> Hostel:
        return Hostel(
            hostel_id=str(row["id"]),
            name=str(row["name"]),
            gender=str(row["gender"]),
            total_rooms=int(row["total_rooms"]),
            description=str(row["description"] or ""),
            created_at=str(row["created_at"]),
        )

    def create_hostel(
        self,
        name: str,
        gender: str,
        total_rooms: int,
        description: str,
    ) -> str:
        hostel_id = _new_id()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO Hostels (id, name, gender, total_rooms, description, created_at)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (hostel_id, name, gender, total_rooms, description, _utc_now()),
            )
            conn.commit()
        return hostel_id

    def get_hostel(self, hostel_id: str) -> Optional[Hostel]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Hostels WHERE id = ?;", (hostel_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return self._row_to_hostel(row)

    def list_hostels(self, gender: Optional[str] = None) -> list[Hostel]:
        with self._connect() as conn:
            cursor = conn.cursor()
            if gender is None:
                cursor.execute("SELECT * FROM Hostels ORDER BY created_at ASC, name ASC;")
            else:
                cursor.execute(
                    """
                    SELECT * FROM Hostels
                    WHERE gender = ?
                    ORDER BY created_at ASC, name ASC;
                    """,
                    (gender,),
                )
            return [self._row_to_hostel(row) for row in cursor.fetchall()]

    def update_hostel(
        self,
        hostel_id: str,
        *,
        name: Optional[str] = None,
        total_rooms: Optional[int] = None,
        description: Optional[str] = None,
    ) -> bool:
        """Write only the given fields; gender is never written here."""
        fields = {"name": name, "total_rooms": total_rooms, "description": description}
        assignments = [(column, value) for column, value in fields.items() if value is not None]
        if not assignments:
            return self.get_hostel(hostel_id) is not None
        set_sql = ", ".join(f"{column} = ?" for column, _ in assignments)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"UPDATE Hostels SET {set_sql} WHERE id = ?;",
                (*(value for _, value in assignments), hostel_id),
            )
            conn.commit()
            return cursor.rowcount == 1

    def delete_hostel(self, hostel_id: str) -> bool:
        """Delete the hostel; rooms go with it through the cascading foreign key."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM Hostels WHERE id = ?;", (hostel_id,))
            conn.commit()
            return cursor.rowcount == 1

    # Rooms

    @staticmethod
    def _row_to_room(row: sqlite3.Row) -> Room:
        residents = tuple(
            Resident.from_dict(entry) for entry in json.loads(row["residents"] or "[]")
        )
        return Room(
            room_id=str(row["id"]),
            hostel_id=str(row["hostel_id"]),
            room_number=str(row["room_number"]),
            floor=int(row["floor"]),
            capacity=int(row["capacity"]),
            occupancy=int(row["occupancy"]),
            residents=residents,
            created_at=str(row["created_at"]),
        )

    def create_room(
        self,
        hostel_id: str,
        room_number: str,
        floor: int,
        capacity: int,
    ) -> Optional[str]:
        """Insert an empty room; returns None when the hostel no longer exists."""
        room_id = _new_id()
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO Rooms (id, hostel_id, room_number, floor, capacity, created_at)
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    (room_id, hostel_id, room_number, floor, capacity, _utc_now()),
                )
                conn.commit()
        except sqlite3.IntegrityError:
            logger.warning("Room insert rejected; hostel %s is gone", hostel_id)
            return None
        return room_id

    def get_room(self, hostel_id: str, room_id: str) -> Optional[Room]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM Rooms WHERE id = ? AND hostel_id = ?;",
                (room_id, hostel_id),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return self._row_to_room(row)

    def list_rooms(self, hostel_id: str, vacant_only: bool = False) -> list[Room]:
        with self._connect() as conn:
            cursor = conn.cursor()
            vacancy_clause = "AND occupancy < capacity" if vacant_only else ""
            cursor.execute(
                f"""
                SELECT * FROM Rooms
                WHERE hostel_id = ?
                {vacancy_clause}
                ORDER BY floor ASC, room_number ASC, id ASC;
                """,
                (hostel_id,),
            )
            return [self._row_to_room(row) for row in cursor.fetchall()]

    def delete_room_if_empty(self, hostel_id: str, room_id: str) -> bool:
        """Delete the room only while it has no occupants, in one statement."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                DELETE FROM Rooms
                WHERE id = ? AND hostel_id = ? AND occupancy = 0;
                """,
                (room_id, hostel_id),
            )
            conn.commit()
            return cursor.rowcount == 1

    def add_resident_if_vacant(
        self,
        hostel_id: str,
        room_id: str,
        resident: Resident,
    ) -> bool:
        """Increment occupancy and append the resident if a bed is still free.

        The capacity check, the increment and the append are one conditional
        update, so two concurrent callers cannot both take the last bed. A
        resident already holding a bed for the same application is not added
        twice.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE Rooms
                SET occupancy = occupancy + 1,
                    residents = json_insert(residents, '$[#]', json(?))
                WHERE id = ?
                  AND hostel_id = ?
                  AND occupancy < capacity
                  AND NOT EXISTS (
                      SELECT 1 FROM json_each(Rooms.residents) AS entry
                      WHERE json_extract(entry.value, '$.application_id') = ?
                  );
                """,
                (
                    json.dumps(resident.to_dict()),
                    room_id,
                    hostel_id,
                    resident.application_id,
                ),
            )
            conn.commit()
            return cursor.rowcount == 1

    def remove_resident(self, hostel_id: str, room_id: str, application_id: str) -> bool:
        """Drop the resident held by ``application_id`` and decrement occupancy."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE Rooms
                SET occupancy = occupancy - 1,
                    residents = (
                        SELECT json_group_array(json(entry.value))
                        FROM json_each(Rooms.residents) AS entry
                        WHERE json_extract(entry.value, '$.application_id') IS NOT ?
                    )
                WHERE id = ?
                  AND hostel_id = ?
                  AND EXISTS (
                      SELECT 1 FROM json_each(Rooms.residents) AS entry
                      WHERE json_extract(entry.value, '$.application_id') = ?
                  );
                """,
                (application_id, room_id, hostel_id, application_id),
            )
            conn.commit()
            return cursor.rowcount == 1

    # Applications

    @staticmethod
    def _row_to_application(row: sqlite3.Row) -> Application:
        evaluation_raw = row["evaluation"]
        return Application(
            application_id=str(row["id"]),
            student_id=str(row["student_id"]),
            gender=str(row["gender"]),
            full_name=str(row["full_name"] or ""),
            status=str(row["status"]),
            created_at=str(row["created_at"]),
            payload=json.loads(row["payload"] or "{}"),
            evaluation=(
                Evaluation.from_dict(json.loads(evaluation_raw))
                if evaluation_raw
                else None
            ),
            hostel_id=row["hostel_id"],
            hostel_name=row["hostel_name"],
            room_id=row["room_id"],
            room_number=row["room_number"],
            assigned_at=row["assigned_at"],
            status_updated_at=row["status_updated_at"],
        )

    def create_application(
        self,
        student_id: str,
        gender: str,
        full_name: str,
        payload: dict[str, Any],
    ) -> str:
        application_id = _new_id()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO Applications (
                    id,
                    student_id,
                    gender,
                    full_name,
                    payload,
                    status,
                    created_at
                )
                VALUES (?, ?, ?, ?, ?, 'pending', ?);
                """,
                (
                    application_id,
                    student_id,
                    gender,
                    full_name,
                    json.dumps(payload, default=str),
                    _utc_now(),
                ),
            )
            conn.commit()
        return application_id

    def get_application(self, application_id: str) -> Optional[Application]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Applications WHERE id = ?;", (application_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return self._row_to_application(row)

    def list_applications(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[Application]:
        """Return applications newest first, optionally filtered."""
        clauses: list[str] = []
        params: list[Any] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if search:
            pattern = f"%{_escape_like(search.strip().lower())}%"
            clauses.append(
                """
                (
                    lower(full_name) LIKE ? ESCAPE '\\'
                    OR lower(COALESCE(json_extract(payload, '$.email'), '')) LIKE ? ESCAPE '\\'
                    OR lower(COALESCE(json_extract(payload, '$.university'), '')) LIKE ? ESCAPE '\\'
                )
                """
            )
            params.extend([pattern, pattern, pattern])
        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT * FROM Applications
                {where_sql}
                ORDER BY created_at DESC, rowid DESC;
                """,
                tuple(params),
            )
            return [self._row_to_application(row) for row in cursor.fetchall()]

    def list_applications_for_student(self, student_id: str) -> list[Application]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT * FROM Applications
                WHERE student_id = ?
                ORDER BY created_at DESC, rowid DESC;
                """,
                (student_id,),
            )
            return [self._row_to_application(row) for row in cursor.fetchall()]

    def count_applications_by_status(self) -> dict[str, int]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT status, COUNT(*) AS count
                FROM Applications
                GROUP BY status;
                """
            )
            counts = {status: 0 for status in APPLICATION_STATUSES}
            for row in cursor.fetchall():
                counts[str(row["status"])] = int(row["count"])
            return counts

    def update_application_status(
        self,
        application_id: str,
        new_status: str,
        *,
        expected_status: Optional[str] = None,
    ) -> bool:
        """Write a new status unless it would orphan an existing room binding.

        An allocated application may only be (re)written as ``approved``.
        ``expected_status`` turns the write into a compare-and-swap.
        """
        params: list[Any] = [new_status, _utc_now(), application_id, new_status]
        expected_clause = ""
        if expected_status is not None:
            expected_clause = "AND status = ?"
            params.append(expected_status)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                UPDATE Applications
                SET status = ?, status_updated_at = ?
                WHERE id = ?
                  AND (room_id IS NULL OR ? = 'approved')
                  {expected_clause};
                """,
                tuple(params),
            )
            conn.commit()
            return cursor.rowcount == 1

    def save_evaluation(
        self,
        application_id: str,
        evaluation: Evaluation,
        new_status: str,
        *,
        expected_status: str,
    ) -> bool:
        """Persist the evaluation and resulting status as one document write."""
        status_changed = new_status != expected_status
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE Applications
                SET evaluation = ?,
                    status = ?,
                    status_updated_at = CASE WHEN ? THEN ? ELSE status_updated_at END
                WHERE id = ?
                  AND status = ?
                  AND (room_id IS NULL OR ? = 'approved');
                """,
                (
                    json.dumps(evaluation.to_dict()),
                    new_status,
                    1 if status_changed else 0,
                    _utc_now(),
                    application_id,
                    expected_status,
                    new_status,
                ),
            )
            conn.commit()
            return cursor.rowcount == 1

    def bind_application_to_room(
        self,
        application_id: str,
        *,
        hostel_id: str,
        hostel_name: str,
        room_id: str,
        room_number: str,
        assigned_at: str,
    ) -> bool:
        """Record the room on an approved, not yet allocated application."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE Applications
                SET hostel_id = ?,
                    hostel_name = ?,
                    room_id = ?,
                    room_number = ?,
                    assigned_at = ?
                WHERE id = ?
                  AND status = 'approved'
                  AND room_id IS NULL;
                """,
                (
                    hostel_id,
                    hostel_name,
                    room_id,
                    room_number,
                    assigned_at,
                    application_id,
                ),
            )
            conn.commit()
            return cursor.rowcount == 1

    def delete_application(self, application_id: str) -> Optional[Application]:
        """Delete the application and return the row as it was at deletion."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM Applications WHERE id = ? RETURNING *;",
                (application_id,),
            )
            row = cursor.fetchone()
            conn.commit()
            if row is None:
                return None
            return self._row_to_application(row)

