"""Runtime configuration resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    database_timeout_seconds: float
    room_min_capacity: int
    room_max_capacity: int
    evaluation_max_mark: float
    strict_status_transitions: bool
    release_room_on_application_delete: bool
    seed_demo_data: bool


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests derive variants with replace()."""
    return Settings(
        app_name=os.getenv("HOSTEL_APP_NAME", "Hostel Allocation Service"),
        app_version=os.getenv("HOSTEL_APP_VERSION", "1.0.0"),
        log_level=os.getenv("HOSTEL_LOG_LEVEL", "INFO"),
        database_path=Path(os.getenv("HOSTEL_DATABASE_PATH", "data/hostel.db")),
        database_timeout_seconds=float(
            os.getenv("HOSTEL_DATABASE_TIMEOUT_SECONDS", "5.0")
        ),
        room_min_capacity=1,
        room_max_capacity=4,
        evaluation_max_mark=100.0,
        strict_status_transitions=_env_bool("HOSTEL_STRICT_STATUS_TRANSITIONS", False),
        release_room_on_application_delete=_env_bool(
            "HOSTEL_RELEASE_ROOM_ON_DELETE", False
        ),
        seed_demo_data=_env_bool("HOSTEL_SEED_DEMO_DATA", False),
    )
