"""Configuration loading from environment variables."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, TypeVar

from .constants import (
    DEFAULT_CONTINUE_LISTENING_LIMIT,
    DEFAULT_PROGRESS_SAVE_EVERY_SECONDS,
    DEFAULT_RECENTLY_PLAYED_LIMIT,
    DEFAULT_RECENTLY_PLAYED_VIEW_LIMIT,
    DEFAULT_SKIP_STEP_SECONDS,
    DEFAULT_SYNC_INTERVAL_SECONDS,
    DEFAULT_TICK_INTERVAL_MS,
)

STORAGE_BACKENDS = ("json", "sqlite", "memory")

Number = TypeVar("Number", int, float)


@dataclass(frozen=True)
class AppConfig:
    log_level: str
    file_log_level: str
    log_dir: str
    log_file: str
    storage_backend: str
    storage_path: str
    api_url: str
    api_timeout_seconds: float
    sync_enabled: bool
    sync_interval_seconds: float
    recently_played_limit: int = DEFAULT_RECENTLY_PLAYED_LIMIT
    continue_listening_limit: int = DEFAULT_CONTINUE_LISTENING_LIMIT
    recently_played_view_limit: int = DEFAULT_RECENTLY_PLAYED_VIEW_LIMIT
    progress_save_every_seconds: int = DEFAULT_PROGRESS_SAVE_EVERY_SECONDS
    tick_interval_ms: int = DEFAULT_TICK_INTERVAL_MS
    skip_step_seconds: float = DEFAULT_SKIP_STEP_SECONDS


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def env_number(
    name: str,
    default: Number,
    cast: Callable[[str], Number],
    *,
    min_value: Optional[Number] = None,
    max_value: Optional[Number] = None,
) -> Number:
    """Read a numeric variable, falling back to ``default`` on bad input and clamping to bounds."""
    raw = os.getenv(name, "").strip()
    try:
        value = cast(raw) if raw else default
    except ValueError:
        value = default
    if min_value is not None and value < min_value:
        value = min_value
    if max_value is not None and value > max_value:
        value = max_value
    return value


def _env_path(name: str, default: str, base_dir: Path) -> str:
    value = Path(os.getenv(name, "").strip() or default)
    if not value.is_absolute():
        value = base_dir / value
    return str(value)


def load_config() -> AppConfig:
    base_dir = Path.cwd()
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    file_log_level = os.getenv("FILE_LOG_LEVEL", "DEBUG").upper()
    log_dir = _env_path("LOG_DIR", "logs", base_dir)
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(
        log_dir, f"story_player_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.log"
    )
    storage_backend = os.getenv("STORAGE_BACKEND", "json").strip().lower()
    if storage_backend not in STORAGE_BACKENDS:
        storage_backend = "json"
    default_storage = "data/storage.sqlite3" if storage_backend == "sqlite" else "data/storage.json"
    return AppConfig(
        log_level=log_level,
        file_log_level=file_log_level,
        log_dir=log_dir,
        log_file=log_file,
        storage_backend=storage_backend,
        storage_path=_env_path("STORAGE_PATH", default_storage, base_dir),
        api_url=os.getenv("API_URL", "http://localhost:5000/api").strip().rstrip("/"),
        api_timeout_seconds=env_number(
            "API_TIMEOUT_SECONDS", 10.0, float, min_value=0.0, max_value=300.0
        ),
        sync_enabled=_env_flag("SYNC_ENABLED", "1"),
        sync_interval_seconds=env_number(
            "SYNC_INTERVAL_SECONDS",
            DEFAULT_SYNC_INTERVAL_SECONDS,
            float,
            min_value=0.0,
            max_value=3600.0,
        ),
        recently_played_limit=env_number(
            "RECENTLY_PLAYED_LIMIT", DEFAULT_RECENTLY_PLAYED_LIMIT, int, min_value=1, max_value=200
        ),
        continue_listening_limit=env_number(
            "CONTINUE_LISTENING_LIMIT",
            DEFAULT_CONTINUE_LISTENING_LIMIT,
            int,
            min_value=0,
            max_value=200,
        ),
        recently_played_view_limit=env_number(
            "RECENTLY_PLAYED_VIEW_LIMIT",
            DEFAULT_RECENTLY_PLAYED_VIEW_LIMIT,
            int,
            min_value=0,
            max_value=200,
        ),
        progress_save_every_seconds=env_number(
            "PROGRESS_SAVE_EVERY_SECONDS",
            DEFAULT_PROGRESS_SAVE_EVERY_SECONDS,
            int,
            min_value=0,
            max_value=3600,
        ),
        tick_interval_ms=env_number(
            "TICK_INTERVAL_MS", DEFAULT_TICK_INTERVAL_MS, int, min_value=50, max_value=60000
        ),
        skip_step_seconds=env_number(
            "SKIP_STEP_SECONDS", DEFAULT_SKIP_STEP_SECONDS, float, min_value=1.0, max_value=600.0
        ),
    )
