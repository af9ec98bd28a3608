"""Configuration helpers for backend runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class RotaSettings:
    cache_dir: Path
    database_url: str | None
    debounce_seconds: float
    retry_seconds: float
    host: str
    port: int
    log_level: str


def load_settings() -> RotaSettings:
    port_raw = os.getenv("SUNDAYCOFFEE_PORT", "8000")
    cache_raw = os.getenv("SUNDAYCOFFEE_CACHE_DIR", "~/.sundaycoffee")
    return RotaSettings(
        cache_dir=Path(cache_raw).expanduser(),
        database_url=os.getenv("SUNDAYCOFFEE_DATABASE_URL") or None,
        debounce_seconds=float(os.getenv("SUNDAYCOFFEE_DEBOUNCE_SECONDS", "2.0")),
        retry_seconds=float(os.getenv("SUNDAYCOFFEE_RETRY_SECONDS", "1.0")),
        host=os.getenv("SUNDAYCOFFEE_HOST", "127.0.0.1"),
        port=int(port_raw),
        log_level=os.getenv("SUNDAYCOFFEE_LOG_LEVEL", "INFO").upper(),
    )
