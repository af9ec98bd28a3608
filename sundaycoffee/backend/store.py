"""Remote record service contract and implementations.

The remote store only offers point lookups, upserts and deletes keyed by
``(record_type, record_id)``. It has no queries and no multi-record
transactions.
"""

from __future__ import annotations

import copy
import json
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from sundaycoffee.backend.exceptions import RecordStoreError, RecordStoreUnavailable

SCHEMA_PATH = Path(__file__).with_name("db_schema.sql")


class RecordStore(Protocol):
    def ping(self) -> None:
        """Raise RecordStoreUnavailable when the store cannot be used."""

    def fetch(self, record_type: str, record_id: str) -> dict[str, Any] | None:
        """Return the record fields, or None when no such record exists."""

    def save(self, record_type: str, record_id: str, fields: dict[str, Any]) -> None:
        """Create or overwrite a record."""

    def delete(self, record_type: str, record_id: str) -> None:
        """Delete a record; deleting a missing record is not an error."""


@dataclass
class InMemoryRecordStore:
    records: dict[tuple[str, str], dict[str, Any]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def ping(self) -> None:
        return None

    def fetch(self, record_type: str, record_id: str) -> dict[str, Any] | None:
        with self._lock:
            fields = self.records.get((record_type, record_id))
            return copy.deepcopy(fields) if fields is not None else None

    def save(self, record_type: str, record_id: str, fields: dict[str, Any]) -> None:
        with self._lock:
            self.records[(record_type, record_id)] = copy.deepcopy(fields)

    def delete(self, record_type: str, record_id: str) -> None:
        with self._lock:
            self.records.pop((record_type, record_id), None)


@dataclass
class PostgresRecordStore:
    database_url: str

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    @contextmanager
    def _translated_errors(self, operation: str) -> Iterator[None]:
        import psycopg

        try:
            yield
        except psycopg.OperationalError as exc:
            raise RecordStoreUnavailable(f"{operation} failed: {exc}") from exc
        except psycopg.Error as exc:
            raise RecordStoreError(f"{operation} failed: {exc}") from exc

    def apply_schema(self) -> None:
        """Create the `records` table if it does not exist yet."""
        schema_sql = SCHEMA_PATH.read_text(encoding="utf-8")
        with self._translated_errors("apply schema"):
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(schema_sql, ())
                conn.commit()

    def ping(self) -> None:
        with self._translated_errors("ping"):
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1", ())

    def fetch(self, record_type: str, record_id: str) -> dict[str, Any] | None:
        from psycopg import errors

        with self._translated_errors(f"fetch {record_type}/{record_id}"):
            try:
                with self._connect() as conn:
                    with conn.cursor() as cur:
                        cur.execute(
                            """
                            SELECT fields
                            FROM records
                            WHERE record_type = %s AND record_id = %s
                            """,
                            (record_type, record_id),
                        )
                        row = cur.fetchone()
            except errors.UndefinedTable:
                # Nothing has ever been written to this store.
                return None

        if row is None:
            return None
        (fields,) = row
        return fields if isinstance(fields, dict) else json.loads(fields)

    def save(self, record_type: str, record_id: str, fields: dict[str, Any]) -> None:
        now = datetime.now(timezone.utc)
        with self._translated_errors(f"save {record_type}/{record_id}"):
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO records (record_type, record_id, fields, updated_at)
                        VALUES (%s, %s, %s::jsonb, %s)
                        ON CONFLICT (record_type, record_id)
                        DO UPDATE SET fields = EXCLUDED.fields, updated_at = EXCLUDED.updated_at
                        """,
                        (record_type, record_id, json.dumps(fields), now),
                    )
                conn.commit()

    def delete(self, record_type: str, record_id: str) -> None:
        with self._translated_errors(f"delete {record_type}/{record_id}"):
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        "DELETE FROM records WHERE record_type = %s AND record_id = %s",
                        (record_type, record_id),
                    )
                conn.commit()


def create_store(database_url: str | None) -> RecordStore | None:
    """Return the configured remote store, or None to run local-only."""
    if database_url:
        return PostgresRecordStore(database_url=database_url)
    return None
