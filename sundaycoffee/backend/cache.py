"""Local durable cache of the roster snapshot over an opaque blob store."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Protocol

from sundaycoffee.backend.models import ROSTER_ORDER, Member, Snapshot
from sundaycoffee.backend.records import (
    cursor_from_blob,
    cursor_to_blob,
    decode_datetime,
    encode_datetime,
    member_from_blob,
    member_to_blob,
    round_from_blob,
    round_to_blob,
)
from sundaycoffee.backend.state import build_initial_cursor, merge_with_default_roster

logger = logging.getLogger(__name__)

PARTICIPANTS_KEY = "participants"
ROSTER_STATE_KEY = "rosterState"
ROUNDS_KEY = "coffeeRounds"
CURRENT_USER_KEY = "currentUserID"
LAST_SYNC_KEY = "lastSyncDate"

SNAPSHOT_KEYS = (PARTICIPANTS_KEY, ROSTER_STATE_KEY, ROUNDS_KEY, CURRENT_USER_KEY, LAST_SYNC_KEY)


class BlobStore(Protocol):
    def get(self, key: str) -> str | None:
        """Return the blob stored under key, or None."""

    def set(self, key: str, value: str) -> None:
        """Store a blob under key, replacing any previous value."""

    def remove(self, key: str) -> None:
        """Forget key; missing keys are ignored."""


@dataclass
class InMemoryBlobStore:
    blobs: dict[str, str] = field(default_factory=dict)

    def get(self, key: str) -> str | None:
        return self.blobs.get(key)

    def set(self, key: str, value: str) -> None:
        self.blobs[key] = value

    def remove(self, key: str) -> None:
        self.blobs.pop(key, None)


@dataclass
class FileBlobStore:
    """One JSON file per key inside ``directory``."""

    directory: Path

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(value, encoding="utf-8")
        tmp_path.replace(path)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def encode_snapshot(snapshot: Snapshot) -> dict[str, str | None]:
    """Return the blob text of every facet; None marks a facet with nothing to store."""
    return {
        PARTICIPANTS_KEY: _dump([member_to_blob(member) for member in snapshot.members]),
        ROSTER_STATE_KEY: _dump(cursor_to_blob(snapshot.cursor)),
        ROUNDS_KEY: _dump([round_to_blob(round_) for round_ in snapshot.rounds]),
        CURRENT_USER_KEY: snapshot.current_user_id,
        LAST_SYNC_KEY: _dump(encode_datetime(snapshot.last_sync)) if snapshot.last_sync else None,
    }


@dataclass
class LocalCache:
    blobs: BlobStore

    def load_snapshot(self) -> Snapshot:
        """Read every facet independently; unreadable facets fall back to defaults."""
        raw_members = self._load_json(PARTICIPANTS_KEY)
        members: list[Member] = []
        if isinstance(raw_members, list):
            members = [member for member in map(member_from_blob, raw_members) if member is not None]

        raw_rounds = self._load_json(ROUNDS_KEY)
        rounds = []
        if isinstance(raw_rounds, list):
            rounds = [round_ for round_ in map(round_from_blob, raw_rounds) if round_ is not None]

        cursor = cursor_from_blob(self._load_json(ROSTER_STATE_KEY)) or build_initial_cursor()
        last_sync = decode_datetime(self._load_json(LAST_SYNC_KEY))
        current_user_id = self._load_text(CURRENT_USER_KEY)

        return Snapshot(
            members=merge_with_default_roster(members),
            rounds=tuple(rounds),
            cursor=cursor,
            last_sync=last_sync,
            current_user_id=current_user_id if current_user_id in ROSTER_ORDER else None,
        )

    def save_snapshot(self, snapshot: Snapshot) -> None:
        for key, value in encode_snapshot(snapshot).items():
            if value is None:
                self._attempt(key, lambda key=key: self.blobs.remove(key))
            else:
                self._attempt(key, lambda key=key, value=value: self.blobs.set(key, value))

    def save_current_user(self, member_id: str) -> None:
        self._attempt(CURRENT_USER_KEY, lambda: self.blobs.set(CURRENT_USER_KEY, member_id))

    def clear(self) -> None:
        """Forget the roster, history, cursor and sync stamp but keep the local identity."""
        for key in (PARTICIPANTS_KEY, ROSTER_STATE_KEY, ROUNDS_KEY, LAST_SYNC_KEY):
            self._attempt(key, lambda key=key: self.blobs.remove(key))

    def _load_text(self, key: str) -> str | None:
        try:
            return self.blobs.get(key)
        except OSError as exc:
            logger.warning(f"Could not read cached {key}: {exc}")
            return None

    def _load_json(self, key: str) -> Any:
        text = self._load_text(key)
        if text is None:
            return None
        try:
            return json.loads(text)
        except ValueError as exc:
            logger.warning(f"Ignoring unreadable cached {key}: {exc}")
            return None

    def _attempt(self, key: str, operation: Callable[[], None]) -> None:
        try:
            operation()
        except OSError as exc:
            logger.warning(f"Could not persist {key} locally: {exc}")
