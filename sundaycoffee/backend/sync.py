"""Reconciliation between the in-memory snapshot and the remote record store.

The remote store cannot list records, so rounds are discovered through a
hand-maintained index record. The index is only a cache of which round ids
exist: every refresh checks it against the round records themselves and
rewrites it when they disagree.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime

from sundaycoffee.backend.exceptions import RecordStoreError, RecordStoreUnavailable
from sundaycoffee.backend.models import (
    CURSOR_RECORD_ID,
    CURSOR_RECORD_TYPE,
    DEFAULT_MEMBERS,
    MEMBER_RECORD_TYPE,
    ROSTER_ORDER,
    ROUND_INDEX_RECORD_ID,
    ROUND_INDEX_RECORD_TYPE,
    ROUND_RECORD_TYPE,
    Member,
    RotationCursor,
    Round,
    RoundIndex,
    Snapshot,
)
from sundaycoffee.backend.records import (
    cursor_from_record,
    cursor_to_record,
    member_from_record,
    member_to_record,
    round_from_record,
    round_index_from_record,
    round_index_to_record,
    round_to_record,
)
from sundaycoffee.backend.state import build_initial_cursor, merge_with_default_roster, utc_now
from sundaycoffee.backend.store import RecordStore

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = "Remote store not available. Data is local only."


@dataclass(frozen=True)
class RefreshResult:
    snapshot: Snapshot | None
    error: str | None = None
    skipped: bool = False
    unavailable: bool = False

    @property
    def ok(self) -> bool:
        return self.snapshot is not None


class ReconciliationClient:
    def __init__(
        self,
        store: RecordStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self._clock = clock
        self._flag_lock = threading.Lock()
        self._refreshing = False

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing

    def check_available(self) -> bool:
        try:
            self.store.ping()
        except RecordStoreError as exc:
            logger.warning(f"Remote store unavailable: {exc}")
            return False
        return True

    def refresh(self, local: Snapshot) -> RefreshResult:
        """Merge remote state into a copy of ``local``.

        A refresh requested while another is running does nothing. On any
        remote failure the result carries an error and no snapshot.
        """
        with self._flag_lock:
            if self._refreshing:
                logger.info("Refresh already in flight, skipping")
                return RefreshResult(snapshot=None, skipped=True)
            self._refreshing = True

        try:
            members = self._reconcile_members()
            cursor = self._reconcile_cursor()
            rounds = self._reconcile_rounds(local.round_ids)
        except RecordStoreUnavailable as exc:
            logger.error(f"Refresh aborted, remote store unavailable: {exc}")
            return RefreshResult(snapshot=None, error=UNAVAILABLE_MESSAGE, unavailable=True)
        except RecordStoreError as exc:
            logger.error(f"Refresh aborted: {exc}")
            return RefreshResult(snapshot=None, error=str(exc))
        finally:
            with self._flag_lock:
                self._refreshing = False

        snapshot = replace(local, members=members, cursor=cursor, rounds=rounds, last_sync=self._clock())
        return RefreshResult(snapshot=snapshot)

    def _reconcile_members(self) -> tuple[Member, ...]:
        fetched: list[Member] = []
        for member_id in ROSTER_ORDER:
            fields = self.store.fetch(MEMBER_RECORD_TYPE, member_id)
            member = member_from_record(member_id, fields) if fields is not None else None
            if member is not None:
                fetched.append(member)

        if len(fetched) == len(DEFAULT_MEMBERS):
            return tuple(sorted(fetched, key=lambda member: member.roster_position))

        merged = merge_with_default_roster(fetched)
        logger.info(f"Remote roster has {len(fetched)} of {len(merged)} members, uploading merged roster")
        for member in merged:
            self.push_member(member)
        return merged

    def _reconcile_cursor(self) -> RotationCursor:
        fields = self.store.fetch(CURSOR_RECORD_TYPE, CURSOR_RECORD_ID)
        cursor = cursor_from_record(fields) if fields is not None else None
        if cursor is not None:
            return cursor

        cursor = build_initial_cursor(self._clock())
        logger.info("Remote rotation cursor missing, seeding initial cursor")
        self.push_cursor(cursor)
        return cursor

    def _reconcile_rounds(self, local_round_ids: Sequence[str]) -> tuple[Round, ...]:
        index = self._fetch_index()
        if index is None:
            candidates = list(local_round_ids)
            if candidates:
                logger.info(f"Round index missing, seeding it with {len(candidates)} locally known rounds")
                self._write_index(candidates)
        else:
            candidates = list(index.round_ids)

        resolved: list[Round] = []
        for round_id in dict.fromkeys(candidates):
            fields = self.store.fetch(ROUND_RECORD_TYPE, round_id)
            round_ = round_from_record(round_id, fields) if fields is not None else None
            if round_ is not None:
                resolved.append(round_)

        resolved_ids = [round_.id for round_ in resolved]
        if resolved_ids != candidates:
            logger.info(
                f"Round index listed {len(candidates)} ids but {len(resolved_ids)} resolved, rewriting index"
            )
            self._write_index(resolved_ids)

        return tuple(sorted(resolved, key=lambda round_: (round_.date, round_.id), reverse=True))

    def _fetch_index(self) -> RoundIndex | None:
        fields = self.store.fetch(ROUND_INDEX_RECORD_TYPE, ROUND_INDEX_RECORD_ID)
        return round_index_from_record(fields) if fields is not None else None

    def _write_index(self, round_ids: Iterable[str]) -> bool:
        index = RoundIndex(round_ids=tuple(round_ids), last_updated=self._clock())
        try:
            self.store.save(ROUND_INDEX_RECORD_TYPE, ROUND_INDEX_RECORD_ID, round_index_to_record(index))
        except RecordStoreError as exc:
            logger.warning(f"Error saving round index: {exc}")
            return False
        return True

    def push_round(self, round_: Round, known_round_ids: Sequence[str] = ()) -> bool:
        """Save a round, then append its id to the index.

        ``known_round_ids`` seeds the index when the store has none yet, so
        rounds recorded before the index existed stay discoverable.
        """
        try:
            self.store.save(ROUND_RECORD_TYPE, round_.id, round_to_record(round_))
        except RecordStoreError as exc:
            logger.warning(f"Error saving round {round_.id}: {exc}")
            return False

        try:
            index = self._fetch_index()
        except RecordStoreError as exc:
            logger.warning(f"Error reading round index: {exc}")
            return False

        if index is None:
            round_ids = [round_id for round_id in dict.fromkeys(known_round_ids) if round_id != round_.id]
        elif round_.id in index.round_ids:
            return True
        else:
            round_ids = list(index.round_ids)
        round_ids.append(round_.id)
        return self._write_index(round_ids)

    def push_member(self, member: Member) -> bool:
        try:
            self.store.save(MEMBER_RECORD_TYPE, member.id, member_to_record(member))
        except RecordStoreError as exc:
            logger.warning(f"Error saving member {member.id}: {exc}")
            return False
        return True

    def push_cursor(self, cursor: RotationCursor) -> bool:
        try:
            self.store.save(CURSOR_RECORD_TYPE, CURSOR_RECORD_ID, cursor_to_record(cursor))
        except RecordStoreError as exc:
            logger.warning(f"Error saving rotation cursor: {exc}")
            return False
        return True

    def reset_remote(self, known_round_ids: Iterable[str] = ()) -> bool:
        """Delete every managed record, then reseed the default roster and cursor."""
        round_ids = set(known_round_ids)
        try:
            index = self._fetch_index()
        except RecordStoreError as exc:
            logger.warning(f"Error reading round index during reset: {exc}")
            index = None
        if index is not None:
            round_ids.update(index.round_ids)

        for member_id in ROSTER_ORDER:
            self._delete_quietly(MEMBER_RECORD_TYPE, member_id)
        for round_id in sorted(round_ids):
            self._delete_quietly(ROUND_RECORD_TYPE, round_id)
        self._delete_quietly(CURSOR_RECORD_TYPE, CURSOR_RECORD_ID)
        self._delete_quietly(ROUND_INDEX_RECORD_TYPE, ROUND_INDEX_RECORD_ID)
        logger.info(f"Remote store wiped ({len(round_ids)} rounds), reseeding defaults")

        seeded = [self.push_member(member) for member in DEFAULT_MEMBERS]
        seeded.append(self.push_cursor(build_initial_cursor(self._clock())))
        return all(seeded)

    def _delete_quietly(self, record_type: str, record_id: str) -> None:
        try:
            self.store.delete(record_type, record_id)
        except RecordStoreError as exc:
            logger.warning(f"Error deleting {record_type}/{record_id}: {exc}")
