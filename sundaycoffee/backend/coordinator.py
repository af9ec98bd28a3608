"""Mutation coordinator: the single owner of the in-memory roster snapshot.

Every mutation is applied under one lock, written to the local cache, and
published to subscribers before the call returns. Remote propagation runs as
background jobs whose outcome comes back through the same lock.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from typing import Any

from sundaycoffee.backend.cache import FileBlobStore, LocalCache
from sundaycoffee.backend.config import RotaSettings
from sundaycoffee.backend.engine import advance_cursor, select_payer
from sundaycoffee.backend.exceptions import UnknownMember
from sundaycoffee.backend.models import Member, Round, RosterView, Snapshot, SyncStatus
from sundaycoffee.backend.scheduler import Debouncer, TimerFactory, thread_timer
from sundaycoffee.backend.state import build_initial_snapshot, utc_now
from sundaycoffee.backend.store import create_store
from sundaycoffee.backend.sync import UNAVAILABLE_MESSAGE, ReconciliationClient, RefreshResult

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = "Remote store not configured. Data is local only."

Subscriber = Callable[[RosterView], None]


class RosterCoordinator:
    def __init__(
        self,
        cache: LocalCache,
        client: ReconciliationClient | None,
        executor: Executor | None = None,
        timer_factory: TimerFactory = thread_timer,
        debounce_seconds: float = 2.0,
        retry_seconds: float = 1.0,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()).upper(),
    ) -> None:
        self.cache = cache
        self.client = client
        self._executor = executor if executor is not None else ThreadPoolExecutor(max_workers=1)
        self._clock = clock
        self._id_factory = id_factory
        self._lock = threading.RLock()
        self._subscribers: list[Subscriber] = []
        self._snapshot = cache.load_snapshot()
        self._generation = 0
        self._refreshes_in_flight = 0
        self._sync = SyncStatus(
            remote_available=client is not None,
            last_error=None if client is not None else NOT_CONFIGURED_MESSAGE,
        )
        self._debouncer = Debouncer(debounce_seconds, self._run_debounced_refresh, timer_factory)
        self._retrier = Debouncer(retry_seconds, self._run_retry_refresh, timer_factory)

    # Observable state

    @property
    def snapshot(self) -> Snapshot:
        with self._lock:
            return self._snapshot

    @property
    def view(self) -> RosterView:
        with self._lock:
            return RosterView(snapshot=self._snapshot, sync=self._sync)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a callback for every published view; returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            with self._lock:
                if subscriber in self._subscribers:
                    self._subscribers.remove(subscriber)

        return unsubscribe

    def _publish(self) -> None:
        view = RosterView(snapshot=self._snapshot, sync=self._sync)
        for subscriber in list(self._subscribers):
            try:
                subscriber(view)
            except Exception:
                logger.exception("Subscriber failed while handling roster update")

    def _commit(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        self._generation += 1
        self.cache.save_snapshot(snapshot)
        self._publish()

    def _set_sync(self, **changes: Any) -> None:
        self._sync = replace(self._sync, **changes)
        self._publish()

    # Lifecycle

    def start(self) -> None:
        """Check the remote store and run the first refresh when it is reachable."""
        if self.client is None:
            logger.info("No remote store configured, running local-only")
            return
        if not self.client.check_available():
            with self._lock:
                self._set_sync(remote_available=False, last_error=UNAVAILABLE_MESSAGE)
            return
        with self._lock:
            self._set_sync(remote_available=True, last_error=None)
        self.refresh()

    def close(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        self._debouncer.cancel()
        self._retrier.cancel()

    # Operations

    def register_local_identity(self, member_id: str) -> None:
        with self._lock:
            if self._snapshot.member(member_id) is None:
                raise UnknownMember(member_id)
            self._snapshot = replace(self._snapshot, current_user_id=member_id)
            self.cache.save_current_user(member_id)
            self._publish()

    def select_payer(self, attendee_ids: Iterable[str]) -> Member | None:
        with self._lock:
            snapshot = self._snapshot
        wanted = set(attendee_ids)
        attendees = [member for member in snapshot.members if member.id in wanted]
        if not attendees:
            return None
        return select_payer(attendees, snapshot.cursor.cursor)

    def record_round(self, payer_id: str, attendee_ids: Sequence[str]) -> Round:
        """Record a paid round locally and propagate it in the background.

        Never fails because of the remote store; local state always advances.
        """
        with self._lock:
            now = self._clock()
            round_ = Round(id=self._id_factory(), date=now, payer_id=payer_id, attendee_ids=tuple(attendee_ids))
            attended = set(round_.attendee_ids)

            members: list[Member] = []
            changed: list[Member] = []
            for member in self._snapshot.members:
                updated = member
                if member.id == payer_id:
                    updated = replace(updated, rounds_paid=updated.rounds_paid + 1, last_paid_date=now)
                if member.id in attended:
                    updated = replace(updated, rounds_attended=updated.rounds_attended + 1)
                members.append(updated)
                if updated is not member:
                    changed.append(updated)

            previous_cursor = self._snapshot.cursor
            cursor = advance_cursor(previous_cursor, payer_id, now)
            snapshot = replace(
                self._snapshot,
                members=tuple(members),
                rounds=(round_,) + self._snapshot.rounds,
                cursor=cursor,
            )
            self._commit(snapshot)
            logger.info(f"Recorded round {round_.id} paid by {payer_id} for {len(attended)} attendees")

        client = self.client
        if client is not None:
            known_round_ids = snapshot.round_ids
            steps: list[tuple[str, Callable[[], bool]]] = [
                (f"round {round_.id}", lambda: client.push_round(round_, known_round_ids)),
            ]
            steps.extend((f"member {member.id}", lambda member=member: client.push_member(member)) for member in changed)
            if cursor is not previous_cursor:
                steps.append(("rotation cursor", lambda: client.push_cursor(cursor)))
            self._submit(steps)
        return round_

    def update_counter(self, member_id: str, value: int) -> Member:
        with self._lock:
            member = self._snapshot.member(member_id)
            if member is None:
                raise UnknownMember(member_id)
            updated = replace(member, fired_or_pips_last_week=max(0, value))
            members = tuple(updated if candidate.id == member_id else candidate for candidate in self._snapshot.members)
            self._commit(replace(self._snapshot, members=members))

        client = self.client
        if client is not None:
            self._submit([(f"member {member_id}", lambda: client.push_member(updated))])
        return updated

    def reset(self) -> None:
        """Clear history and restore the default roster here and on the remote store."""
        with self._lock:
            known_round_ids = self._snapshot.round_ids
            self.cache.clear()
            self._commit(build_initial_snapshot(self._clock(), current_user_id=self._snapshot.current_user_id))
            logger.info(f"Reset roster, discarding {len(known_round_ids)} rounds")

        client = self.client
        if client is not None:
            self._submit([("remote reset", lambda: client.reset_remote(known_round_ids))])

    # Remote propagation

    def _submit(self, steps: list[tuple[str, Callable[[], bool]]]) -> None:
        self._executor.submit(self._propagate, steps)

    def _propagate(self, steps: list[tuple[str, Callable[[], bool]]]) -> None:
        failed = [label for label, step in steps if not step()]
        with self._lock:
            if failed:
                self._set_sync(last_error=f"Could not sync {', '.join(failed)}")
            elif self._sync.last_error is not None or not self._sync.remote_available:
                self._set_sync(last_error=None, remote_available=True)
        self.schedule_refresh()

    def schedule_refresh(self) -> None:
        """Refresh after the debounce window, replacing any pending refresh."""
        if self.client is None:
            return
        self._debouncer.trigger()

    def _run_debounced_refresh(self) -> None:
        if self.client is not None and self.client.is_refreshing:
            self._retrier.trigger()
            return
        self.refresh()

    def _run_retry_refresh(self) -> None:
        self.refresh()

    def refresh(self) -> RefreshResult:
        client = self.client
        if client is None:
            return RefreshResult(snapshot=None, error=NOT_CONFIGURED_MESSAGE, unavailable=True)
        if client.is_refreshing:
            return RefreshResult(snapshot=None, skipped=True)

        with self._lock:
            local = self._snapshot
            generation = self._generation
            self._refreshes_in_flight += 1
            self._set_sync(is_syncing=True)

        try:
            result = client.refresh(local)
        finally:
            with self._lock:
                self._refreshes_in_flight -= 1
                self._sync = replace(self._sync, is_syncing=self._refreshes_in_flight > 0)

        stale = False
        with self._lock:
            if result.skipped:
                self._publish()
            elif result.snapshot is None:
                self._set_sync(last_error=result.error, remote_available=not result.unavailable)
            elif generation != self._generation:
                # Built from a snapshot that a local mutation has since replaced.
                stale = True
                self._set_sync(last_error=None, remote_available=True)
            else:
                self._sync = replace(self._sync, last_error=None, remote_available=True)
                self._commit(replace(result.snapshot, current_user_id=self._snapshot.current_user_id))

        if stale:
            logger.info("Local roster changed during refresh, discarding the merged result")
            self.schedule_refresh()
            return RefreshResult(snapshot=None, skipped=True)
        return result


def create_coordinator(settings: RotaSettings) -> RosterCoordinator:
    store = create_store(settings.database_url)
    client = ReconciliationClient(store) if store is not None else None
    return RosterCoordinator(
        cache=LocalCache(FileBlobStore(settings.cache_dir)),
        client=client,
        debounce_seconds=settings.debounce_seconds,
        retry_seconds=settings.retry_seconds,
    )
