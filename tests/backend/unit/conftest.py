from __future__ import annotations

from concurrent.futures import Future
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from sundaycoffee.backend.cache import InMemoryBlobStore, LocalCache
from sundaycoffee.backend.coordinator import RosterCoordinator
from sundaycoffee.backend.exceptions import RecordStoreError
from sundaycoffee.backend.store import InMemoryRecordStore
from sundaycoffee.backend.sync import ReconciliationClient


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 10, 4, 9, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int = 1) -> None:
        self.now = self.now + timedelta(minutes=minutes)


class ImmediateExecutor:
    def __init__(self) -> None:
        self.submitted = 0

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        self.submitted += 1
        future: Future = Future()
        future.set_result(fn(*args))
        return future

    def shutdown(self, wait: bool = True) -> None:
        return None


class DeferredExecutor:
    """Queues submitted jobs until `run_all` is called."""

    def __init__(self) -> None:
        self.jobs: list[tuple[Callable[..., Any], tuple[Any, ...]]] = []

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        self.jobs.append((fn, args))
        return Future()

    def run_all(self) -> None:
        while self.jobs:
            fn, args = self.jobs.pop(0)
            fn(*args)

    def shutdown(self, wait: bool = True) -> None:
        return None


class ManualTimer:
    def __init__(self, delay: float, action: Callable[[], None]) -> None:
        self.delay = delay
        self.action = action
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.cancelled or self.fired:
            return
        self.fired = True
        self.action()


class ManualTimers:
    def __init__(self) -> None:
        self.created: list[ManualTimer] = []

    def __call__(self, delay: float, action: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay, action)
        self.created.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [timer for timer in self.created if timer.started and not timer.cancelled and not timer.fired]


class FlakyRecordStore(InMemoryRecordStore):
    """In-memory store that raises for chosen operations."""

    def __init__(self) -> None:
        super().__init__()
        self.failures: dict[tuple[str, str | None], Exception] = {}
        self.saves: list[tuple[str, str]] = []
        self.before_fetch: Callable[[str, str], None] | None = None

    def fail(self, operation: str, record_type: str | None = None, error: Exception | None = None) -> None:
        self.failures[(operation, record_type)] = error or RecordStoreError(f"{operation} failed")

    def _check(self, operation: str, record_type: str) -> None:
        error = self.failures.get((operation, record_type)) or self.failures.get((operation, None))
        if error is not None:
            raise error

    def ping(self) -> None:
        self._check("ping", "")

    def fetch(self, record_type: str, record_id: str) -> dict[str, Any] | None:
        if self.before_fetch is not None:
            self.before_fetch(record_type, record_id)
        self._check("fetch", record_type)
        return super().fetch(record_type, record_id)

    def save(self, record_type: str, record_id: str, fields: dict[str, Any]) -> None:
        self._check("save", record_type)
        self.saves.append((record_type, record_id))
        super().save(record_type, record_id, fields)

    def delete(self, record_type: str, record_id: str) -> None:
        self._check("delete", record_type)
        super().delete(record_type, record_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def deferred_executor() -> DeferredExecutor:
    return DeferredExecutor()


@pytest.fixture
def remote() -> FlakyRecordStore:
    return FlakyRecordStore()


@pytest.fixture
def client(remote: FlakyRecordStore, clock: FakeClock) -> ReconciliationClient:
    return ReconciliationClient(remote, clock=clock)


@pytest.fixture
def make_coordinator(clock: FakeClock, timers: ManualTimers) -> Callable[..., RosterCoordinator]:
    counter = iter(range(1, 10_000))

    def build(
        client: ReconciliationClient | None,
        blobs: InMemoryBlobStore | None = None,
        executor: Any = None,
    ) -> RosterCoordinator:
        return RosterCoordinator(
            cache=LocalCache(blobs if blobs is not None else InMemoryBlobStore()),
            client=client,
            executor=executor if executor is not None else ImmediateExecutor(),
            timer_factory=timers,
            debounce_seconds=2.0,
            retry_seconds=0.5,
            clock=clock,
            id_factory=lambda: f"ROUND-{next(counter)}",
        )

    return build
