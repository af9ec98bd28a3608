"""Backend package for the Sunday Coffee roster engine."""

from .cache import FileBlobStore, InMemoryBlobStore, LocalCache
from .config import RotaSettings, load_settings
from .coordinator import RosterCoordinator, create_coordinator
from .engine import advance_cursor, select_payer
from .state import build_initial_snapshot
from .store import InMemoryRecordStore, PostgresRecordStore, RecordStore, create_store
from .sync import ReconciliationClient, RefreshResult

__all__ = [
    "advance_cursor",
    "build_initial_snapshot",
    "create_coordinator",
    "create_store",
    "FileBlobStore",
    "InMemoryBlobStore",
    "InMemoryRecordStore",
    "load_settings",
    "LocalCache",
    "PostgresRecordStore",
    "ReconciliationClient",
    "RecordStore",
    "RefreshResult",
    "RosterCoordinator",
    "RotaSettings",
    "select_payer",
]
