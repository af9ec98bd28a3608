"""State builders for roster snapshots."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from sundaycoffee.backend.models import DEFAULT_MEMBERS, Member, RotationCursor, Snapshot


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_initial_cursor(now: datetime | None = None) -> RotationCursor:
    return RotationCursor(cursor=0, last_updated=now or utc_now())


def build_initial_snapshot(now: datetime | None = None, current_user_id: str | None = None) -> Snapshot:
    """Return the default roster with an empty history and the cursor at the first seat."""
    return Snapshot(
        members=DEFAULT_MEMBERS,
        rounds=(),
        cursor=build_initial_cursor(now),
        last_sync=None,
        current_user_id=current_user_id,
    )


def merge_with_default_roster(members: Iterable[Member]) -> tuple[Member, ...]:
    """Keep exactly one member per fixed roster seat, falling back to the default."""
    by_id = {member.id: member for member in members}
    merged = [by_id.get(default.id, default) for default in DEFAULT_MEMBERS]
    return tuple(sorted(merged, key=lambda member: member.roster_position))
