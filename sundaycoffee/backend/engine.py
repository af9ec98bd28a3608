"""Rotation engine: who pays next, and how the cursor moves afterwards."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import datetime

from sundaycoffee.backend.exceptions import EmptyAttendance
from sundaycoffee.backend.models import ROSTER_ORDER, Member, RotationCursor


def cursor_distance(member_id: str, cursor: int, roster_order: Sequence[str] = ROSTER_ORDER) -> int | None:
    """Cyclic distance from the cursor seat to the member's seat, or None off-roster."""
    if member_id not in roster_order:
        return None
    size = len(roster_order)
    return (roster_order.index(member_id) - cursor) % size


def select_payer(
    attendees: Iterable[Member],
    cursor: int,
    roster_order: Sequence[str] = ROSTER_ORDER,
) -> Member:
    """Return the first attendee met when walking the roster from the cursor.

    The result depends only on the cursor and the set of attendee ids, never
    on the order they were given in.
    """
    present = {member.id: member for member in attendees}
    if not present:
        raise EmptyAttendance("At least one attendee is required")

    size = len(roster_order)
    for step in range(size):
        candidate_id = roster_order[(cursor + step) % size]
        if candidate_id in present:
            return present[candidate_id]

    # Only reachable when every attendee is off the fixed roster.
    return min(present.values(), key=lambda member: (member.roster_position, member.id))


def advance_cursor(
    state: RotationCursor,
    payer_id: str,
    now: datetime,
    roster_order: Sequence[str] = ROSTER_ORDER,
) -> RotationCursor:
    """Move the cursor to the seat after the payer."""
    if payer_id not in roster_order:
        return state
    next_cursor = (roster_order.index(payer_id) + 1) % len(roster_order)
    return replace(state, cursor=next_cursor, last_updated=now)
