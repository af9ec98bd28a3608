from dataclasses import replace
from datetime import datetime, timezone

from sundaycoffee.backend.models import DEFAULT_MEMBERS, ROSTER_ORDER
from sundaycoffee.backend.state import build_initial_snapshot, merge_with_default_roster


def test_build_initial_snapshot_sets_defaults() -> None:
    now = datetime(2026, 10, 4, tzinfo=timezone.utc)

    snapshot = build_initial_snapshot(now)

    assert snapshot.members == DEFAULT_MEMBERS
    assert snapshot.rounds == ()
    assert snapshot.cursor.cursor == 0
    assert snapshot.cursor.last_updated == now
    assert snapshot.last_sync is None
    assert snapshot.current_user_id is None


def test_default_roster_positions_follow_roster_order() -> None:
    assert [member.roster_position for member in DEFAULT_MEMBERS] == list(range(len(ROSTER_ORDER)))
    assert len(set(ROSTER_ORDER)) == 7


def test_merge_with_default_roster_fills_missing_and_drops_strangers() -> None:
    paid = replace(DEFAULT_MEMBERS[3], rounds_paid=4)
    stranger = replace(DEFAULT_MEMBERS[0], id="mallory", roster_position=9)

    merged = merge_with_default_roster([stranger, paid])

    assert [member.id for member in merged] == list(ROSTER_ORDER)
    assert merged[3].rounds_paid == 4
    assert merged[0] == DEFAULT_MEMBERS[0]
