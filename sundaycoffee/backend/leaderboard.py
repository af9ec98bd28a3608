"""Leaderboards and display helpers derived from the roster."""

from __future__ import annotations

from collections.abc import Iterable

from sundaycoffee.backend.models import Member, Round


def payment_leaderboard(members: Iterable[Member]) -> list[Member]:
    """Members by rounds paid, most first; ties keep roster order."""
    ordered = sorted(members, key=lambda member: member.roster_position)
    return sorted(ordered, key=lambda member: member.rounds_paid, reverse=True)


def performance_leaderboard(members: Iterable[Member]) -> list[Member]:
    return sorted(members, key=lambda member: (-member.fired_or_pips_last_week, member.name))


def balance_description(member: Member) -> str:
    difference = member.rounds_paid - member.rounds_attended
    if difference > 0:
        return f"+{difference} ahead"
    if difference < 0:
        return f"{difference} behind"
    return "Square"


def round_date_label(round_: Round) -> str:
    return f"{round_.date:%a}, {round_.date.day} {round_.date:%b}"
