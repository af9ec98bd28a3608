"""Codecs between domain models, remote record fields and local cache blobs.

Decoders return ``None`` instead of raising when a required field is missing
or has the wrong type, so callers can treat a malformed record as absent.
Unknown extra fields are ignored.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sundaycoffee.backend.models import ROSTER_ORDER, Member, RotationCursor, Round, RoundIndex


def encode_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def decode_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _int_field(fields: dict[str, Any], key: str) -> int | None:
    value = fields.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _str_field(fields: dict[str, Any], key: str) -> str | None:
    value = fields.get(key)
    return value if isinstance(value, str) else None


def _str_list_field(fields: dict[str, Any], key: str) -> tuple[str, ...] | None:
    value = fields.get(key)
    if not isinstance(value, (list, tuple)):
        return None
    if not all(isinstance(item, str) for item in value):
        return None
    return tuple(value)


# Remote record shape


def member_to_record(member: Member) -> dict[str, Any]:
    return {
        "name": member.name,
        "nickname": member.nickname,
        "roundsPaid": member.rounds_paid,
        "roundsAttended": member.rounds_attended,
        "lastPaidDate": encode_datetime(member.last_paid_date) if member.last_paid_date else None,
        "avatarEmoji": member.avatar_emoji,
        "rosterPosition": member.roster_position,
        "firedOrPIPsLastWeek": member.fired_or_pips_last_week,
    }


def member_from_record(record_id: str, fields: dict[str, Any]) -> Member | None:
    name = _str_field(fields, "name")
    nickname = _str_field(fields, "nickname")
    rounds_paid = _int_field(fields, "roundsPaid")
    rounds_attended = _int_field(fields, "roundsAttended")
    avatar_emoji = _str_field(fields, "avatarEmoji")
    roster_position = _int_field(fields, "rosterPosition")
    if (
        name is None
        or nickname is None
        or rounds_paid is None
        or rounds_attended is None
        or avatar_emoji is None
        or roster_position is None
    ):
        return None

    # Older records predate the side counter.
    fired_or_pips = _int_field(fields, "firedOrPIPsLastWeek") or 0
    return Member(
        id=record_id,
        name=name,
        nickname=nickname,
        avatar_emoji=avatar_emoji,
        roster_position=roster_position,
        rounds_paid=rounds_paid,
        rounds_attended=rounds_attended,
        last_paid_date=decode_datetime(fields.get("lastPaidDate")),
        fired_or_pips_last_week=max(0, fired_or_pips),
    )


def round_to_record(round_: Round) -> dict[str, Any]:
    return {
        "date": encode_datetime(round_.date),
        "payerID": round_.payer_id,
        "attendeeIDs": list(round_.attendee_ids),
    }


def round_from_record(record_id: str, fields: dict[str, Any]) -> Round | None:
    date = decode_datetime(fields.get("date"))
    payer_id = _str_field(fields, "payerID")
    attendee_ids = _str_list_field(fields, "attendeeIDs")
    if date is None or payer_id is None or attendee_ids is None:
        return None
    return Round(id=record_id, date=date, payer_id=payer_id, attendee_ids=attendee_ids)


def cursor_to_record(cursor: RotationCursor) -> dict[str, Any]:
    return {
        "cursor": cursor.cursor,
        "lastUpdated": encode_datetime(cursor.last_updated),
    }


def cursor_from_record(fields: dict[str, Any]) -> RotationCursor | None:
    cursor = _int_field(fields, "cursor")
    last_updated = decode_datetime(fields.get("lastUpdated"))
    if cursor is None or last_updated is None:
        return None
    return RotationCursor(cursor=cursor % len(ROSTER_ORDER), last_updated=last_updated)


def round_index_to_record(index: RoundIndex) -> dict[str, Any]:
    return {
        "roundIDs": list(index.round_ids),
        "lastUpdated": encode_datetime(index.last_updated),
    }


def round_index_from_record(fields: dict[str, Any]) -> RoundIndex | None:
    round_ids = _str_list_field(fields, "roundIDs")
    last_updated = decode_datetime(fields.get("lastUpdated"))
    if round_ids is None or last_updated is None:
        return None
    return RoundIndex(round_ids=round_ids, last_updated=last_updated)


# Local blob shape: the remote fields plus the id the remote store keeps as record key


def member_to_blob(member: Member) -> dict[str, Any]:
    return {"id": member.id, **member_to_record(member)}


def member_from_blob(blob: Any) -> Member | None:
    if not isinstance(blob, dict) or not isinstance(blob.get("id"), str):
        return None
    return member_from_record(blob["id"], blob)


def round_to_blob(round_: Round) -> dict[str, Any]:
    return {"id": round_.id, **round_to_record(round_)}


def round_from_blob(blob: Any) -> Round | None:
    if not isinstance(blob, dict) or not isinstance(blob.get("id"), str):
        return None
    return round_from_record(blob["id"], blob)


def cursor_to_blob(cursor: RotationCursor) -> dict[str, Any]:
    return cursor_to_record(cursor)


def cursor_from_blob(blob: Any) -> RotationCursor | None:
    if not isinstance(blob, dict):
        return None
    return cursor_from_record(blob)
