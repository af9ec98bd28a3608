"""Domain models for the roster, its rounds and the rotation cursor."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


MEMBER_RECORD_TYPE = "Participant"
ROUND_RECORD_TYPE = "CoffeeRound"
CURSOR_RECORD_TYPE = "RosterState"
ROUND_INDEX_RECORD_TYPE = "CoffeeRoundIndex"

CURSOR_RECORD_ID = "roster-state"
ROUND_INDEX_RECORD_ID = "coffee-round-index"


@dataclass(frozen=True)
class Member:
    id: str
    name: str
    nickname: str
    avatar_emoji: str
    roster_position: int
    rounds_paid: int = 0
    rounds_attended: int = 0
    last_paid_date: datetime | None = None
    fired_or_pips_last_week: int = 0


@dataclass(frozen=True)
class Round:
    id: str
    date: datetime
    payer_id: str
    attendee_ids: tuple[str, ...]


@dataclass(frozen=True)
class RotationCursor:
    cursor: int
    last_updated: datetime


@dataclass(frozen=True)
class RoundIndex:
    round_ids: tuple[str, ...]
    last_updated: datetime


@dataclass(frozen=True)
class Snapshot:
    """Everything the engine knows, as observed by the presentation layer."""

    members: tuple[Member, ...]
    rounds: tuple[Round, ...]
    cursor: RotationCursor
    last_sync: datetime | None = None
    current_user_id: str | None = None

    def member(self, member_id: str) -> Member | None:
        for candidate in self.members:
            if candidate.id == member_id:
                return candidate
        return None

    @property
    def round_ids(self) -> list[str]:
        return [round_.id for round_ in self.rounds]


@dataclass(frozen=True)
class SyncStatus:
    is_syncing: bool = False
    last_error: str | None = None
    remote_available: bool = False


@dataclass(frozen=True)
class RosterView:
    snapshot: Snapshot
    sync: SyncStatus = field(default_factory=SyncStatus)


DEFAULT_MEMBERS: tuple[Member, ...] = (
    Member(id="paul", name="Paul", nickname="The Billable Hour", avatar_emoji="⚖️", roster_position=0),
    Member(id="justin", name="Justin", nickname="The Cardio King", avatar_emoji="🏃", roster_position=1),
    Member(id="johnny", name="Johnny", nickname="The Waitress Whisperer", avatar_emoji="🎭", roster_position=2),
    Member(id="jonny", name="Jonny", nickname="Diamond Ring Maybe", avatar_emoji="⚾️", roster_position=3),
    Member(id="cliff", name="Cliff", nickname="Cardiac Cliff", avatar_emoji="❤️‍🩹", roster_position=4),
    Member(id="barry", name="Barry", nickname="The Silverback", avatar_emoji="🦁", roster_position=5),
    Member(id="tim", name="Tim", nickname="The Mystery Man", avatar_emoji="🎯", roster_position=6),
)

ROSTER_ORDER: tuple[str, ...] = tuple(member.id for member in DEFAULT_MEMBERS)
