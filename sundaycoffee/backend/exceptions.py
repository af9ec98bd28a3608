"""Error taxonomy for the roster engine."""

from __future__ import annotations


class RotaError(Exception):
    """Base class for all roster engine errors."""


class RecordStoreError(RotaError):
    """A remote record operation failed."""


class RecordStoreUnavailable(RecordStoreError):
    """The remote record store cannot be reached or is not authorized."""


class UnknownMember(RotaError):
    def __init__(self, member_id: str) -> None:
        self.member_id = member_id
        super().__init__(f"Member {member_id} is not on the roster")


class EmptyAttendance(RotaError):
    """No attendees were given to choose a payer from."""
