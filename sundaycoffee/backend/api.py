"""FastAPI endpoints exposing the roster state and its operations."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from .config import load_settings
from .coordinator import RosterCoordinator, create_coordinator
from .exceptions import UnknownMember
from .leaderboard import balance_description, payment_leaderboard, performance_leaderboard, round_date_label
from .models import Member, Round, RosterView


class MemberOut(BaseModel):
    id: str
    name: str
    nickname: str
    avatar_emoji: str
    roster_position: int
    rounds_paid: int
    rounds_attended: int
    last_paid_date: datetime | None
    fired_or_pips_last_week: int
    balance: str


class RoundOut(BaseModel):
    id: str
    date: datetime
    label: str
    payer_id: str
    attendee_ids: list[str]


class CursorOut(BaseModel):
    cursor: int
    last_updated: datetime


class SyncOut(BaseModel):
    is_syncing: bool
    last_error: str | None
    remote_available: bool
    last_sync: datetime | None


class RosterStateResponse(BaseModel):
    members: list[MemberOut]
    rounds: list[RoundOut]
    cursor: CursorOut
    current_user_id: str | None
    total_rounds: int
    sync: SyncOut


class LeaderboardResponse(BaseModel):
    members: list[MemberOut]


class PayerResponse(BaseModel):
    payer: MemberOut


class RegisterIdentityRequest(BaseModel):
    member_id: str = Field(min_length=1)


class AttendeesRequest(BaseModel):
    attendee_ids: list[str] = Field(min_length=1)


class RecordRoundRequest(BaseModel):
    payer_id: str = Field(min_length=1)
    attendee_ids: list[str] = Field(min_length=1)


class CounterRequest(BaseModel):
    value: int


def _member_out(member: Member) -> MemberOut:
    return MemberOut(
        id=member.id,
        name=member.name,
        nickname=member.nickname,
        avatar_emoji=member.avatar_emoji,
        roster_position=member.roster_position,
        rounds_paid=member.rounds_paid,
        rounds_attended=member.rounds_attended,
        last_paid_date=member.last_paid_date,
        fired_or_pips_last_week=member.fired_or_pips_last_week,
        balance=balance_description(member),
    )


def _round_out(round_: Round) -> RoundOut:
    return RoundOut(
        id=round_.id,
        date=round_.date,
        label=round_date_label(round_),
        payer_id=round_.payer_id,
        attendee_ids=list(round_.attendee_ids),
    )


def _state_response(view: RosterView) -> RosterStateResponse:
    snapshot = view.snapshot
    return RosterStateResponse(
        members=[_member_out(member) for member in snapshot.members],
        rounds=[_round_out(round_) for round_ in snapshot.rounds],
        cursor=CursorOut(cursor=snapshot.cursor.cursor, last_updated=snapshot.cursor.last_updated),
        current_user_id=snapshot.current_user_id,
        total_rounds=len(snapshot.rounds),
        sync=SyncOut(
            is_syncing=view.sync.is_syncing,
            last_error=view.sync.last_error,
            remote_available=view.sync.remote_available,
            last_sync=snapshot.last_sync,
        ),
    )


def create_app(coordinator: RosterCoordinator | None = None) -> FastAPI:
    roster = coordinator if coordinator is not None else create_coordinator(load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        roster.start()
        yield
        roster.close()

    app = FastAPI(title="Sunday Coffee API", version="0.1.0", lifespan=lifespan)
    app.state.coordinator = roster

    def get_coordinator() -> RosterCoordinator:
        return roster

    @app.get("/api/state", response_model=RosterStateResponse)
    def get_state(local: RosterCoordinator = Depends(get_coordinator)) -> RosterStateResponse:
        return _state_response(local.view)

    @app.post("/api/identity", response_model=RosterStateResponse)
    def register_identity(
        payload: RegisterIdentityRequest,
        local: RosterCoordinator = Depends(get_coordinator),
    ) -> RosterStateResponse:
        try:
            local.register_local_identity(payload.member_id)
        except UnknownMember as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _state_response(local.view)

    @app.post("/api/payer", response_model=PayerResponse)
    def select_payer(
        payload: AttendeesRequest,
        local: RosterCoordinator = Depends(get_coordinator),
    ) -> PayerResponse:
        payer = local.select_payer(payload.attendee_ids)
        if payer is None:
            raise HTTPException(status_code=404, detail="No attendee is on the roster")
        return PayerResponse(payer=_member_out(payer))

    @app.post("/api/rounds", response_model=RosterStateResponse)
    def record_round(
        payload: RecordRoundRequest,
        local: RosterCoordinator = Depends(get_coordinator),
    ) -> RosterStateResponse:
        local.record_round(payer_id=payload.payer_id, attendee_ids=payload.attendee_ids)
        return _state_response(local.view)

    @app.put("/api/members/{member_id}/counter", response_model=RosterStateResponse)
    def update_counter(
        member_id: str,
        payload: CounterRequest,
        local: RosterCoordinator = Depends(get_coordinator),
    ) -> RosterStateResponse:
        try:
            local.update_counter(member_id=member_id, value=payload.value)
        except UnknownMember as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _state_response(local.view)

    @app.post("/api/reset", response_model=RosterStateResponse)
    def reset(local: RosterCoordinator = Depends(get_coordinator)) -> RosterStateResponse:
        local.reset()
        return _state_response(local.view)

    @app.post("/api/refresh", response_model=RosterStateResponse)
    def refresh(local: RosterCoordinator = Depends(get_coordinator)) -> RosterStateResponse:
        local.refresh()
        return _state_response(local.view)

    @app.get("/api/leaderboard", response_model=LeaderboardResponse)
    def leaderboard(local: RosterCoordinator = Depends(get_coordinator)) -> LeaderboardResponse:
        return LeaderboardResponse(members=[_member_out(member) for member in payment_leaderboard(local.snapshot.members)])

    @app.get("/api/leaderboard/performance", response_model=LeaderboardResponse)
    def performance(local: RosterCoordinator = Depends(get_coordinator)) -> LeaderboardResponse:
        members = performance_leaderboard(local.snapshot.members)
        return LeaderboardResponse(members=[_member_out(member) for member in members])

    return app
