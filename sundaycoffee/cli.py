"""Command line entry point for the Sunday Coffee roster."""

from __future__ import annotations

import argparse
import logging
import sys

from sundaycoffee.backend.config import RotaSettings, load_settings
from sundaycoffee.backend.coordinator import RosterCoordinator, create_coordinator
from sundaycoffee.backend.exceptions import UnknownMember
from sundaycoffee.backend.leaderboard import balance_description, payment_leaderboard
from sundaycoffee.backend.store import PostgresRecordStore

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sunday Coffee roster")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("status", help="show the roster, cursor and sync state")

    next_parser = commands.add_parser("next", help="show who pays for the given attendees")
    next_parser.add_argument("attendees", nargs="+")

    record_parser = commands.add_parser("record", help="record a paid round")
    record_parser.add_argument("--payer", required=True)
    record_parser.add_argument("attendees", nargs="+")

    counter_parser = commands.add_parser("counter", help="set a member's side counter")
    counter_parser.add_argument("member")
    counter_parser.add_argument("value", type=int)

    whoami_parser = commands.add_parser("whoami", help="register this device's member")
    whoami_parser.add_argument("member")

    commands.add_parser("refresh", help="pull the latest state from the remote store")
    commands.add_parser("reset", help="wipe all history here and on the remote store")
    commands.add_parser("serve", help="run the HTTP API")
    commands.add_parser("migrate", help="create the remote record table")
    return parser.parse_args(argv)


def print_status(coordinator: RosterCoordinator) -> None:
    view = coordinator.view
    snapshot = view.snapshot
    cursor_member = snapshot.members[snapshot.cursor.cursor]
    print(f"Cursor: {cursor_member.name} ({snapshot.cursor.cursor})")
    print(f"Rounds: {len(snapshot.rounds)}")
    for member in payment_leaderboard(snapshot.members):
        marker = "*" if member.id == snapshot.current_user_id else " "
        print(f"{marker} {member.avatar_emoji} {member.name:<8} paid {member.rounds_paid:>3}  {balance_description(member)}")
    if view.sync.last_error:
        print(f"Sync: {view.sync.last_error}")
    elif snapshot.last_sync is not None:
        print(f"Last sync: {snapshot.last_sync.isoformat()}")


def serve(settings: RotaSettings) -> None:
    import uvicorn

    uvicorn.run("sundaycoffee.backend.api:create_app", factory=True, host=settings.host, port=settings.port)


def migrate(settings: RotaSettings) -> None:
    if not settings.database_url:
        raise RuntimeError("SUNDAYCOFFEE_DATABASE_URL is required for migration")
    PostgresRecordStore(settings.database_url).apply_schema()
    logger.info("Record store schema applied")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.command == "serve":
        serve(settings)
        return 0
    if args.command == "migrate":
        migrate(settings)
        return 0

    coordinator = create_coordinator(settings)
    try:
        coordinator.start()
        if args.command == "status":
            print_status(coordinator)
        elif args.command == "next":
            payer = coordinator.select_payer(args.attendees)
            if payer is None:
                print("None of the attendees is on the roster.", file=sys.stderr)
                return 1
            print(f"{payer.avatar_emoji} {payer.name} pays")
        elif args.command == "record":
            round_ = coordinator.record_round(payer_id=args.payer, attendee_ids=args.attendees)
            print(f"Recorded round {round_.id}")
        elif args.command == "counter":
            coordinator.update_counter(args.member, args.value)
        elif args.command == "whoami":
            coordinator.register_local_identity(args.member)
        elif args.command == "refresh":
            result = coordinator.refresh()
            if result.error:
                print(result.error, file=sys.stderr)
                return 1
            print_status(coordinator)
        elif args.command == "reset":
            coordinator.reset()
    except UnknownMember as exc:
        print(str(exc), file=sys.stderr)
        return 1
    finally:
        coordinator.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
