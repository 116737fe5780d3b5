import argparse
import json
import sys
from datetime import datetime

from loguru import logger

from raffle import crud, schemas
from raffle.core.config import get_settings
from raffle.db import SessionLocal, init_db
from raffle.domain import RaffleError, TicketIntegrityError
from raffle.services.notifications import build_winner_notifier


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Raffle ticket and winner administration")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("validate", "Check the ticket pool for gaps, duplicates and count mismatches"),
        ("rebuild", "Delete and renumber every ticket from 1 in payment order"),
        ("sync-totals", "Reset the cached entry total to the real completed quantity"),
        ("stats", "Show real totals, revenue and ticket distribution"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--raffle-id", type=int, default=None, help="Defaults to the active raffle")

    draw = subparsers.add_parser("draw", help="Draw the next winner of an ended raffle")
    draw.add_argument("--raffle-id", type=int, default=None, help="Defaults to the active raffle")
    draw.add_argument("--force", action="store_true", help="Draw even though the raffle is still open")

    auto_draw = subparsers.add_parser(
        "auto-draw", help="Draw for ended raffles with an open winner slot; safe to run from cron"
    )
    auto_draw.add_argument("--raffle-id", type=int, default=None, help="Defaults to every ended raffle")

    end = subparsers.add_parser("end", help="Close a raffle now")
    end.add_argument("--raffle-id", type=int, default=None, help="Defaults to the active raffle")

    extend = subparsers.add_parser("extend", help="Move a raffle's end date; refused once a winner exists")
    extend.add_argument("--raffle-id", type=int, default=None, help="Defaults to the active raffle")
    extend.add_argument("--end-date", type=datetime.fromisoformat, required=True, help="ISO 8601 timestamp")

    verify = subparsers.add_parser("verify", help="Recompute a winner's verification hash")
    verify.add_argument("winner_id", type=int)

    reset = subparsers.add_parser("reset", help="Supersede every active winner of a raffle")
    reset.add_argument("--raffle-id", type=int, default=None, help="Defaults to the active raffle")
    reset.add_argument(
        "--confirm",
        required=True,
        help="Confirmation phrase (see RESET_CONFIRMATION_PHRASE)",
    )

    return parser.parse_args(argv)


def _emit(schema, value) -> None:
    print(json.dumps(schema.model_validate(value).model_dump(mode="json"), indent=2))


def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    session = SessionLocal()
    try:
        if args.command == "verify":
            result = crud.verify_winner(session, args.winner_id)
            _emit(schemas.VerificationResult, result)
            if not result.is_valid:
                logger.error("Verification failed for winner {}", args.winner_id)
                return 1
            logger.info("Winner {} verified", args.winner_id)
            return 0

        if args.command == "auto-draw":
            notifier = build_winner_notifier(settings)
            if args.raffle_id is None:
                outcomes = crud.draw_ended_raffles(session, on_winner=notifier.notify)
            else:
                outcomes = [crud.draw_if_ended(session, args.raffle_id, on_winner=notifier.notify)]
            for outcome in outcomes:
                _emit(schemas.AutoDrawOutcome, outcome)
            return 0

        raffle_id = crud.resolve_raffle_id(session, args.raffle_id)

        if args.command == "validate":
            report = crud.validate_integrity(session, raffle_id)
            _emit(schemas.IntegrityReport, report)
            if not report.is_valid:
                logger.warning("Raffle {} has {} ticket issue(s); run rebuild", raffle_id, len(report.issues))
                return 1
            logger.info("Raffle {} ticket pool is valid ({} tickets)", raffle_id, report.total_tickets)
        elif args.command == "rebuild":
            _emit(schemas.RebuildSummary, crud.rebuild_all_tickets(session, raffle_id))
        elif args.command == "draw":
            notifier = build_winner_notifier(settings)
            _emit(
                schemas.DrawResult,
                crud.select_winner(session, raffle_id, force=args.force, on_winner=notifier.notify),
            )
        elif args.command == "reset":
            _emit(schemas.ResetSummary, crud.reset_winners(session, raffle_id, args.confirm))
        elif args.command == "end":
            _emit(schemas.Raffle, crud.end_raffle(session, raffle_id))
        elif args.command == "extend":
            _emit(schemas.Raffle, crud.extend_raffle(session, raffle_id, args.end_date))
        elif args.command == "sync-totals":
            _emit(schemas.TotalsSync, crud.sync_totals(session, raffle_id))
        elif args.command == "stats":
            _emit(schemas.RaffleStats, crud.real_stats(session, raffle_id))
            _emit(schemas.TicketDistribution, crud.ticket_distribution(session, raffle_id))
            _emit(schemas.WinnerSlots, crud.winner_slots(session, raffle_id))
        return 0
    except TicketIntegrityError as exc:
        logger.error("Draw refused, ticket pool is corrupt: {}", exc.issues)
        return 2
    except RaffleError as exc:
        logger.error("{}: {}", type(exc).__name__, exc)
        return 2
    finally:
        session.close()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    init_db()
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
