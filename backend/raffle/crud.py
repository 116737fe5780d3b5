from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from raffle.core.config import Settings
from raffle.domain import (
    AutoDrawOutcome,
    DrawResult,
    IntegrityReport,
    PaymentOutcome,
    RaffleStats,
    RebuildSummary,
    ResetSummary,
    TicketAssignment,
    TicketDistribution,
    TotalsSync,
    VerificationResult,
    WinnerSlots,
)
from raffle.repositories import NotificationRepository, PaymentEventRepository
from raffle.services.payment_service import PaymentService
from raffle.services.raffle_service import RaffleService
from raffle.services.ticket_allocator import TicketAllocator
from raffle.services.winner_selector import WinnerCallback, WinnerSelector

from .models import AdminNotification, PaymentEvent, RaffleConfig, WinnerRecord


def create_raffle(
    session: Session,
    *,
    name: str,
    product_name: str,
    start_date: datetime,
    end_date: datetime,
    price_per_entry_cents: int,
    max_winners: int | None = None,
    bundle_price_cents: int | None = None,
    bundle_size: int | None = None,
    product_description: str | None = None,
) -> RaffleConfig:
    return RaffleService(session).create_raffle(
        name=name,
        product_name=product_name,
        start_date=start_date,
        end_date=end_date,
        price_per_entry_cents=price_per_entry_cents,
        max_winners=max_winners,
        bundle_price_cents=bundle_price_cents,
        bundle_size=bundle_size,
        product_description=product_description,
    )


def resolve_raffle_id(session: Session, raffle_id: int | None = None) -> int:
    return RaffleService(session).resolve_raffle_id(raffle_id)


def sync_totals(session: Session, raffle_id: int) -> TotalsSync:
    return RaffleService(session).sync_totals(raffle_id)


def real_stats(session: Session, raffle_id: int) -> RaffleStats:
    return RaffleService(session).real_stats(raffle_id)


def end_raffle(session: Session, raffle_id: int) -> RaffleConfig:
    return RaffleService(session).end_raffle(raffle_id)


def extend_raffle(session: Session, raffle_id: int, new_end_date: datetime) -> RaffleConfig:
    return RaffleService(session).extend_raffle(raffle_id, new_end_date)


def complete_payment(
    session: Session,
    payment_session_id: str,
    *,
    payment_intent_id: str | None = None,
    event_id: str | None = None,
) -> PaymentOutcome:
    return PaymentService(session).handle_payment_success(
        payment_session_id, payment_intent_id=payment_intent_id, event_id=event_id
    )


def fail_payment(
    session: Session,
    payment_session_id: str,
    *,
    event_id: str | None = None,
    error_message: str | None = None,
) -> PaymentOutcome:
    return PaymentService(session).handle_payment_failure(
        payment_session_id, event_id=event_id, error_message=error_message
    )


def assign_tickets(session: Session, entry_id: int) -> TicketAssignment:
    return TicketAllocator(session).assign_tickets(entry_id)


def rebuild_all_tickets(session: Session, raffle_id: int) -> RebuildSummary:
    return TicketAllocator(session).rebuild_all_tickets(raffle_id)


def validate_integrity(session: Session, raffle_id: int) -> IntegrityReport:
    return TicketAllocator(session).validate_integrity(raffle_id)


def ticket_distribution(session: Session, raffle_id: int) -> TicketDistribution:
    return TicketAllocator(session).ticket_distribution(raffle_id)


def select_winner(
    session: Session,
    raffle_id: int,
    *,
    settings: Settings | None = None,
    force: bool = False,
    on_winner: WinnerCallback | None = None,
) -> DrawResult:
    return WinnerSelector(session, settings=settings, on_winner=on_winner).select_winner(raffle_id, force=force)


def draw_if_ended(
    session: Session, raffle_id: int, *, on_winner: WinnerCallback | None = None
) -> AutoDrawOutcome:
    return WinnerSelector(session, on_winner=on_winner).draw_if_ended(raffle_id)


def draw_ended_raffles(session: Session, *, on_winner: WinnerCallback | None = None) -> list[AutoDrawOutcome]:
    return WinnerSelector(session, on_winner=on_winner).draw_ended_raffles()


def verify_winner(session: Session, winner_id: int) -> VerificationResult:
    return WinnerSelector(session).verify(winner_id)


def winner_slots(session: Session, raffle_id: int) -> WinnerSlots:
    return WinnerSelector(session).winner_slots(raffle_id)


def list_winners(session: Session, raffle_id: int, *, include_inactive: bool = False) -> list[WinnerRecord]:
    return WinnerSelector(session).list_winners(raffle_id, include_inactive=include_inactive)


def reset_winners(
    session: Session, raffle_id: int, confirmation: str, *, settings: Settings | None = None
) -> ResetSummary:
    return WinnerSelector(session, settings=settings).reset_winners(raffle_id, confirmation)


def list_payment_events(
    session: Session,
    *,
    limit: int = 50,
    event_type: str | None = None,
    unprocessed_only: bool = False,
) -> list[PaymentEvent]:
    return PaymentEventRepository(session).list_events(
        limit=limit, event_type=event_type, unprocessed_only=unprocessed_only
    )


def mark_notification_read(session: Session, notification_id: int) -> AdminNotification | None:
    notification = NotificationRepository(session).mark_read(notification_id)
    session.commit()
    return notification
