"""Purchase entries and the payment callbacks that complete or fail them."""

from __future__ import annotations

import re
from typing import Any

from loguru import logger
from sqlalchemy.orm import Session

from raffle.core.config import Settings, settings as default_settings
from raffle.db import transaction
from raffle.domain import (
    EntryNotFound,
    InvalidEntryRequest,
    InvalidEntryState,
    PaymentOutcome,
    RaffleClosed,
    RaffleNotFound,
)
from raffle.locking import raffle_lock
from raffle.models import Entry, PaymentStatus, PurchaseType, RaffleConfig, utcnow
from raffle.repositories import EntryRepository, PaymentEventRepository, RaffleRepository
from raffle.services.raffle_service import accepts_entries
from raffle.services.ticket_allocator import TicketAllocator

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

PAYMENT_SUCCEEDED = "payment.succeeded"
PAYMENT_FAILED = "payment.failed"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def entry_amount_cents(raffle: RaffleConfig, quantity: int, *, bundle: bool) -> int:
    if (
        bundle
        and raffle.bundle_size is not None
        and raffle.bundle_price_cents is not None
        and quantity == raffle.bundle_size
    ):
        return raffle.bundle_price_cents
    return quantity * raffle.price_per_entry_cents


class PaymentService:
    """Create pending entries and apply payment outcomes to them."""

    def __init__(self, session: Session, *, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or default_settings
        self._raffles = RaffleRepository(session)
        self._entries = EntryRepository(session)
        self._events = PaymentEventRepository(session)
        self._allocator = TicketAllocator(session)

    # ------------------------------------------------------------------
    # Checkout

    def create_pending_entry(
        self,
        *,
        email: str,
        quantity: int,
        raffle_id: int | None = None,
        product_id: str | None = None,
        bundle: bool = False,
        payment_session_id: str | None = None,
        phone: str | None = None,
        ip_address: str | None = None,
        amount_cents: int | None = None,
    ) -> Entry:
        """Record a purchase awaiting payment.

        Raffle purchases require the raffle to be active and inside its entry
        window. Direct merchandise purchases are attached to the raffle for
        bookkeeping only and never receive tickets.
        """

        normalized = normalize_email(email)
        if not EMAIL_PATTERN.match(normalized):
            raise InvalidEntryRequest(f"Invalid email address: {email!r}")
        if not 1 <= quantity <= self._settings.max_tickets_per_entry:
            raise InvalidEntryRequest(
                f"Quantity must be between 1 and {self._settings.max_tickets_per_entry}"
            )
        if amount_cents is not None and amount_cents < 0:
            raise InvalidEntryRequest("amount_cents cannot be negative")

        purchase_type = (
            PurchaseType.DIRECT if self._settings.is_direct_purchase(product_id) else PurchaseType.RAFFLE
        )

        with transaction(self._session):
            raffle = self._resolve_raffle(raffle_id)
            if purchase_type is PurchaseType.RAFFLE and not accepts_entries(raffle):
                raise RaffleClosed(f"Raffle {raffle.id} is not accepting entries")
            if payment_session_id and self._entries.get_by_payment_session(payment_session_id):
                raise InvalidEntryRequest(
                    f"Payment session {payment_session_id} already has an entry"
                )

            amount = (
                amount_cents
                if amount_cents is not None
                else entry_amount_cents(raffle, quantity, bundle=bundle)
            )
            entry = self._entries.create(
                raffle_id=raffle.id,
                email=normalized,
                quantity=quantity,
                amount_cents=amount,
                purchase_type=purchase_type,
                bundle=bundle,
                product_id=product_id,
                payment_session_id=payment_session_id,
                phone=phone,
                ip_address=ip_address,
            )
        logger.info(
            "Created pending {} entry {} for {} ({} x, {} cents)",
            purchase_type.value,
            entry.id,
            normalized,
            quantity,
            amount,
        )
        return entry

    # ------------------------------------------------------------------
    # Payment callbacks

    def handle_payment_success(
        self,
        payment_session_id: str,
        *,
        payment_intent_id: str | None = None,
        event_id: str | None = None,
        raw_data: dict[str, Any] | None = None,
    ) -> PaymentOutcome:
        """Complete the entry behind ``payment_session_id`` and mint its tickets.

        Replayed events and already completed entries are acknowledged without
        writing anything new.
        """

        if event_id and self._events.get_by_event_id(event_id):
            logger.info("Payment event {} already processed", event_id)
            return self._replayed_outcome(payment_session_id)

        entry = self._entries.get_by_payment_session(payment_session_id)
        if entry is None:
            logger.warning("No entry found for payment session {}", payment_session_id)
            self._log_unmatched(event_id, PAYMENT_SUCCEEDED, payment_session_id, payment_intent_id, raw_data)
            return PaymentOutcome(
                entry_id=None, email=None, status=PaymentStatus.COMPLETED.value, entry_not_found=True
            )

        with raffle_lock(entry.raffle_id), transaction(self._session):
            raffle = self._raffles.get_for_update(entry.raffle_id)
            if raffle is None:
                raise RaffleNotFound(f"Raffle {entry.raffle_id} not found")
            self._session.refresh(entry)

            if entry.payment_status == PaymentStatus.REFUNDED.value:
                raise InvalidEntryState(f"Entry {entry.id} has been refunded")

            if entry.payment_status == PaymentStatus.COMPLETED.value:
                self._record_event(event_id, PAYMENT_SUCCEEDED, entry, payment_intent_id, raw_data)
                logger.info("Entry {} already completed", entry.id)
                return PaymentOutcome(
                    entry_id=entry.id,
                    email=entry.email,
                    status=entry.payment_status,
                    already_processed=True,
                )

            entry.payment_status = PaymentStatus.COMPLETED.value
            entry.completed_at = utcnow()
            if payment_intent_id:
                entry.payment_intent_id = payment_intent_id

            assignment = None
            if entry.is_raffle_entry:
                raffle.total_entries += entry.quantity
                assignment = self._allocator.allocate(raffle, entry)
            self._record_event(event_id, PAYMENT_SUCCEEDED, entry, payment_intent_id, raw_data)

        logger.info("Payment completed for entry {} ({})", entry.id, entry.email)
        return PaymentOutcome(
            entry_id=entry.id,
            email=entry.email,
            status=entry.payment_status,
            assignment=assignment,
        )

    def handle_payment_failure(
        self,
        payment_session_id: str,
        *,
        event_id: str | None = None,
        error_message: str | None = None,
        raw_data: dict[str, Any] | None = None,
    ) -> PaymentOutcome:
        """Mark a pending entry failed; entries in any other state are left alone."""

        if event_id and self._events.get_by_event_id(event_id):
            logger.info("Payment event {} already processed", event_id)
            return self._replayed_outcome(payment_session_id)

        entry = self._entries.get_by_payment_session(payment_session_id)
        if entry is None:
            logger.warning("No entry found for failed payment session {}", payment_session_id)
            self._log_unmatched(event_id, PAYMENT_FAILED, payment_session_id, None, raw_data, error_message)
            return PaymentOutcome(
                entry_id=None, email=None, status=PaymentStatus.FAILED.value, entry_not_found=True
            )

        with transaction(self._session):
            already_processed = entry.payment_status != PaymentStatus.PENDING.value
            if already_processed:
                logger.warning(
                    "Ignoring payment failure for entry {} in status {}",
                    entry.id,
                    entry.payment_status,
                )
            else:
                entry.payment_status = PaymentStatus.FAILED.value
            self._record_event(event_id, PAYMENT_FAILED, entry, None, raw_data, error_message)

        if not already_processed:
            logger.info("Payment failed for entry {}: {}", entry.id, error_message or "no reason given")
        return PaymentOutcome(
            entry_id=entry.id,
            email=entry.email,
            status=entry.payment_status,
            already_processed=already_processed,
        )

    def mark_refunded(self, entry_id: int) -> Entry:
        """Flag a completed entry as refunded.

        Tickets stay in place so the integrity report surfaces the refund
        until an operator rebuilds the pool.
        """

        entry = self._entries.get(entry_id)
        if entry is None:
            raise EntryNotFound(f"Entry {entry_id} not found")

        with raffle_lock(entry.raffle_id), transaction(self._session):
            raffle = self._raffles.get_for_update(entry.raffle_id)
            self._session.refresh(entry)
            if entry.payment_status != PaymentStatus.COMPLETED.value:
                raise InvalidEntryState(
                    f"Only completed entries can be refunded; entry {entry.id} is {entry.payment_status}"
                )
            entry.payment_status = PaymentStatus.REFUNDED.value
            if raffle is not None and entry.is_raffle_entry:
                raffle.total_entries = max(raffle.total_entries - entry.quantity, 0)
        logger.warning("Entry {} refunded; rebuild tickets for raffle {}", entry.id, entry.raffle_id)
        return entry

    def entries_for_email(self, email: str) -> list[Entry]:
        return self._entries.list_by_email(normalize_email(email))

    # ------------------------------------------------------------------
    # Helpers

    def _resolve_raffle(self, raffle_id: int | None) -> RaffleConfig:
        raffle = self._raffles.get(raffle_id) if raffle_id is not None else self._raffles.get_active()
        if raffle is None:
            raise RaffleNotFound(
                f"Raffle {raffle_id} not found" if raffle_id is not None else "No active raffle found"
            )
        return raffle

    def _replayed_outcome(self, payment_session_id: str) -> PaymentOutcome:
        entry = self._entries.get_by_payment_session(payment_session_id)
        return PaymentOutcome(
            entry_id=entry.id if entry else None,
            email=entry.email if entry else None,
            status=entry.payment_status if entry else "unknown",
            already_processed=True,
            entry_not_found=entry is None,
        )

    def _record_event(
        self,
        event_id: str | None,
        event_type: str,
        entry: Entry,
        payment_intent_id: str | None,
        raw_data: dict[str, Any] | None,
        error: str | None = None,
    ) -> None:
        if not event_id:
            return
        self._events.record(
            event_id=event_id,
            event_type=event_type,
            status=entry.payment_status,
            payment_session_id=entry.payment_session_id,
            payment_intent_id=payment_intent_id,
            email=entry.email,
            amount_cents=entry.amount_cents,
            raw_data=raw_data,
            error=error,
        )

    def _log_unmatched(
        self,
        event_id: str | None,
        event_type: str,
        payment_session_id: str,
        payment_intent_id: str | None,
        raw_data: dict[str, Any] | None,
        error: str | None = None,
    ) -> None:
        if not event_id:
            return
        with transaction(self._session):
            self._events.record(
                event_id=event_id,
                event_type=event_type,
                status="unmatched",
                payment_session_id=payment_session_id,
                payment_intent_id=payment_intent_id,
                raw_data=raw_data,
                error=error or "entry not found",
                processed=False,
            )


__all__ = ["PaymentService", "entry_amount_cents", "normalize_email"]
