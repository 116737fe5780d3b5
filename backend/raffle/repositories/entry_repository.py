"""Entry and payment-event persistence helpers."""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from raffle.models import Entry, PaymentEvent, PaymentStatus, PurchaseType


class EntryRepository:
    """Encapsulate purchase entry persistence concerns."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def create(
        self,
        *,
        raffle_id: int,
        email: str,
        quantity: int,
        amount_cents: int,
        purchase_type: PurchaseType,
        bundle: bool = False,
        product_id: str | None = None,
        payment_session_id: str | None = None,
        phone: str | None = None,
        ip_address: str | None = None,
    ) -> Entry:
        entry = Entry(
            raffle_id=raffle_id,
            email=email,
            quantity=quantity,
            amount_cents=amount_cents,
            purchase_type=purchase_type.value,
            bundle=bundle,
            product_id=product_id,
            payment_session_id=payment_session_id,
            phone=phone,
            ip_address=ip_address,
            payment_status=PaymentStatus.PENDING.value,
        )
        self._session.add(entry)
        self._session.flush()
        return entry

    # ------------------------------------------------------------------
    # Queries

    def get(self, entry_id: int) -> Entry | None:
        return self._session.get(Entry, entry_id)

    def get_by_payment_session(self, payment_session_id: str) -> Entry | None:
        query = select(Entry).where(Entry.payment_session_id == payment_session_id)
        return self._session.execute(query).scalars().first()

    def list_by_email(self, email: str) -> list[Entry]:
        query = select(Entry).where(Entry.email == email).order_by(Entry.created_at.asc(), Entry.id.asc())
        return list(self._session.execute(query).scalars().all())

    def completed_entries(
        self, raffle_id: int, *, purchase_type: PurchaseType | None = None
    ) -> list[Entry]:
        """Completed entries in the order their payments completed."""

        query = select(Entry).where(
            Entry.raffle_id == raffle_id,
            Entry.payment_status == PaymentStatus.COMPLETED.value,
        )
        if purchase_type is not None:
            query = query.where(Entry.purchase_type == purchase_type.value)
        # Rows completed before completed_at was recorded fall back to their creation time.
        query = query.order_by(
            func.coalesce(Entry.completed_at, Entry.created_at).asc(), Entry.id.asc()
        )
        return list(self._session.execute(query).scalars().all())

    def completed_totals(self, raffle_id: int) -> dict[str, Any]:
        """Aggregate completed entries per purchase type."""

        rows = self._session.execute(
            select(
                Entry.purchase_type,
                func.count(Entry.id),
                func.coalesce(func.sum(Entry.quantity), 0),
                func.coalesce(func.sum(Entry.amount_cents), 0),
            )
            .where(
                Entry.raffle_id == raffle_id,
                Entry.payment_status == PaymentStatus.COMPLETED.value,
            )
            .group_by(Entry.purchase_type)
        ).all()

        totals: dict[str, Any] = {
            "raffle_entries": 0,
            "direct_purchases": 0,
            "raffle_quantity": 0,
            "revenue_cents": 0,
        }
        for purchase_type, count, quantity, amount in rows:
            totals["revenue_cents"] += int(amount or 0)
            if purchase_type == PurchaseType.RAFFLE.value:
                totals["raffle_entries"] += int(count or 0)
                totals["raffle_quantity"] += int(quantity or 0)
            else:
                totals["direct_purchases"] += int(count or 0)
        totals["completed_entries"] = totals["raffle_entries"] + totals["direct_purchases"]
        return totals

    def unique_completed_emails(self, raffle_id: int) -> int:
        query = select(func.count(func.distinct(Entry.email))).where(
            Entry.raffle_id == raffle_id,
            Entry.payment_status == PaymentStatus.COMPLETED.value,
        )
        return int(self._session.execute(query).scalar_one() or 0)


class PaymentEventRepository:
    """Webhook event log used to make payment callbacks idempotent."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_event_id(self, event_id: str) -> PaymentEvent | None:
        query = select(PaymentEvent).where(PaymentEvent.event_id == event_id)
        return self._session.execute(query).scalars().first()

    def record(
        self,
        *,
        event_id: str,
        event_type: str,
        status: str,
        payment_session_id: str | None = None,
        payment_intent_id: str | None = None,
        email: str | None = None,
        amount_cents: int | None = None,
        raw_data: dict[str, Any] | None = None,
        error: str | None = None,
        processed: bool = True,
    ) -> PaymentEvent:
        event = PaymentEvent(
            event_id=event_id,
            event_type=event_type,
            status=status,
            payment_session_id=payment_session_id,
            payment_intent_id=payment_intent_id,
            email=email,
            amount_cents=amount_cents,
            raw_data=raw_data,
            error=error,
            processed=processed,
        )
        self._session.add(event)
        self._session.flush()
        return event

    def list_events(
        self, *, limit: int = 50, event_type: str | None = None, unprocessed_only: bool = False
    ) -> list[PaymentEvent]:
        query = select(PaymentEvent)
        if event_type:
            query = query.where(PaymentEvent.event_type == event_type)
        if unprocessed_only:
            query = query.where(PaymentEvent.processed.is_(False))
        query = query.order_by(PaymentEvent.created_at.desc(), PaymentEvent.id.desc()).limit(limit)
        return list(self._session.execute(query).scalars().all())
