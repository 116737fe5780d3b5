from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PurchaseType(str, Enum):
    RAFFLE = "raffle"
    DIRECT = "direct"


class WinnerStatus(str, Enum):
    ACTIVE = "active"
    SUPERSEDED = "superseded"
    DISQUALIFIED = "disqualified"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""

    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class RaffleConfig(Base):
    __tablename__ = "raffles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    product_name: Mapped[str] = mapped_column(String, nullable=False)
    product_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    price_per_entry_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    bundle_price_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bundle_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_winners: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    total_entries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ticket_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    winner_email: Mapped[str | None] = mapped_column(String, nullable=True)
    winner_selected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    entries: Mapped[list["Entry"]] = relationship("Entry", back_populates="raffle")
    winners: Mapped[list["WinnerRecord"]] = relationship("WinnerRecord", back_populates="raffle")


class Entry(Base):
    __tablename__ = "entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    raffle_id: Mapped[int] = mapped_column(Integer, ForeignKey("raffles.id"), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String, nullable=False, index=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    bundle: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    product_id: Mapped[str | None] = mapped_column(String, nullable=True)
    purchase_type: Mapped[str] = mapped_column(String, nullable=False, default=PurchaseType.RAFFLE.value)
    payment_status: Mapped[str] = mapped_column(
        String, nullable=False, default=PaymentStatus.PENDING.value, index=True
    )
    payment_session_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    payment_intent_id: Mapped[str | None] = mapped_column(String, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    raffle: Mapped[RaffleConfig] = relationship("RaffleConfig", back_populates="entries")
    tickets: Mapped[list["Ticket"]] = relationship("Ticket", back_populates="entry")

    @property
    def is_raffle_entry(self) -> bool:
        return self.purchase_type == PurchaseType.RAFFLE.value


class Ticket(Base):
    __tablename__ = "tickets"
    __table_args__ = (
        UniqueConstraint("raffle_id", "ticket_number", name="uq_tickets_raffle_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    raffle_id: Mapped[int] = mapped_column(Integer, ForeignKey("raffles.id"), nullable=False, index=True)
    entry_id: Mapped[int] = mapped_column(Integer, ForeignKey("entries.id"), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String, nullable=False, index=True)
    ticket_number: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    entry: Mapped[Entry] = relationship("Entry", back_populates="tickets")


class WinnerRecord(Base):
    __tablename__ = "winner_records"
    __table_args__ = (
        Index(
            "uq_winner_records_active_ticket",
            "raffle_id",
            "winning_ticket_number",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    raffle_id: Mapped[int] = mapped_column(Integer, ForeignKey("raffles.id"), nullable=False, index=True)
    winner_email: Mapped[str] = mapped_column(String, nullable=False, index=True)
    entry_id: Mapped[int] = mapped_column(Integer, ForeignKey("entries.id"), nullable=False)
    winning_ticket_number: Mapped[int] = mapped_column(Integer, nullable=False)
    pool_size_at_draw: Mapped[int] = mapped_column(Integer, nullable=False)
    random_seed: Mapped[str] = mapped_column(String, nullable=False)
    verification_hash: Mapped[str] = mapped_column(String, nullable=False)
    hash_scheme: Mapped[str] = mapped_column(String, nullable=False)
    selection_method: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default=WinnerStatus.ACTIVE.value, index=True)
    selected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    contacted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    prize_delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivery_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    raffle: Mapped[RaffleConfig] = relationship("RaffleConfig", back_populates="winners")

    @property
    def is_active(self) -> bool:
        return self.status == WinnerStatus.ACTIVE.value


class PaymentEvent(Base):
    __tablename__ = "payment_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    payment_session_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    payment_intent_id: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    amount_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False)
    raw_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class AdminNotification(Base):
    __tablename__ = "admin_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
