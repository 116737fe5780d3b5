from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from .domain import AutoDrawSkip, DrawState


class RaffleBase(BaseModel):
    name: str = Field(min_length=1)
    product_name: str = Field(min_length=1)
    product_description: str | None = None
    start_date: datetime
    end_date: datetime
    price_per_entry_cents: int = Field(gt=0)
    bundle_price_cents: int | None = Field(default=None, gt=0)
    bundle_size: int | None = Field(default=None, ge=2)


class RaffleCreate(RaffleBase):
    max_winners: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_window(self) -> "RaffleCreate":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class RaffleUpdateRequest(BaseModel):
    name: str | None = None
    product_name: str | None = None
    product_description: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    price_per_entry_cents: int | None = Field(default=None, gt=0)
    bundle_price_cents: int | None = Field(default=None, gt=0)
    bundle_size: int | None = Field(default=None, ge=2)
    max_winners: int | None = Field(default=None, ge=1)
    is_active: bool | None = None


class RaffleExtend(BaseModel):
    end_date: datetime


class Raffle(RaffleBase):
    id: int
    max_winners: int
    is_active: bool
    total_entries: int
    ticket_sequence: int
    winner_email: str | None = None
    winner_selected_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RaffleList(BaseModel):
    total: int
    items: list[Raffle]


class EntryCreate(BaseModel):
    email: str = Field(min_length=3)
    quantity: int = Field(ge=1)
    raffle_id: int | None = None
    product_id: str | None = None
    bundle: bool = False
    payment_session_id: str | None = None
    phone: str | None = None
    amount_cents: int | None = Field(default=None, ge=0)

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class Entry(BaseModel):
    id: int
    raffle_id: int
    email: str
    quantity: int
    amount_cents: int
    bundle: bool
    product_id: str | None = None
    purchase_type: str
    payment_status: str
    payment_session_id: str | None = None
    created_at: datetime
    completed_at: datetime | None = None

    model_config = {"from_attributes": True}


class PaymentSucceeded(BaseModel):
    payment_session_id: str
    payment_intent_id: str | None = None
    event_id: str | None = None
    raw_data: dict[str, Any] | None = None


class PaymentFailed(BaseModel):
    payment_session_id: str
    event_id: str | None = None
    error_message: str | None = None
    raw_data: dict[str, Any] | None = None


class TicketAssignment(BaseModel):
    entry_id: int
    email: str
    tickets_assigned: int
    start_ticket_number: int | None = None
    end_ticket_number: int | None = None
    already_assigned: bool = False

    model_config = {"from_attributes": True}


class PaymentOutcome(BaseModel):
    entry_id: int | None = None
    email: str | None = None
    status: str
    already_processed: bool = False
    entry_not_found: bool = False
    assignment: TicketAssignment | None = None

    model_config = {"from_attributes": True}


class Ticket(BaseModel):
    ticket_number: int
    entry_id: int
    email: str
    created_at: datetime

    model_config = {"from_attributes": True}


class TicketList(BaseModel):
    total: int
    items: list[Ticket]


class IntegrityReport(BaseModel):
    is_valid: bool
    total_tickets: int
    expected_tickets: int
    issues: list[str] = Field(default_factory=list)
    completed_entries: int = 0
    raffle_entries: int = 0
    direct_purchases: int = 0

    model_config = {"from_attributes": True}


class RebuildSummary(BaseModel):
    raffle_id: int
    deleted_tickets: int
    recreated_tickets: int
    raffle_entries: int
    direct_purchases: int
    first_ticket_number: int | None = None
    last_ticket_number: int | None = None
    final_ticket_range: str

    model_config = {"from_attributes": True}


class ParticipantTickets(BaseModel):
    email: str
    ticket_count: int

    model_config = {"from_attributes": True}


class TicketDistribution(BaseModel):
    total_tickets: int
    unique_participants: int
    average_tickets_per_participant: float
    distribution: list[ParticipantTickets] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class DrawResult(BaseModel):
    winner_id: int
    raffle_id: int
    winner_email: str
    winning_ticket_number: int
    total_tickets: int
    verification_hash: str
    random_seed: str
    selected_at: datetime
    winner_number: int
    total_winners: int
    remaining_winners: int

    model_config = {"from_attributes": True}


class Winner(BaseModel):
    id: int
    raffle_id: int
    winner_email: str
    entry_id: int
    winning_ticket_number: int
    pool_size_at_draw: int
    random_seed: str
    verification_hash: str
    hash_scheme: str
    selection_method: str
    status: str
    selected_at: datetime
    contacted_at: datetime | None = None
    prize_delivered_at: datetime | None = None
    delivery_address: str | None = None
    notes: str | None = None

    model_config = {"from_attributes": True}


class WinnerList(BaseModel):
    raffle_id: int
    max_winners: int
    active_winners: int
    remaining_winners: int
    state: str
    items: list[Winner]


class VerificationResult(BaseModel):
    winner_id: int
    is_valid: bool
    expected_hash: str
    actual_hash: str
    hash_scheme: str
    winning_ticket_number: int
    pool_size_at_draw: int
    winner_total_tickets: int
    winner_ticket_numbers: list[int] = Field(default_factory=list)
    winning_probability: float

    model_config = {"from_attributes": True}


class ContactUpdate(BaseModel):
    notes: str | None = None


class DeliveryUpdate(BaseModel):
    delivery_address: str | None = None
    notes: str | None = None


class WinnerSlots(BaseModel):
    raffle_id: int
    max_winners: int
    active_winners: int
    remaining_winners: int
    state: DrawState

    model_config = {"from_attributes": True}


class AutoDrawOutcome(BaseModel):
    raffle_id: int
    drawn: bool
    skipped: AutoDrawSkip | None = None
    result: DrawResult | None = None

    model_config = {"from_attributes": True}


class ResetRequest(BaseModel):
    confirmation: str


class ResetSummary(BaseModel):
    raffle_id: int
    winners_removed: int
    raffle_name: str

    model_config = {"from_attributes": True}


class TotalsSync(BaseModel):
    raffle_id: int
    previous_total: int
    new_total: int
    difference: int
    completed_transactions: int
    sync_needed: bool

    model_config = {"from_attributes": True}


class RaffleStats(BaseModel):
    raffle_id: int
    name: str
    total_entries: int
    total_revenue_cents: int
    unique_participants: int
    stored_total: int
    total_tickets: int
    needs_sync: bool

    model_config = {"from_attributes": True}


class PaymentEvent(BaseModel):
    id: int
    event_id: str
    event_type: str
    status: str
    payment_session_id: str | None = None
    payment_intent_id: str | None = None
    email: str | None = None
    amount_cents: int | None = None
    processed: bool
    error: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AdminNotification(BaseModel):
    id: int
    type: str
    title: str
    message: str
    data: dict[str, Any] | None = None
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ErrorResponse(BaseModel):
    detail: str
    error: str
    issues: list[str] | None = None
