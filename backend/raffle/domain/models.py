"""Typed results returned by the allocation, draw and payment operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class DrawState(str, Enum):
    NO_WINNERS_YET = "no_winners_yet"
    PARTIALLY_SELECTED = "partially_selected"
    COMPLETE = "complete"

    @classmethod
    def from_counts(cls, active_winners: int, max_winners: int) -> "DrawState":
        if active_winners <= 0:
            return cls.NO_WINNERS_YET
        if active_winners < max_winners:
            return cls.PARTIALLY_SELECTED
        return cls.COMPLETE


@dataclass(slots=True)
class TicketAssignment:
    """Ticket block owned by one entry."""

    entry_id: int
    email: str
    tickets_assigned: int
    start_ticket_number: int | None
    end_ticket_number: int | None
    already_assigned: bool = False


@dataclass(slots=True)
class RebuildSummary:
    raffle_id: int
    deleted_tickets: int
    recreated_tickets: int
    raffle_entries: int
    direct_purchases: int
    first_ticket_number: int | None
    last_ticket_number: int | None

    @property
    def final_ticket_range(self) -> str:
        if self.first_ticket_number is None or self.last_ticket_number is None:
            return "None"
        return f"{self.first_ticket_number} to {self.last_ticket_number}"


@dataclass(slots=True)
class IntegrityReport:
    is_valid: bool
    total_tickets: int
    expected_tickets: int
    issues: list[str] = field(default_factory=list)
    completed_entries: int = 0
    raffle_entries: int = 0
    direct_purchases: int = 0


@dataclass(slots=True)
class ParticipantTickets:
    email: str
    ticket_count: int


@dataclass(slots=True)
class TicketDistribution:
    total_tickets: int
    unique_participants: int
    average_tickets_per_participant: float
    distribution: list[ParticipantTickets] = field(default_factory=list)


@dataclass(slots=True)
class DrawResult:
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


@dataclass(slots=True)
class VerificationResult:
    winner_id: int
    is_valid: bool
    expected_hash: str
    actual_hash: str
    hash_scheme: str
    winning_ticket_number: int
    pool_size_at_draw: int
    winner_total_tickets: int
    winner_ticket_numbers: list[int] = field(default_factory=list)
    winning_probability: float = 0.0


@dataclass(slots=True)
class WinnerSlots:
    raffle_id: int
    max_winners: int
    active_winners: int
    state: DrawState

    @property
    def remaining_winners(self) -> int:
        return max(self.max_winners - self.active_winners, 0)


@dataclass(slots=True)
class ResetSummary:
    raffle_id: int
    winners_removed: int
    raffle_name: str


class AutoDrawSkip(str, Enum):
    NOT_ENDED = "not_ended"
    COMPLETE = "complete"


@dataclass(slots=True)
class AutoDrawOutcome:
    """What the end-of-raffle trigger did for one raffle."""

    raffle_id: int
    result: DrawResult | None = None
    skipped: AutoDrawSkip | None = None

    @property
    def drawn(self) -> bool:
        return self.result is not None


@dataclass(slots=True)
class PaymentOutcome:
    """Result of applying one payment webhook to an entry."""

    entry_id: int | None
    email: str | None
    status: str
    already_processed: bool = False
    entry_not_found: bool = False
    assignment: TicketAssignment | None = None


@dataclass(slots=True)
class TotalsSync:
    raffle_id: int
    previous_total: int
    new_total: int
    completed_transactions: int

    @property
    def difference(self) -> int:
        return self.previous_total - self.new_total

    @property
    def sync_needed(self) -> bool:
        return self.previous_total != self.new_total


@dataclass(slots=True)
class RaffleStats:
    raffle_id: int
    name: str
    total_entries: int
    total_revenue_cents: int
    unique_participants: int
    stored_total: int
    total_tickets: int

    @property
    def needs_sync(self) -> bool:
        return self.stored_total != self.total_entries


@dataclass(slots=True)
class WinnerSelectedEvent:
    """Payload handed to the admin notification collaborator after a draw."""

    winner_id: int
    raffle_id: int
    raffle_name: str
    winner_email: str
    winning_ticket_number: int
    total_tickets: int
    winner_number: int
    total_winners: int
    selected_at: datetime
