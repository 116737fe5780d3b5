"""Domain types, pure checks and errors shared by services and the API."""

from .errors import (
    AllWinnersAlreadySelected,
    DataCorruption,
    EmptyPool,
    EntryNotFound,
    InvalidEntryRequest,
    InvalidEntryState,
    InvalidRaffleConfig,
    NoAvailableTickets,
    NotRaffleEntry,
    RaffleAlreadyDrawn,
    RaffleClosed,
    RaffleError,
    RaffleNotEnded,
    RaffleNotFound,
    ResetNotConfirmed,
    TicketIntegrityError,
    WinnerNotFound,
)
from .integrity import check_ticket_numbers
from .models import (
    AutoDrawOutcome,
    AutoDrawSkip,
    DrawResult,
    DrawState,
    IntegrityReport,
    ParticipantTickets,
    PaymentOutcome,
    RaffleStats,
    RebuildSummary,
    ResetSummary,
    TicketAssignment,
    TicketDistribution,
    TotalsSync,
    VerificationResult,
    WinnerSelectedEvent,
    WinnerSlots,
)

__all__ = [
    "AllWinnersAlreadySelected",
    "DataCorruption",
    "EmptyPool",
    "EntryNotFound",
    "InvalidEntryRequest",
    "InvalidEntryState",
    "InvalidRaffleConfig",
    "NoAvailableTickets",
    "NotRaffleEntry",
    "RaffleAlreadyDrawn",
    "RaffleClosed",
    "RaffleError",
    "RaffleNotEnded",
    "RaffleNotFound",
    "ResetNotConfirmed",
    "TicketIntegrityError",
    "WinnerNotFound",
    "check_ticket_numbers",
    "AutoDrawOutcome",
    "AutoDrawSkip",
    "DrawResult",
    "DrawState",
    "IntegrityReport",
    "ParticipantTickets",
    "PaymentOutcome",
    "RaffleStats",
    "RebuildSummary",
    "ResetSummary",
    "TicketAssignment",
    "TicketDistribution",
    "TotalsSync",
    "VerificationResult",
    "WinnerSelectedEvent",
    "WinnerSlots",
]
