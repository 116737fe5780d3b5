"""Error taxonomy for ticket allocation, draws and payment handling."""

from __future__ import annotations

from collections.abc import Sequence


class RaffleError(Exception):
    """Base class for operator-reportable raffle failures."""

    status_code = 400


class RaffleNotFound(RaffleError):
    status_code = 404


class EntryNotFound(RaffleError):
    status_code = 404


class WinnerNotFound(RaffleError):
    status_code = 404


class InvalidEntryRequest(RaffleError):
    status_code = 422


class InvalidRaffleConfig(RaffleError):
    status_code = 422


class RaffleClosed(RaffleError):
    status_code = 409


class RaffleNotEnded(RaffleError):
    """The raffle is still open; drawing requires `force`."""

    status_code = 409


class RaffleAlreadyDrawn(RaffleError):
    status_code = 409


class InvalidEntryState(RaffleError):
    status_code = 409


class NotRaffleEntry(RaffleError):
    """The entry is a direct merchandise purchase and owns no tickets."""

    status_code = 409


class AllWinnersAlreadySelected(RaffleError):
    status_code = 409

    def __init__(self, max_winners: int) -> None:
        super().__init__(
            f"All {max_winners} winner(s) have already been selected for this raffle"
        )
        self.max_winners = max_winners


class EmptyPool(RaffleError):
    status_code = 409


class NoAvailableTickets(RaffleError):
    status_code = 409


class TicketIntegrityError(RaffleError):
    """The ticket pool is not a gap-free run; a rebuild is required before drawing."""

    status_code = 409

    def __init__(self, issues: Sequence[str]) -> None:
        self.issues = list(issues)
        super().__init__("Ticket integrity check failed: " + ", ".join(self.issues))


class DataCorruption(RaffleError):
    status_code = 500


class ResetNotConfirmed(RaffleError):
    status_code = 400


__all__ = [
    "RaffleError",
    "RaffleNotFound",
    "EntryNotFound",
    "WinnerNotFound",
    "InvalidEntryRequest",
    "InvalidRaffleConfig",
    "RaffleClosed",
    "RaffleNotEnded",
    "RaffleAlreadyDrawn",
    "InvalidEntryState",
    "NotRaffleEntry",
    "AllWinnersAlreadySelected",
    "EmptyPool",
    "NoAvailableTickets",
    "TicketIntegrityError",
    "DataCorruption",
    "ResetNotConfirmed",
]
