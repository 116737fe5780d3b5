"""Repository abstractions for database interactions."""

from .entry_repository import EntryRepository, PaymentEventRepository
from .notification_repository import NotificationRepository
from .raffle_repository import RaffleRepository
from .ticket_repository import TicketRepository
from .winner_repository import WinnerRepository

__all__ = [
    "EntryRepository",
    "NotificationRepository",
    "PaymentEventRepository",
    "RaffleRepository",
    "TicketRepository",
    "WinnerRepository",
]
