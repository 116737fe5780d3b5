"""Ticket allocation: contiguous, gap-free ticket numbers for paid raffle entries."""

from __future__ import annotations

from loguru import logger
from sqlalchemy.orm import Session

from raffle.db import transaction
from raffle.domain import (
    EntryNotFound,
    IntegrityReport,
    InvalidEntryState,
    NotRaffleEntry,
    ParticipantTickets,
    RaffleNotFound,
    RebuildSummary,
    TicketAssignment,
    TicketDistribution,
    check_ticket_numbers,
)
from raffle.locking import raffle_lock
from raffle.models import Entry, PaymentStatus, RaffleConfig, Ticket
from raffle.repositories import EntryRepository, RaffleRepository, TicketRepository


class TicketAllocator:
    """Mint, rebuild and audit the ticket pool of a raffle."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self._raffles = RaffleRepository(session)
        self._entries = EntryRepository(session)
        self._tickets = TicketRepository(session)

    # ------------------------------------------------------------------
    # Allocation

    def assign_tickets(self, entry_id: int) -> TicketAssignment:
        """Give a completed raffle entry its block of ticket numbers.

        Calling this again for an entry that already owns tickets returns the
        existing block and writes nothing.
        """

        entry = self._entries.get(entry_id)
        if entry is None:
            raise EntryNotFound(f"Entry {entry_id} not found")

        with raffle_lock(entry.raffle_id), transaction(self._session):
            raffle = self._lock_raffle(entry.raffle_id)
            self._session.refresh(entry)
            return self.allocate(raffle, entry)

    def allocate(self, raffle: RaffleConfig, entry: Entry) -> TicketAssignment:
        """Reserve and insert the entry's tickets.

        The caller holds the raffle lock, a row lock on ``raffle`` and an open
        transaction; nothing is committed here.
        """

        if entry.raffle_id != raffle.id:
            raise InvalidEntryState(f"Entry {entry.id} does not belong to raffle {raffle.id}")
        if entry.payment_status != PaymentStatus.COMPLETED.value:
            raise InvalidEntryState(
                f"Cannot assign tickets to entry {entry.id} with payment status {entry.payment_status}"
            )
        if not entry.is_raffle_entry:
            raise NotRaffleEntry(f"Entry {entry.id} is a direct purchase and has no raffle tickets")

        existing = self._tickets.for_entry(entry.id)
        if existing:
            logger.info("Tickets already assigned to entry {}", entry.id)
            return TicketAssignment(
                entry_id=entry.id,
                email=entry.email,
                tickets_assigned=len(existing),
                start_ticket_number=existing[0].ticket_number,
                end_ticket_number=existing[-1].ticket_number,
                already_assigned=True,
            )

        start, end = self._raffles.reserve_ticket_range(raffle, entry.quantity)
        self._tickets.add_block(raffle.id, entry, start, end)
        logger.info(
            "Assigned {} tickets ({} to {}) to {} for raffle {}",
            entry.quantity,
            start,
            end,
            entry.email,
            raffle.id,
        )
        return TicketAssignment(
            entry_id=entry.id,
            email=entry.email,
            tickets_assigned=entry.quantity,
            start_ticket_number=start,
            end_ticket_number=end,
        )

    def rebuild_all_tickets(self, raffle_id: int) -> RebuildSummary:
        """Delete the raffle's tickets and renumber every completed raffle entry from 1."""

        with raffle_lock(raffle_id), transaction(self._session):
            raffle = self._lock_raffle(raffle_id)
            logger.warning("Rebuilding all raffle tickets for raffle {}", raffle_id)

            deleted = self._tickets.delete_all(raffle_id)
            completed = self._entries.completed_entries(raffle_id)
            raffle_entries = [entry for entry in completed if entry.is_raffle_entry]

            next_number = 1
            for entry in raffle_entries:
                end = next_number + entry.quantity - 1
                self._tickets.add_block(raffle_id, entry, next_number, end)
                logger.debug(
                    "Reassigned tickets {} to {} to {}", next_number, end, entry.email
                )
                next_number = end + 1

            recreated = next_number - 1
            self._raffles.reset_ticket_sequence(raffle, recreated)

        summary = RebuildSummary(
            raffle_id=raffle_id,
            deleted_tickets=deleted,
            recreated_tickets=recreated,
            raffle_entries=len(raffle_entries),
            direct_purchases=len(completed) - len(raffle_entries),
            first_ticket_number=1 if recreated else None,
            last_ticket_number=recreated if recreated else None,
        )
        logger.info(
            "Rebuild complete for raffle {}: deleted {}, recreated {} ({})",
            raffle_id,
            summary.deleted_tickets,
            summary.recreated_tickets,
            summary.final_ticket_range,
        )
        return summary

    # ------------------------------------------------------------------
    # Audit

    def validate_integrity(self, raffle_id: int) -> IntegrityReport:
        self._require_raffle(raffle_id)
        numbers = self._tickets.ticket_numbers(raffle_id)
        totals = self._entries.completed_totals(raffle_id)
        expected = totals["raffle_quantity"]
        issues = check_ticket_numbers(numbers, expected)
        if issues:
            logger.warning("Ticket integrity issues for raffle {}: {}", raffle_id, issues)
        return IntegrityReport(
            is_valid=not issues,
            total_tickets=len(numbers),
            expected_tickets=expected,
            issues=issues,
            completed_entries=totals["completed_entries"],
            raffle_entries=totals["raffle_entries"],
            direct_purchases=totals["direct_purchases"],
        )

    # ------------------------------------------------------------------
    # Lookups

    def tickets_for_email(self, raffle_id: int, email: str) -> list[Ticket]:
        return self._tickets.by_email(raffle_id, email.strip().lower())

    def ticket_by_number(self, raffle_id: int, ticket_number: int) -> Ticket | None:
        return self._tickets.by_number(raffle_id, ticket_number)

    def pool_size(self, raffle_id: int) -> int:
        return self._tickets.count(raffle_id)

    def ticket_distribution(self, raffle_id: int) -> TicketDistribution:
        self._require_raffle(raffle_id)
        counts = self._tickets.counts_by_email(raffle_id)
        total = sum(count for _, count in counts)
        participants = len(counts)
        return TicketDistribution(
            total_tickets=total,
            unique_participants=participants,
            average_tickets_per_participant=(total / participants) if participants else 0.0,
            distribution=[ParticipantTickets(email=email, ticket_count=count) for email, count in counts],
        )

    # ------------------------------------------------------------------
    # Helpers

    def _require_raffle(self, raffle_id: int) -> RaffleConfig:
        raffle = self._raffles.get(raffle_id)
        if raffle is None:
            raise RaffleNotFound(f"Raffle {raffle_id} not found")
        return raffle

    def _lock_raffle(self, raffle_id: int) -> RaffleConfig:
        raffle = self._raffles.get_for_update(raffle_id)
        if raffle is None:
            raise RaffleNotFound(f"Raffle {raffle_id} not found")
        return raffle
