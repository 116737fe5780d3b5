"""Winner draws over a raffle's ticket pool and their audit trail."""

from __future__ import annotations

import secrets
from collections.abc import Callable

from loguru import logger
from sqlalchemy.orm import Session

from raffle.core.config import Settings, settings as default_settings
from raffle.db import transaction
from raffle.domain import (
    AllWinnersAlreadySelected,
    AutoDrawOutcome,
    AutoDrawSkip,
    DataCorruption,
    DrawResult,
    DrawState,
    EmptyPool,
    NoAvailableTickets,
    RaffleError,
    RaffleNotEnded,
    RaffleNotFound,
    ResetNotConfirmed,
    ResetSummary,
    TicketIntegrityError,
    VerificationResult,
    WinnerNotFound,
    WinnerSelectedEvent,
    WinnerSlots,
)
from raffle.domain.audit import (
    SELECTION_METHOD,
    RandBelow,
    choose_uniformly,
    compute_verification_hash,
    generate_random_seed,
    hashes_match,
)
from raffle.locking import raffle_lock
from raffle.models import RaffleConfig, WinnerRecord, utcnow
from raffle.repositories import EntryRepository, RaffleRepository, TicketRepository, WinnerRepository
from raffle.services.raffle_service import has_ended
from raffle.services.ticket_allocator import TicketAllocator

WinnerCallback = Callable[[WinnerSelectedEvent], None]


class WinnerSelector:
    """Draw winners uniformly from the tickets not already held by an active winner."""

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        randbelow: RandBelow = secrets.randbelow,
        on_winner: WinnerCallback | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or default_settings
        self._randbelow = randbelow
        self._on_winner = on_winner
        self._raffles = RaffleRepository(session)
        self._entries = EntryRepository(session)
        self._tickets = TicketRepository(session)
        self._winners = WinnerRepository(session)
        self._allocator = TicketAllocator(session)

    # ------------------------------------------------------------------
    # Draws

    def select_winner(
        self,
        raffle_id: int,
        *,
        force: bool = False,
        on_winner: WinnerCallback | None = None,
    ) -> DrawResult:
        """Draw the next winner for ``raffle_id`` and persist its audit record.

        Fails with ``RaffleNotEnded`` while the raffle is still open unless
        ``force`` is set, ``AllWinnersAlreadySelected`` once every slot is
        filled, ``TicketIntegrityError`` when the pool is not a gap-free run,
        ``EmptyPool`` when nobody holds a ticket and ``NoAvailableTickets``
        when every ticket already belongs to an active winner. ``on_winner``
        overrides the notification callback given to the constructor.
        """

        with raffle_lock(raffle_id), transaction(self._session):
            raffle = self._raffles.get_for_update(raffle_id)
            if raffle is None:
                raise RaffleNotFound(f"Raffle {raffle_id} not found")

            if not force and not has_ended(raffle):
                raise RaffleNotEnded(
                    f"Raffle {raffle_id} has not ended yet; winner selection opens at its end date"
                )

            active = self._winners.active_for_raffle(raffle_id)
            if len(active) >= raffle.max_winners:
                raise AllWinnersAlreadySelected(raffle.max_winners)

            report = self._allocator.validate_integrity(raffle_id)
            if not report.is_valid:
                raise TicketIntegrityError(report.issues)

            tickets = self._tickets.all_tickets(raffle_id)
            if not tickets:
                raise EmptyPool(f"No tickets found for raffle {raffle_id}")

            excluded = {winner.winning_ticket_number for winner in active}
            available = [ticket for ticket in tickets if ticket.ticket_number not in excluded]
            if not available:
                raise NoAvailableTickets(
                    f"All {len(tickets)} tickets of raffle {raffle_id} already belong to a winner"
                )

            selected_at = utcnow()
            seed = generate_random_seed(now=selected_at)
            winning_ticket = choose_uniformly(available, randbelow=self._randbelow)

            entry = self._entries.get(winning_ticket.entry_id)
            if entry is None:
                logger.error(
                    "Winning ticket {} of raffle {} references missing entry {}",
                    winning_ticket.ticket_number,
                    raffle_id,
                    winning_ticket.entry_id,
                )
                raise DataCorruption(
                    f"Entry {winning_ticket.entry_id} for winning ticket "
                    f"{winning_ticket.ticket_number} does not exist"
                )

            pool_size = len(tickets)
            scheme = self._settings.verification_hash_scheme
            verification_hash = compute_verification_hash(
                winning_ticket.ticket_number, pool_size, seed, entry.email, scheme=scheme
            )
            record = self._winners.create(
                raffle_id=raffle_id,
                winner_email=entry.email,
                entry_id=entry.id,
                winning_ticket_number=winning_ticket.ticket_number,
                pool_size_at_draw=pool_size,
                random_seed=seed,
                verification_hash=verification_hash,
                hash_scheme=scheme,
                selection_method=SELECTION_METHOD,
                selected_at=selected_at,
            )
            if not active:
                self._raffles.set_first_winner(raffle, entry.email, selected_at)

            winner_number = len(active) + 1
            result = DrawResult(
                winner_id=record.id,
                raffle_id=raffle_id,
                winner_email=entry.email,
                winning_ticket_number=winning_ticket.ticket_number,
                total_tickets=pool_size,
                verification_hash=verification_hash,
                random_seed=seed,
                selected_at=selected_at,
                winner_number=winner_number,
                total_winners=raffle.max_winners,
                remaining_winners=raffle.max_winners - winner_number,
            )
            raffle_name = raffle.name

        logger.info(
            "Winner {} of {} selected for raffle {}: {} with ticket #{} of {}",
            result.winner_number,
            result.total_winners,
            raffle_id,
            result.winner_email,
            result.winning_ticket_number,
            result.total_tickets,
        )
        self._dispatch(result, raffle_name, on_winner or self._on_winner)
        return result

    def _dispatch(self, result: DrawResult, raffle_name: str, callback: WinnerCallback | None) -> None:
        if callback is None:
            return
        event = WinnerSelectedEvent(
            winner_id=result.winner_id,
            raffle_id=result.raffle_id,
            raffle_name=raffle_name,
            winner_email=result.winner_email,
            winning_ticket_number=result.winning_ticket_number,
            total_tickets=result.total_tickets,
            winner_number=result.winner_number,
            total_winners=result.total_winners,
            selected_at=result.selected_at,
        )
        try:
            callback(event)
        except Exception:
            logger.exception("Failed to dispatch winner notification for winner {}", result.winner_id)

    # ------------------------------------------------------------------
    # End-of-raffle trigger

    def draw_if_ended(self, raffle_id: int, *, on_winner: WinnerCallback | None = None) -> AutoDrawOutcome:
        """Draw the next winner only if the raffle has ended and a slot is open.

        Integrity, empty-pool and corruption failures still raise.
        """

        try:
            result = self.select_winner(raffle_id, on_winner=on_winner)
        except RaffleNotEnded:
            logger.debug("Raffle {} is still open; skipping scheduled draw", raffle_id)
            return AutoDrawOutcome(raffle_id=raffle_id, skipped=AutoDrawSkip.NOT_ENDED)
        except AllWinnersAlreadySelected:
            logger.debug("Raffle {} already has all its winners", raffle_id)
            return AutoDrawOutcome(raffle_id=raffle_id, skipped=AutoDrawSkip.COMPLETE)
        return AutoDrawOutcome(raffle_id=raffle_id, result=result)

    def draw_ended_raffles(self, *, on_winner: WinnerCallback | None = None) -> list[AutoDrawOutcome]:
        """Run the end-of-raffle trigger for every ended raffle with an open slot."""

        outcomes: list[AutoDrawOutcome] = []
        for raffle in self._raffles.ended_by(utcnow()):
            if self._winners.count_active(raffle.id) >= raffle.max_winners:
                continue
            try:
                outcomes.append(self.draw_if_ended(raffle.id, on_winner=on_winner))
            except RaffleError:
                logger.exception("Scheduled draw failed for raffle {}", raffle.id)
        logger.info("Scheduled draw pass finished: {} winner(s) drawn", sum(o.drawn for o in outcomes))
        return outcomes

    # ------------------------------------------------------------------
    # Audit

    def verify(self, winner_id: int) -> VerificationResult:
        """Recompute a winner's verification hash with the scheme it was stored under."""

        record = self._require_winner(winner_id)
        expected = compute_verification_hash(
            record.winning_ticket_number,
            record.pool_size_at_draw,
            record.random_seed,
            record.winner_email,
            scheme=record.hash_scheme,
        )
        owned = [
            ticket.ticket_number
            for ticket in self._tickets.by_email(record.raffle_id, record.winner_email)
        ]
        probability = (
            len(owned) / record.pool_size_at_draw * 100 if record.pool_size_at_draw else 0.0
        )
        is_valid = hashes_match(expected, record.verification_hash)
        if not is_valid:
            logger.warning("Verification hash mismatch for winner {}", winner_id)
        return VerificationResult(
            winner_id=record.id,
            is_valid=is_valid,
            expected_hash=expected,
            actual_hash=record.verification_hash,
            hash_scheme=record.hash_scheme,
            winning_ticket_number=record.winning_ticket_number,
            pool_size_at_draw=record.pool_size_at_draw,
            winner_total_tickets=len(owned),
            winner_ticket_numbers=owned,
            winning_probability=probability,
        )

    # ------------------------------------------------------------------
    # Winner bookkeeping

    def winner_slots(self, raffle_id: int) -> WinnerSlots:
        raffle = self._require_raffle(raffle_id)
        active = self._winners.count_active(raffle_id)
        return WinnerSlots(
            raffle_id=raffle_id,
            max_winners=raffle.max_winners,
            active_winners=active,
            state=DrawState.from_counts(active, raffle.max_winners),
        )

    def list_winners(self, raffle_id: int, *, include_inactive: bool = False) -> list[WinnerRecord]:
        self._require_raffle(raffle_id)
        return self._winners.list_for_raffle(raffle_id, include_inactive=include_inactive)

    def get_winner(self, winner_id: int) -> WinnerRecord:
        return self._require_winner(winner_id)

    def mark_contacted(self, winner_id: int, notes: str | None = None) -> WinnerRecord:
        with transaction(self._session):
            record = self._require_winner(winner_id)
            record.contacted_at = utcnow()
            if notes is not None:
                record.notes = notes
        logger.info("Winner {} marked as contacted", winner_id)
        return record

    def mark_prize_delivered(
        self,
        winner_id: int,
        delivery_address: str | None = None,
        notes: str | None = None,
    ) -> WinnerRecord:
        with transaction(self._session):
            record = self._require_winner(winner_id)
            record.prize_delivered_at = utcnow()
            if delivery_address is not None:
                record.delivery_address = delivery_address
            if notes is not None:
                record.notes = notes
        logger.info("Prize for winner {} marked as delivered", winner_id)
        return record

    def reset_winners(self, raffle_id: int, confirmation: str) -> ResetSummary:
        """Supersede every active winner so the raffle can be drawn again."""

        if confirmation != self._settings.reset_confirmation_phrase:
            raise ResetNotConfirmed(
                f"Confirmation phrase required; pass {self._settings.reset_confirmation_phrase!r}"
            )
        with raffle_lock(raffle_id), transaction(self._session):
            raffle = self._raffles.get_for_update(raffle_id)
            if raffle is None:
                raise RaffleNotFound(f"Raffle {raffle_id} not found")
            removed = self._winners.supersede_active(raffle_id)
            self._raffles.set_first_winner(raffle, None, None)
            raffle_name = raffle.name
        logger.warning("Reset {} winner(s) for raffle {}", removed, raffle_id)
        return ResetSummary(raffle_id=raffle_id, winners_removed=removed, raffle_name=raffle_name)

    # ------------------------------------------------------------------
    # Helpers

    def _require_raffle(self, raffle_id: int) -> RaffleConfig:
        raffle = self._raffles.get(raffle_id)
        if raffle is None:
            raise RaffleNotFound(f"Raffle {raffle_id} not found")
        return raffle

    def _require_winner(self, winner_id: int) -> WinnerRecord:
        record = self._winners.get(winner_id)
        if record is None:
            raise WinnerNotFound(f"Winner {winner_id} not found")
        return record
