"""Raffle configuration and totals reconciliation."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy.orm import Session

from raffle.core.config import Settings, settings as default_settings
from raffle.db import transaction
from raffle.domain import (
    InvalidRaffleConfig,
    RaffleAlreadyDrawn,
    RaffleNotFound,
    RaffleStats,
    TotalsSync,
)
from raffle.locking import raffle_lock
from raffle.models import RaffleConfig, as_utc, utcnow
from raffle.repositories import EntryRepository, RaffleRepository, TicketRepository, WinnerRepository


@dataclass(slots=True)
class RaffleUpdate:
    name: str | None = None
    product_name: str | None = None
    product_description: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    price_per_entry_cents: int | None = None
    bundle_price_cents: int | None = None
    bundle_size: int | None = None
    max_winners: int | None = None
    is_active: bool | None = None

    def to_repository_kwargs(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


def accepts_entries(raffle: RaffleConfig, *, now: datetime | None = None) -> bool:
    moment = now or utcnow()
    return bool(raffle.is_active) and as_utc(raffle.start_date) <= moment <= as_utc(raffle.end_date)


def has_ended(raffle: RaffleConfig, *, now: datetime | None = None) -> bool:
    return as_utc(raffle.end_date) <= (now or utcnow())


def _validate_config(
    *,
    start_date: datetime,
    end_date: datetime,
    price_per_entry_cents: int,
    max_winners: int,
    bundle_price_cents: int | None,
    bundle_size: int | None,
) -> None:
    if as_utc(end_date) <= as_utc(start_date):
        raise InvalidRaffleConfig("end_date must be after start_date")
    if price_per_entry_cents <= 0:
        raise InvalidRaffleConfig("price_per_entry_cents must be positive")
    if max_winners < 1:
        raise InvalidRaffleConfig("max_winners must be at least 1")
    if (bundle_price_cents is None) != (bundle_size is None):
        raise InvalidRaffleConfig("bundle_price_cents and bundle_size must be set together")
    if bundle_size is not None and bundle_size < 2:
        raise InvalidRaffleConfig("bundle_size must be at least 2")
    if bundle_price_cents is not None and bundle_price_cents <= 0:
        raise InvalidRaffleConfig("bundle_price_cents must be positive")


class RaffleService:
    """Create and reconcile raffle configurations."""

    def __init__(self, session: Session, *, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or default_settings
        self._raffles = RaffleRepository(session)
        self._entries = EntryRepository(session)
        self._tickets = TicketRepository(session)
        self._winners = WinnerRepository(session)

    def create_raffle(
        self,
        *,
        name: str,
        product_name: str,
        start_date: datetime,
        end_date: datetime,
        price_per_entry_cents: int,
        max_winners: int | None = None,
        bundle_price_cents: int | None = None,
        bundle_size: int | None = None,
        product_description: str | None = None,
    ) -> RaffleConfig:
        """Create a raffle and make it the only active one."""

        max_winners = max_winners if max_winners is not None else self._settings.default_max_winners
        _validate_config(
            start_date=start_date,
            end_date=end_date,
            price_per_entry_cents=price_per_entry_cents,
            max_winners=max_winners,
            bundle_price_cents=bundle_price_cents,
            bundle_size=bundle_size,
        )
        with transaction(self._session):
            raffle = self._raffles.create(
                name=name,
                product_name=product_name,
                product_description=product_description,
                start_date=start_date,
                end_date=end_date,
                price_per_entry_cents=price_per_entry_cents,
                bundle_price_cents=bundle_price_cents,
                bundle_size=bundle_size,
                max_winners=max_winners,
            )
            self._raffles.deactivate_all_except(raffle.id)
        logger.info("Created raffle {} ({}) with {} winner slot(s)", raffle.id, name, max_winners)
        return raffle

    def update_raffle(self, raffle_id: int, update: RaffleUpdate) -> RaffleConfig:
        with raffle_lock(raffle_id), transaction(self._session):
            raffle = self._raffles.get_for_update(raffle_id)
            if raffle is None:
                raise RaffleNotFound(f"Raffle {raffle_id} not found")

            changes = update.to_repository_kwargs()
            _validate_config(
                start_date=changes.get("start_date", raffle.start_date),
                end_date=changes.get("end_date", raffle.end_date),
                price_per_entry_cents=changes.get("price_per_entry_cents", raffle.price_per_entry_cents),
                max_winners=changes.get("max_winners", raffle.max_winners),
                bundle_price_cents=changes.get("bundle_price_cents", raffle.bundle_price_cents),
                bundle_size=changes.get("bundle_size", raffle.bundle_size),
            )
            if "max_winners" in changes:
                active = self._winners.count_active(raffle_id)
                if changes["max_winners"] < active:
                    raise InvalidRaffleConfig(
                        f"max_winners cannot drop below the {active} winner(s) already selected"
                    )
            self._raffles.apply_updates(raffle, changes)
            if changes.get("is_active"):
                self._raffles.deactivate_all_except(raffle.id)
        logger.info("Updated raffle {}: {}", raffle_id, sorted(changes))
        return raffle

    def get_raffle(self, raffle_id: int) -> RaffleConfig:
        raffle = self._raffles.get(raffle_id)
        if raffle is None:
            raise RaffleNotFound(f"Raffle {raffle_id} not found")
        return raffle

    def get_active_raffle(self) -> RaffleConfig | None:
        return self._raffles.get_active()

    def list_raffles(self) -> list[RaffleConfig]:
        return self._raffles.list_raffles()

    def resolve_raffle_id(self, raffle_id: int | None) -> int:
        """Return ``raffle_id`` if given, otherwise the active raffle's id."""

        if raffle_id is not None:
            return self.get_raffle(raffle_id).id
        active = self._raffles.get_active()
        if active is None:
            raise RaffleNotFound("No active raffle found")
        return active.id

    # ------------------------------------------------------------------
    # Lifecycle

    def end_raffle(self, raffle_id: int, *, now: datetime | None = None) -> RaffleConfig:
        """Close a raffle early: stop entries and move the end date to now."""

        moment = now or utcnow()
        with raffle_lock(raffle_id), transaction(self._session):
            raffle = self._raffles.get_for_update(raffle_id)
            if raffle is None:
                raise RaffleNotFound(f"Raffle {raffle_id} not found")
            if as_utc(raffle.start_date) >= moment:
                raise InvalidRaffleConfig(f"Raffle {raffle_id} has not started yet")
            if as_utc(raffle.end_date) > moment:
                raffle.end_date = moment
            raffle.is_active = False
            ended_at = as_utc(raffle.end_date)
        logger.info("Raffle {} ended at {}", raffle_id, ended_at.isoformat())
        return raffle

    def extend_raffle(
        self, raffle_id: int, new_end_date: datetime, *, now: datetime | None = None
    ) -> RaffleConfig:
        """Push the end date out; refused once any winner has been drawn."""

        moment = now or utcnow()
        if as_utc(new_end_date) <= moment:
            raise InvalidRaffleConfig("New end date must be in the future")
        with raffle_lock(raffle_id), transaction(self._session):
            raffle = self._raffles.get_for_update(raffle_id)
            if raffle is None:
                raise RaffleNotFound(f"Raffle {raffle_id} not found")
            if self._winners.count_active(raffle_id):
                raise RaffleAlreadyDrawn(
                    f"Cannot extend raffle {raffle_id} after a winner has been selected"
                )
            if as_utc(new_end_date) <= as_utc(raffle.start_date):
                raise InvalidRaffleConfig("end_date must be after start_date")
            previous = as_utc(raffle.end_date)
            raffle.end_date = new_end_date
        logger.info(
            "Raffle {} end date moved from {} to {}",
            raffle_id,
            previous.isoformat(),
            as_utc(new_end_date).isoformat(),
        )
        return raffle

    # ------------------------------------------------------------------
    # Totals

    def sync_totals(self, raffle_id: int) -> TotalsSync:
        """Reset the cached entry total to the quantity of completed raffle entries."""

        with raffle_lock(raffle_id), transaction(self._session):
            raffle = self._raffles.get_for_update(raffle_id)
            if raffle is None:
                raise RaffleNotFound(f"Raffle {raffle_id} not found")
            totals = self._entries.completed_totals(raffle_id)
            previous = raffle.total_entries
            raffle.total_entries = totals["raffle_quantity"]

        result = TotalsSync(
            raffle_id=raffle_id,
            previous_total=previous,
            new_total=totals["raffle_quantity"],
            completed_transactions=totals["raffle_entries"],
        )
        if result.sync_needed:
            logger.warning(
                "Raffle {} total_entries corrected from {} to {}",
                raffle_id,
                result.previous_total,
                result.new_total,
            )
        else:
            logger.info("Raffle {} total_entries already in sync ({})", raffle_id, result.new_total)
        return result

    def real_stats(self, raffle_id: int) -> RaffleStats:
        raffle = self.get_raffle(raffle_id)
        totals = self._entries.completed_totals(raffle_id)
        return RaffleStats(
            raffle_id=raffle.id,
            name=raffle.name,
            total_entries=totals["raffle_quantity"],
            total_revenue_cents=totals["revenue_cents"],
            unique_participants=self._entries.unique_completed_emails(raffle_id),
            stored_total=raffle.total_entries,
            total_tickets=self._tickets.count(raffle_id),
        )


__all__ = ["RaffleService", "RaffleUpdate", "accepts_entries", "has_ended"]
