"""Raffle configuration persistence helpers."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from raffle.models import RaffleConfig


class RaffleRepository:
    """Encapsulate raffle configuration reads, writes and sequence reservation."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Queries

    def get(self, raffle_id: int) -> RaffleConfig | None:
        return self._session.get(RaffleConfig, raffle_id)

    def get_for_update(self, raffle_id: int) -> RaffleConfig | None:
        query = (
            select(RaffleConfig)
            .where(RaffleConfig.id == raffle_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._session.execute(query).scalar_one_or_none()

    def get_active(self) -> RaffleConfig | None:
        query = (
            select(RaffleConfig)
            .where(RaffleConfig.is_active.is_(True))
            .order_by(RaffleConfig.id.desc())
            .limit(1)
        )
        return self._session.execute(query).scalar_one_or_none()

    def list_raffles(self) -> list[RaffleConfig]:
        query = select(RaffleConfig).order_by(RaffleConfig.id.desc())
        return list(self._session.execute(query).scalars().all())

    def ended_by(self, moment: datetime) -> list[RaffleConfig]:
        query = (
            select(RaffleConfig)
            .where(RaffleConfig.end_date <= moment)
            .order_by(RaffleConfig.end_date.asc(), RaffleConfig.id.asc())
        )
        return list(self._session.execute(query).scalars().all())

    # ------------------------------------------------------------------
    # Mutations

    def create(
        self,
        *,
        name: str,
        product_name: str,
        start_date: datetime,
        end_date: datetime,
        price_per_entry_cents: int,
        max_winners: int,
        bundle_price_cents: int | None = None,
        bundle_size: int | None = None,
        product_description: str | None = None,
    ) -> RaffleConfig:
        record = RaffleConfig(
            name=name,
            product_name=product_name,
            product_description=product_description,
            start_date=start_date,
            end_date=end_date,
            price_per_entry_cents=price_per_entry_cents,
            bundle_price_cents=bundle_price_cents,
            bundle_size=bundle_size,
            max_winners=max_winners,
            is_active=True,
            total_entries=0,
            ticket_sequence=0,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def deactivate_all_except(self, raffle_id: int) -> None:
        self._session.execute(
            update(RaffleConfig)
            .where(RaffleConfig.id != raffle_id, RaffleConfig.is_active.is_(True))
            .values(is_active=False)
        )

    def apply_updates(self, raffle: RaffleConfig, updates: dict[str, Any]) -> RaffleConfig:
        for key, value in updates.items():
            if value is None:
                continue
            setattr(raffle, key, value)
        self._session.flush()
        return raffle

    def reserve_ticket_range(self, raffle: RaffleConfig, count: int) -> tuple[int, int]:
        """Advance the raffle's ticket sequence by ``count`` and return the reserved range.

        The caller must hold the raffle lock and a row lock on ``raffle``.
        """

        if count < 1:
            raise ValueError("ticket range must contain at least one ticket")
        start = raffle.ticket_sequence + 1
        end = start + count - 1
        raffle.ticket_sequence = end
        self._session.flush()
        return start, end

    def reset_ticket_sequence(self, raffle: RaffleConfig, value: int) -> None:
        raffle.ticket_sequence = value
        self._session.flush()

    def set_first_winner(self, raffle: RaffleConfig, email: str | None, selected_at: datetime | None) -> None:
        raffle.winner_email = email
        raffle.winner_selected_at = selected_at
        self._session.flush()
