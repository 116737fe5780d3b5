"""Winner record persistence helpers."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from raffle.models import WinnerRecord, WinnerStatus


class WinnerRepository:
    """Encapsulate winner record reads and the few permitted mutations."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, winner_id: int) -> WinnerRecord | None:
        return self._session.get(WinnerRecord, winner_id)

    def active_for_raffle(self, raffle_id: int) -> list[WinnerRecord]:
        query = (
            select(WinnerRecord)
            .where(
                WinnerRecord.raffle_id == raffle_id,
                WinnerRecord.status == WinnerStatus.ACTIVE.value,
            )
            .order_by(WinnerRecord.selected_at.asc(), WinnerRecord.id.asc())
        )
        return list(self._session.execute(query).scalars().all())

    def count_active(self, raffle_id: int) -> int:
        query = select(func.count(WinnerRecord.id)).where(
            WinnerRecord.raffle_id == raffle_id,
            WinnerRecord.status == WinnerStatus.ACTIVE.value,
        )
        return int(self._session.execute(query).scalar_one() or 0)

    def list_for_raffle(self, raffle_id: int, *, include_inactive: bool = False) -> list[WinnerRecord]:
        query = select(WinnerRecord).where(WinnerRecord.raffle_id == raffle_id)
        if not include_inactive:
            query = query.where(WinnerRecord.status == WinnerStatus.ACTIVE.value)
        query = query.order_by(WinnerRecord.selected_at.desc(), WinnerRecord.id.desc())
        return list(self._session.execute(query).scalars().all())

    def create(
        self,
        *,
        raffle_id: int,
        winner_email: str,
        entry_id: int,
        winning_ticket_number: int,
        pool_size_at_draw: int,
        random_seed: str,
        verification_hash: str,
        hash_scheme: str,
        selection_method: str,
        selected_at: datetime,
    ) -> WinnerRecord:
        record = WinnerRecord(
            raffle_id=raffle_id,
            winner_email=winner_email,
            entry_id=entry_id,
            winning_ticket_number=winning_ticket_number,
            pool_size_at_draw=pool_size_at_draw,
            random_seed=random_seed,
            verification_hash=verification_hash,
            hash_scheme=hash_scheme,
            selection_method=selection_method,
            status=WinnerStatus.ACTIVE.value,
            selected_at=selected_at,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def supersede_active(self, raffle_id: int) -> int:
        result = self._session.execute(
            update(WinnerRecord)
            .where(
                WinnerRecord.raffle_id == raffle_id,
                WinnerRecord.status == WinnerStatus.ACTIVE.value,
            )
            .values(status=WinnerStatus.SUPERSEDED.value)
            .execution_options(synchronize_session="fetch")
        )
        return int(result.rowcount or 0)
