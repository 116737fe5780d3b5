"""Ticket pool data access helpers."""

from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from raffle.models import Entry, Ticket


class TicketRepository:
    """Encapsulate reads and bulk writes against a raffle's ticket pool."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def add_block(self, raffle_id: int, entry: Entry, start: int, end: int) -> list[Ticket]:
        tickets = [
            Ticket(
                raffle_id=raffle_id,
                entry_id=entry.id,
                email=entry.email,
                ticket_number=number,
            )
            for number in range(start, end + 1)
        ]
        self._session.add_all(tickets)
        self._session.flush()
        return tickets

    def delete_all(self, raffle_id: int) -> int:
        # Executed immediately so re-inserted numbers never collide with the
        # rows being removed in the same transaction.
        result = self._session.execute(delete(Ticket).where(Ticket.raffle_id == raffle_id))
        return int(result.rowcount or 0)

    # ------------------------------------------------------------------
    # Queries

    def for_entry(self, entry_id: int) -> list[Ticket]:
        query = select(Ticket).where(Ticket.entry_id == entry_id).order_by(Ticket.ticket_number.asc())
        return list(self._session.execute(query).scalars().all())

    def all_tickets(self, raffle_id: int) -> list[Ticket]:
        query = select(Ticket).where(Ticket.raffle_id == raffle_id).order_by(Ticket.ticket_number.asc())
        return list(self._session.execute(query).scalars().all())

    def ticket_numbers(self, raffle_id: int) -> list[int]:
        query = (
            select(Ticket.ticket_number)
            .where(Ticket.raffle_id == raffle_id)
            .order_by(Ticket.ticket_number.asc())
        )
        return list(self._session.execute(query).scalars().all())

    def count(self, raffle_id: int) -> int:
        query = select(func.count(Ticket.id)).where(Ticket.raffle_id == raffle_id)
        return int(self._session.execute(query).scalar_one() or 0)

    def by_email(self, raffle_id: int, email: str) -> list[Ticket]:
        query = (
            select(Ticket)
            .where(Ticket.raffle_id == raffle_id, Ticket.email == email)
            .order_by(Ticket.ticket_number.asc())
        )
        return list(self._session.execute(query).scalars().all())

    def by_number(self, raffle_id: int, ticket_number: int) -> Ticket | None:
        query = select(Ticket).where(
            Ticket.raffle_id == raffle_id, Ticket.ticket_number == ticket_number
        )
        return self._session.execute(query).scalars().first()

    def counts_by_email(self, raffle_id: int) -> list[tuple[str, int]]:
        rows = self._session.execute(
            select(Ticket.email, func.count(Ticket.id))
            .where(Ticket.raffle_id == raffle_id)
            .group_by(Ticket.email)
            .order_by(func.count(Ticket.id).desc(), Ticket.email.asc())
        ).all()
        return [(email, int(count)) for email, count in rows]
