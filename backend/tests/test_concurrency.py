from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine

from raffle.db import Base, create_session_factory
from raffle.domain import AllWinnersAlreadySelected
from raffle.models import PaymentStatus, PurchaseType, WinnerRecord
from raffle.repositories import EntryRepository, RaffleRepository, TicketRepository
from raffle.services.ticket_allocator import TicketAllocator
from raffle.services.winner_selector import WinnerSelector


@pytest.fixture
def file_session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'raffle.db'}",
        future=True,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def paid_raffle(file_session_factory):
    """Ended single-winner raffle with 30 completed entries and no tickets yet."""

    now = datetime.now(timezone.utc)
    session = file_session_factory()
    try:
        raffle = RaffleRepository(session).create(
            name="Gold Rush",
            product_name="1oz gold bar",
            start_date=now - timedelta(days=7),
            end_date=now - timedelta(minutes=5),
            price_per_entry_cents=500,
            max_winners=1,
        )
        entries = EntryRepository(session)
        entry_ids = []
        for index in range(30):
            entry = entries.create(
                raffle_id=raffle.id,
                email=f"buyer{index}@example.com",
                quantity=index % 3 + 1,
                amount_cents=(index % 3 + 1) * 500,
                purchase_type=PurchaseType.RAFFLE,
            )
            entry.payment_status = PaymentStatus.COMPLETED.value
            entry.completed_at = now - timedelta(minutes=30 - index)
            entry_ids.append(entry.id)
        session.commit()
        expected_tickets = sum(index % 3 + 1 for index in range(30))
        return raffle.id, entry_ids, expected_tickets
    finally:
        session.close()


def _in_session(factory, operation):
    session = factory()
    try:
        return operation(session)
    finally:
        session.close()


def test_concurrent_assignment_keeps_the_pool_contiguous(file_session_factory, paid_raffle):
    raffle_id, entry_ids, expected_tickets = paid_raffle
    calls = entry_ids * 2

    with ThreadPoolExecutor(max_workers=20) as pool:
        assignments = list(
            pool.map(
                lambda entry_id: _in_session(
                    file_session_factory, lambda s: TicketAllocator(s).assign_tickets(entry_id)
                ),
                calls,
            )
        )

    blocks = {}
    for assignment in assignments:
        block = (assignment.start_ticket_number, assignment.end_ticket_number)
        assert blocks.setdefault(assignment.entry_id, block) == block

    def check(session):
        numbers = TicketRepository(session).ticket_numbers(raffle_id)
        report = TicketAllocator(session).validate_integrity(raffle_id)
        return numbers, report

    numbers, report = _in_session(file_session_factory, check)
    assert sorted(numbers) == list(range(1, expected_tickets + 1))
    assert report.is_valid, report.issues
    assert sum(1 for a in assignments if a.already_assigned) == len(entry_ids)


def test_concurrent_draws_fill_a_single_slot_once(file_session_factory, paid_raffle, test_settings):
    raffle_id, entry_ids, _ = paid_raffle
    for entry_id in entry_ids:
        _in_session(file_session_factory, lambda s: TicketAllocator(s).assign_tickets(entry_id))

    def draw(_):
        def operation(session):
            try:
                return WinnerSelector(session, settings=test_settings).select_winner(raffle_id)
            except AllWinnersAlreadySelected as exc:
                return exc

        return _in_session(file_session_factory, operation)

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(draw, range(8)))

    winners = [o for o in outcomes if not isinstance(o, AllWinnersAlreadySelected)]
    assert len(winners) == 1
    assert len(outcomes) - len(winners) == 7

    def check(session):
        records = session.query(WinnerRecord).all()
        verification = WinnerSelector(session, settings=test_settings).verify(winners[0].winner_id)
        return len(records), verification

    record_count, verification = _in_session(file_session_factory, check)
    assert record_count == 1
    assert verification.is_valid
