from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from raffle.domain import (
    AllWinnersAlreadySelected,
    AutoDrawOutcome,
    AutoDrawSkip,
    DrawResult,
    DrawState,
    IntegrityReport,
    PaymentOutcome,
    RaffleAlreadyDrawn,
    RaffleNotEnded,
    RebuildSummary,
    ResetSummary,
    TicketAssignment,
    TicketIntegrityError,
    VerificationResult,
    WinnerNotFound,
    WinnerSlots,
)
from raffle.db import get_db
from raffle.main import (
    _payment_service,
    _raffle_service,
    _ticket_allocator,
    _winner_notifier,
    _winner_selector,
    app,
)
from raffle.services.raffle_service import RaffleService
from raffle.services.ticket_allocator import TicketAllocator
from raffle.services.winner_selector import WinnerSelector


@pytest.fixture
def client():
    """Test client that cleans up dependency overrides after each test."""
    yield TestClient(app)
    app.dependency_overrides.clear()


def _draw_result() -> DrawResult:
    return DrawResult(
        winner_id=1,
        raffle_id=1,
        winner_email="b@example.com",
        winning_ticket_number=4,
        total_tickets=5,
        verification_hash="abc",
        random_seed="1700000000000-1-2",
        selected_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        winner_number=1,
        total_winners=1,
        remaining_winners=0,
    )


def test_healthcheck(client):
    """Verify the healthcheck endpoint returns a successful response."""
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_validate_integrity(client):
    """Verify the integrity endpoint returns the allocator's report."""
    mock_allocator = MagicMock(spec=TicketAllocator)
    mock_allocator.validate_integrity.return_value = IntegrityReport(
        is_valid=False,
        total_tickets=3,
        expected_tickets=4,
        issues=["gap at position 3: ticket number 3 is missing"],
    )
    app.dependency_overrides[_ticket_allocator] = lambda: mock_allocator

    response = client.get("/raffles/1/tickets/integrity")
    assert response.status_code == 200
    body = response.json()
    assert body["is_valid"] is False
    assert body["issues"] == ["gap at position 3: ticket number 3 is missing"]
    mock_allocator.validate_integrity.assert_called_once_with(1)


def test_rebuild_tickets(client):
    """Verify the rebuild endpoint includes the human readable range."""
    mock_allocator = MagicMock(spec=TicketAllocator)
    mock_allocator.rebuild_all_tickets.return_value = RebuildSummary(
        raffle_id=1,
        deleted_tickets=4,
        recreated_tickets=5,
        raffle_entries=2,
        direct_purchases=1,
        first_ticket_number=1,
        last_ticket_number=5,
    )
    app.dependency_overrides[_ticket_allocator] = lambda: mock_allocator

    response = client.post("/raffles/1/tickets/rebuild")
    assert response.status_code == 200
    assert response.json()["final_ticket_range"] == "1 to 5"


def test_assign_tickets(client):
    """Verify the allocation endpoint returns the ticket block."""
    mock_allocator = MagicMock(spec=TicketAllocator)
    mock_allocator.assign_tickets.return_value = TicketAssignment(
        entry_id=3, email="a@example.com", tickets_assigned=3, start_ticket_number=1, end_ticket_number=3
    )
    app.dependency_overrides[_ticket_allocator] = lambda: mock_allocator

    response = client.post("/entries/3/tickets")
    assert response.status_code == 200
    assert response.json()["end_ticket_number"] == 3


def test_select_winner_schedules_notification(client):
    """Verify the draw endpoint returns the result and passes a notification callback."""
    mock_selector = MagicMock(spec=WinnerSelector)
    mock_selector.select_winner.return_value = _draw_result()
    app.dependency_overrides[_winner_selector] = lambda: mock_selector
    app.dependency_overrides[_winner_notifier] = lambda: MagicMock()

    response = client.post("/raffles/1/winners")
    assert response.status_code == 201
    assert response.json()["winning_ticket_number"] == 4
    args, kwargs = mock_selector.select_winner.call_args
    assert args == (1,)
    assert kwargs["force"] is False
    assert callable(kwargs["on_winner"])


def test_select_winner_integrity_failure(client):
    """Verify that integrity failures map to 409 with the issue list."""
    mock_selector = MagicMock(spec=WinnerSelector)
    mock_selector.select_winner.side_effect = TicketIntegrityError(["duplicate ticket number 2"])
    app.dependency_overrides[_winner_selector] = lambda: mock_selector
    app.dependency_overrides[_winner_notifier] = lambda: MagicMock()

    response = client.post("/raffles/1/winners")
    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "TicketIntegrityError"
    assert body["issues"] == ["duplicate ticket number 2"]


def test_select_winner_exhausted(client):
    """Verify that drawing a full raffle maps to 409."""
    mock_selector = MagicMock(spec=WinnerSelector)
    mock_selector.select_winner.side_effect = AllWinnersAlreadySelected(1)
    app.dependency_overrides[_winner_selector] = lambda: mock_selector
    app.dependency_overrides[_winner_notifier] = lambda: MagicMock()

    response = client.post("/raffles/1/winners")
    assert response.status_code == 409
    assert "already been selected" in response.json()["detail"]


def test_list_winners(client):
    """Verify the winner listing reports slots and draw state."""
    mock_selector = MagicMock(spec=WinnerSelector)
    mock_selector.winner_slots.return_value = WinnerSlots(
        raffle_id=1, max_winners=3, active_winners=0, state=DrawState.NO_WINNERS_YET
    )
    mock_selector.list_winners.return_value = []
    app.dependency_overrides[_winner_selector] = lambda: mock_selector

    response = client.get("/raffles/1/winners")
    assert response.status_code == 200
    assert response.json() == {
        "raffle_id": 1,
        "max_winners": 3,
        "active_winners": 0,
        "remaining_winners": 3,
        "state": "no_winners_yet",
        "items": [],
    }


def test_verify_winner(client):
    """Verify the verification endpoint returns the recomputed hash."""
    mock_selector = MagicMock(spec=WinnerSelector)
    mock_selector.verify.return_value = VerificationResult(
        winner_id=1,
        is_valid=True,
        expected_hash="abc",
        actual_hash="abc",
        hash_scheme="sha256",
        winning_ticket_number=4,
        pool_size_at_draw=5,
        winner_total_tickets=2,
        winner_ticket_numbers=[4, 5],
        winning_probability=40.0,
    )
    app.dependency_overrides[_winner_selector] = lambda: mock_selector

    response = client.get("/winners/1/verify")
    assert response.status_code == 200
    assert response.json()["is_valid"] is True
    mock_selector.verify.assert_called_once_with(1)


def test_verify_unknown_winner(client):
    """Verify that a missing winner maps to 404."""
    mock_selector = MagicMock(spec=WinnerSelector)
    mock_selector.verify.side_effect = WinnerNotFound("Winner 9 not found")
    app.dependency_overrides[_winner_selector] = lambda: mock_selector

    response = client.get("/winners/9/verify")
    assert response.status_code == 404
    assert response.json()["detail"] == "Winner 9 not found"


def test_payment_succeeded(client):
    """Verify the payment callback forwards identifiers to the payment service."""
    mock_service = MagicMock()
    mock_service.handle_payment_success.return_value = PaymentOutcome(
        entry_id=1,
        email="a@example.com",
        status="completed",
        assignment=TicketAssignment(
            entry_id=1, email="a@example.com", tickets_assigned=2, start_ticket_number=1, end_ticket_number=2
        ),
    )
    app.dependency_overrides[_payment_service] = lambda: mock_service

    response = client.post(
        "/payments/succeeded",
        json={"payment_session_id": "cs_1", "payment_intent_id": "pi_1", "event_id": "evt_1"},
    )
    assert response.status_code == 200
    assert response.json()["assignment"]["tickets_assigned"] == 2
    mock_service.handle_payment_success.assert_called_once_with(
        "cs_1", payment_intent_id="pi_1", event_id="evt_1", raw_data=None
    )


def test_reset_winners_forwards_confirmation(client):
    """Verify the reset endpoint passes the confirmation phrase through."""
    mock_selector = MagicMock(spec=WinnerSelector)
    mock_selector.reset_winners.return_value = ResetSummary(
        raffle_id=1, winners_removed=2, raffle_name="Gold Rush"
    )
    app.dependency_overrides[_winner_selector] = lambda: mock_selector

    response = client.post("/raffles/1/winners/reset", json={"confirmation": "CONFIRM_RESET_WINNERS"})
    assert response.status_code == 200
    assert response.json() == {"raffle_id": 1, "winners_removed": 2, "raffle_name": "Gold Rush"}
    mock_selector.reset_winners.assert_called_once_with(1, "CONFIRM_RESET_WINNERS")


@patch("raffle.main.crud")
def test_mark_notification_read(mock_crud, client):
    """Verify the mark-read endpoint returns the updated notification or 404."""
    app.dependency_overrides[get_db] = lambda: MagicMock()
    mock_crud.mark_notification_read.return_value = {
        "id": 3,
        "type": "winner_selected",
        "title": "Winner selected",
        "message": "b@example.com won",
        "data": None,
        "is_read": True,
        "created_at": "2024-05-01T00:00:00Z",
    }

    response = client.post("/notifications/3/read")
    assert response.status_code == 200
    assert response.json()["is_read"] is True

    mock_crud.mark_notification_read.return_value = None
    assert client.post("/notifications/99/read").status_code == 404


def _raffle_payload(**overrides) -> dict:
    payload = {
        "id": 1,
        "name": "Gold Rush",
        "product_name": "1oz gold bar",
        "product_description": None,
        "start_date": "2024-04-01T00:00:00Z",
        "end_date": "2024-05-01T00:00:00Z",
        "price_per_entry_cents": 500,
        "bundle_price_cents": None,
        "bundle_size": None,
        "max_winners": 1,
        "is_active": False,
        "total_entries": 5,
        "ticket_sequence": 5,
        "winner_email": None,
        "winner_selected_at": None,
        "created_at": "2024-04-01T00:00:00Z",
    }
    payload.update(overrides)
    return payload


def test_select_winner_before_end_requires_force(client):
    """Verify that an open raffle maps to 409 and force is forwarded from the query."""
    mock_selector = MagicMock(spec=WinnerSelector)
    mock_selector.select_winner.side_effect = RaffleNotEnded("Raffle 1 has not ended yet")
    app.dependency_overrides[_winner_selector] = lambda: mock_selector
    app.dependency_overrides[_winner_notifier] = lambda: MagicMock()

    response = client.post("/raffles/1/winners")
    assert response.status_code == 409
    assert response.json()["error"] == "RaffleNotEnded"

    mock_selector.select_winner.side_effect = None
    mock_selector.select_winner.return_value = _draw_result()
    assert client.post("/raffles/1/winners?force=true").status_code == 201
    assert mock_selector.select_winner.call_args.kwargs["force"] is True


def test_draw_if_ended(client):
    """Verify the end-of-raffle trigger reports draws and skips."""
    mock_selector = MagicMock(spec=WinnerSelector)
    mock_selector.draw_if_ended.return_value = AutoDrawOutcome(raffle_id=1, result=_draw_result())
    app.dependency_overrides[_winner_selector] = lambda: mock_selector
    app.dependency_overrides[_winner_notifier] = lambda: MagicMock()

    body = client.post("/raffles/1/winners/auto").json()
    assert body["drawn"] is True
    assert body["result"]["winning_ticket_number"] == 4

    mock_selector.draw_if_ended.return_value = AutoDrawOutcome(raffle_id=1, skipped=AutoDrawSkip.NOT_ENDED)
    body = client.post("/raffles/1/winners/auto").json()
    assert body["drawn"] is False
    assert body["skipped"] == "not_ended"
    assert body["result"] is None


def test_scheduled_draws(client):
    """Verify the sweep endpoint lists one outcome per ended raffle."""
    mock_selector = MagicMock(spec=WinnerSelector)
    mock_selector.draw_ended_raffles.return_value = [AutoDrawOutcome(raffle_id=1, result=_draw_result())]
    app.dependency_overrides[_winner_selector] = lambda: mock_selector
    app.dependency_overrides[_winner_notifier] = lambda: MagicMock()

    response = client.post("/scheduled-draws")
    assert response.status_code == 200
    assert [item["raffle_id"] for item in response.json()] == [1]
    assert callable(mock_selector.draw_ended_raffles.call_args.kwargs["on_winner"])


def test_end_and_extend_raffle(client):
    """Verify the lifecycle endpoints and the no-extend-after-winner rule."""
    mock_service = MagicMock(spec=RaffleService)
    mock_service.end_raffle.return_value = _raffle_payload()
    mock_service.extend_raffle.side_effect = RaffleAlreadyDrawn("Cannot extend raffle 1")
    app.dependency_overrides[_raffle_service] = lambda: mock_service

    response = client.post("/raffles/1/end")
    assert response.status_code == 200
    assert response.json()["is_active"] is False

    response = client.post("/raffles/1/extend", json={"end_date": "2030-01-01T00:00:00Z"})
    assert response.status_code == 409
    args, _ = mock_service.extend_raffle.call_args
    assert args[0] == 1
    assert args[1] == datetime(2030, 1, 1, tzinfo=timezone.utc)


@patch("raffle.main.crud")
def test_list_payment_events(mock_crud, client):
    """Verify the payment event log forwards the unprocessed filter."""
    app.dependency_overrides[get_db] = lambda: MagicMock()
    mock_crud.list_payment_events.return_value = [
        {
            "id": 1,
            "event_id": "evt_1",
            "event_type": "payment.succeeded",
            "status": "unmatched",
            "payment_session_id": "cs_missing",
            "processed": False,
            "error": "entry not found",
            "created_at": "2024-05-01T00:00:00Z",
        }
    ]

    response = client.get("/payments/events?unprocessed=true")
    assert response.status_code == 200
    assert response.json()[0]["status"] == "unmatched"
    assert mock_crud.list_payment_events.call_args.kwargs["unprocessed_only"] is True
