from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime, timezone
from unittest.mock import MagicMock

import httpx

from raffle.domain import WinnerSelectedEvent
from raffle.repositories import NotificationRepository
from raffle.services.notifications import WinnerNotifier, build_winner_notifier


def _event() -> WinnerSelectedEvent:
    return WinnerSelectedEvent(
        winner_id=1,
        raffle_id=2,
        raffle_name="Gold Rush",
        winner_email="b@example.com",
        winning_ticket_number=4,
        total_tickets=5,
        winner_number=1,
        total_winners=1,
        selected_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )


def _scope_for(session_factory):
    @contextmanager
    def scope():
        session = session_factory()
        try:
            yield session
            session.commit()
        finally:
            session.close()

    return scope


def test_notifier_posts_webhook_payload(session, session_factory):
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(200)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    notifier = WinnerNotifier(
        scope=_scope_for(session_factory), webhook_url="https://hooks.example.com/raffle", client=client
    )

    notifier.notify(_event())

    assert received[0]["email"] == "b@example.com"
    assert received[0]["winning_ticket_number"] == 4
    assert received[0]["selected_at"] == "2024-05-01T00:00:00+00:00"
    assert len(NotificationRepository(session).list_notifications()) == 1


def test_webhook_failure_is_swallowed(session, session_factory):
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    notifier = WinnerNotifier(
        scope=_scope_for(session_factory), webhook_url="https://hooks.example.com/raffle", client=client
    )

    notifier.notify(_event())

    assert len(NotificationRepository(session).list_notifications(unread_only=True)) == 1


def test_recording_failure_is_swallowed():
    broken_scope = MagicMock(side_effect=RuntimeError("database unavailable"))
    notifier = WinnerNotifier(scope=broken_scope)

    notifier.notify(_event())

    broken_scope.assert_called_once()


def test_build_winner_notifier_reads_settings(test_settings):
    configured = test_settings.model_copy(
        update={"admin_notification_webhook_url": "https://hooks.example.com/x", "notification_timeout_seconds": 2.5}
    )

    notifier = build_winner_notifier(configured)

    assert notifier.webhook_url == "https://hooks.example.com/x"
    assert notifier.timeout == 2.5
    assert build_winner_notifier(test_settings).webhook_url is None
