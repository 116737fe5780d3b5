"""Best-effort admin notifications raised after a winner is drawn."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractContextManager
from typing import Any

import httpx
from loguru import logger
from sqlalchemy.orm import Session

from raffle.core.config import Settings
from raffle.db import session_scope
from raffle.domain import WinnerSelectedEvent
from raffle.repositories import NotificationRepository

WINNER_SELECTED = "winner_selected"

SessionScope = Callable[[], AbstractContextManager[Session]]


def winner_event_payload(event: WinnerSelectedEvent) -> dict[str, Any]:
    return {
        "type": WINNER_SELECTED,
        "winner_id": event.winner_id,
        "raffle_id": event.raffle_id,
        "raffle_name": event.raffle_name,
        "email": event.winner_email,
        "winning_ticket_number": event.winning_ticket_number,
        "total_tickets": event.total_tickets,
        "winner_number": event.winner_number,
        "total_winners": event.total_winners,
        "selected_at": event.selected_at.isoformat(),
    }


class WinnerNotifier:
    """Record an admin notification and optionally forward it to a webhook.

    Each channel is attempted independently and failures are logged rather
    than raised: the draw has already been committed when this runs.
    """

    def __init__(
        self,
        *,
        scope: SessionScope = session_scope,
        webhook_url: str | None = None,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._scope = scope
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._client = client

    def notify(self, event: WinnerSelectedEvent) -> None:
        payload = winner_event_payload(event)
        self._record(event, payload)
        if self.webhook_url:
            self._post(payload)

    def __call__(self, event: WinnerSelectedEvent) -> None:
        self.notify(event)

    def _record(self, event: WinnerSelectedEvent, payload: dict[str, Any]) -> None:
        try:
            with self._scope() as session:
                NotificationRepository(session).create(
                    type=WINNER_SELECTED,
                    title=f"Winner #{event.winner_number} selected",
                    message=(
                        f"{event.winner_email} won {event.raffle_name} with ticket "
                        f"#{event.winning_ticket_number} of {event.total_tickets}"
                    ),
                    data=payload,
                )
        except Exception:
            logger.exception("Failed to record admin notification for winner {}", event.winner_id)
            return
        logger.info("Recorded admin notification for winner {}", event.winner_id)

    def _post(self, payload: dict[str, Any]) -> None:
        try:
            if self._client is not None:
                response = self._client.post(self.webhook_url, json=payload)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.webhook_url, json=payload)
            response.raise_for_status()
        except Exception:
            logger.exception("Winner notification webhook {} failed", self.webhook_url)
            return
        logger.info("Winner notification webhook delivered to {}", self.webhook_url)


def build_winner_notifier(settings: Settings, *, scope: SessionScope = session_scope) -> WinnerNotifier:
    webhook = settings.admin_notification_webhook_url
    return WinnerNotifier(
        scope=scope,
        webhook_url=str(webhook) if webhook else None,
        timeout=settings.notification_timeout_seconds,
    )


__all__ = ["WINNER_SELECTED", "WinnerNotifier", "build_winner_notifier", "winner_event_payload"]
