"""Admin notification persistence helpers."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from raffle.models import AdminNotification


class NotificationRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create(
        self,
        *,
        type: str,
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> AdminNotification:
        notification = AdminNotification(type=type, title=title, message=message, data=data)
        self._session.add(notification)
        self._session.flush()
        return notification

    def list_notifications(self, *, unread_only: bool = False, limit: int = 50) -> list[AdminNotification]:
        query = select(AdminNotification)
        if unread_only:
            query = query.where(AdminNotification.is_read.is_(False))
        query = query.order_by(AdminNotification.created_at.desc(), AdminNotification.id.desc()).limit(limit)
        return list(self._session.execute(query).scalars().all())

    def mark_read(self, notification_id: int) -> AdminNotification | None:
        notification = self._session.get(AdminNotification, notification_id)
        if notification is not None:
            notification.is_read = True
            self._session.flush()
        return notification
