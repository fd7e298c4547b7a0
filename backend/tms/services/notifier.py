"""Notification feed: creation after mutations, read tracking, active window."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from pydantic import ValidationError

from ..config import settings
from ..schemas import Notification, NotificationType, NotificationView
from ..store import DocumentStore, array_union
from .ledger import iso_timestamp, now_utc, parse_timestamp

logger = logging.getLogger(__name__)

NOTIFICATIONS_COLLECTION = "notifications"


def is_active(notification: Notification, *, now: datetime, window_hours: int) -> bool:
    return parse_timestamp(notification.date) > now - timedelta(hours=window_hours)


def filter_active(
    notifications: Iterable[Notification],
    user_id: str,
    *,
    now: datetime,
    window_hours: int,
    limit: int,
) -> list[NotificationView]:
    """Newest first, capped at ``limit``, only those inside the window."""
    ordered = sorted(notifications, key=lambda n: parse_timestamp(n.date), reverse=True)[:limit]
    return [
        n.view_for(user_id)
        for n in ordered
        if is_active(n, now=now, window_hours=window_hours)
    ]


class Notifier:
    def __init__(
        self,
        store: DocumentStore,
        *,
        dispatch: Callable[[str], None] | None = None,
        window_hours: int | None = None,
        feed_limit: int | None = None,
    ) -> None:
        self.store = store
        self.dispatch = dispatch
        self.window_hours = window_hours if window_hours is not None else settings.NOTIFICATION_WINDOW_HOURS
        self.feed_limit = feed_limit if feed_limit is not None else settings.NOTIFICATION_FEED_LIMIT

    def notify(
        self,
        notification_type: NotificationType | str,
        message: str,
        related_id: str,
        *,
        at: datetime | None = None,
    ) -> str | None:
        """Record a notification; failures are logged and never propagate."""
        try:
            kind = NotificationType(notification_type)
            document = {
                "message": message,
                "date": iso_timestamp(at),
                "requestId": related_id,
                "type": kind.value,
                "readBy": [],
            }
            notification_id = self.store.add(NOTIFICATIONS_COLLECTION, document)
        except Exception as e:
            logger.error(f"Failed to create notification for {related_id}: {e}", exc_info=True)
            return None

        logger.info(f"🔔 Notification {notification_id} ({kind.value}) for {related_id}")
        if self.dispatch is not None:
            try:
                self.dispatch(notification_id)
            except Exception as e:
                logger.error(f"Failed to enqueue push fan-out for {notification_id}: {e}", exc_info=True)
        return notification_id

    def get(self, notification_id: str) -> Notification | None:
        """Direct lookup ignores the active window."""
        snapshot = self.store.get(NOTIFICATIONS_COLLECTION, notification_id)
        if not snapshot.exists:
            return None
        return Notification.from_snapshot(snapshot)

    def mark_read(self, notification_id: str, user_id: str) -> None:
        self.store.update(NOTIFICATIONS_COLLECTION, notification_id, {"readBy": array_union(user_id)})

    def recent(self) -> list[Notification]:
        snapshots = self.store.query(
            NOTIFICATIONS_COLLECTION,
            order_by="date",
            descending=True,
            limit=self.feed_limit,
        )
        notifications = []
        for snapshot in snapshots:
            try:
                notifications.append(Notification.from_snapshot(snapshot))
            except ValidationError as e:
                logger.warning(f"Skipping malformed notification {snapshot.id}: {e}")
        return notifications

    def active_notifications(self, user_id: str, *, now: datetime | None = None) -> list[NotificationView]:
        return filter_active(
            self.recent(),
            user_id,
            now=now or now_utc(),
            window_hours=self.window_hours,
            limit=self.feed_limit,
        )

    def mark_all_read(
        self,
        user_id: str,
        *,
        scope: NotificationType | str | None = None,
        now: datetime | None = None,
    ) -> int:
        """Mark every unread active notification (optionally of one type) in one batch."""
        scope_type = NotificationType(scope) if scope else None
        unread = [
            n
            for n in self.active_notifications(user_id, now=now)
            if not n.read and (scope_type is None or n.type == scope_type)
        ]
        if not unread:
            return 0

        batch = self.store.batch()
        for notification in unread:
            batch.update(NOTIFICATIONS_COLLECTION, notification.id, {"readBy": array_union(user_id)})
        batch.commit()
        logger.info(f"Marked {len(unread)} notifications read for {user_id}")
        return len(unread)
