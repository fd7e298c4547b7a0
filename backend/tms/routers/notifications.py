"""Notification feed endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..auth import CurrentUser, get_current_user
from ..dependencies import get_notifier
from ..domain_errors import not_found
from ..schemas import MarkAllRead
from ..services.notifier import Notifier
from ..store import DocumentNotFoundError

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_active_notifications(
    current_user: CurrentUser = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    """Last day's notifications, newest first, with the caller's read flag."""
    views = notifier.active_notifications(current_user.uid)
    return [view.model_dump(mode="json", by_alias=True) for view in views]


@router.post("/read-all")
def mark_all_notifications_read(
    payload: MarkAllRead | None = None,
    current_user: CurrentUser = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    scope = payload.type if payload is not None else None
    updated = notifier.mark_all_read(current_user.uid, scope=scope)
    return {"updated": updated}


@router.get("/{notification_id}")
def get_notification(
    notification_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    notification = notifier.get(notification_id)
    if notification is None:
        raise not_found("NOTIFICATION_NOT_FOUND", f"Notification {notification_id} not found")
    return notification.view_for(current_user.uid).model_dump(mode="json", by_alias=True)


@router.post("/{notification_id}/read", status_code=status.HTTP_200_OK)
def mark_notification_read(
    notification_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    try:
        notifier.mark_read(notification_id, current_user.uid)
    except DocumentNotFoundError:
        raise not_found("NOTIFICATION_NOT_FOUND", f"Notification {notification_id} not found")
    return {"id": notification_id, "read": True}
