"""In-app notification endpoints for the authenticated user."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, HTTPException

from marketnotify.api.auth import CurrentUser, CurrentUserDep
from marketnotify.infra.db import txn
from marketnotify.infra.repositories.notifications_repository import (
    list_for_user,
    mark_as_read,
)
from marketnotify.notifications.models import NotificationRead
from marketnotify.observability.logging import get_logger
from marketnotify.observability.redaction import safe_log_context

router = APIRouter(prefix="/notifications", tags=["notifications"])

logger = get_logger(__name__)


@router.get("")
def list_notifications(user: CurrentUser = CurrentUserDep) -> dict:
    """The caller's latest notifications, newest first."""
    with txn() as cur:
        rows = list_for_user(cur, user.id)

    return {
        "data": [NotificationRead(**row).model_dump() for row in rows],
        "message": "Notifications retrieved successfully",
    }


@router.patch("/{notification_id}/read")
def read_notification(notification_id: UUID, user: CurrentUser = CurrentUserDep) -> dict:
    """Mark one of the caller's notifications as read.

    Raises:
        HTTPException: 404 if the notification does not exist or belongs to
            another user.
    """
    with txn() as cur:
        row = mark_as_read(cur, str(notification_id), user.id)

    if row is None:
        raise HTTPException(status_code=404, detail="Notification not found")

    logger.info(
        "notification marked as read",
        extra={"extra_fields": safe_log_context(notification_id=str(notification_id))},
    )
    return {
        "data": NotificationRead(**row).model_dump(),
        "message": "Notification marked as read",
    }
