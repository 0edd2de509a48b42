"""Notification store - insert-once rows plus read receipts.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor
from psycopg2.extras import Json

from marketnotify.notifications.models import NewNotification

# GET /notifications page size
LIST_LIMIT = 50

_COLUMNS = """
    id, user_id, type, subject, content, email, status,
    sent_at, read_at, metadata, created_at
"""


def _iso(value: Any) -> str | None:
    return value.isoformat() if value is not None else None


def _row_to_dict(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "user_id": row[1],
        "type": row[2],
        "subject": row[3],
        "content": row[4],
        "email": row[5],
        "status": row[6],
        "sent_at": _iso(row[7]),
        "read_at": _iso(row[8]),
        "metadata": row[9],
        "created_at": _iso(row[10]),
    }


def insert_notification(cur: PgCursor, notification: NewNotification) -> str:
    """Persist one notification row.

    Args:
        cur: Database cursor (within transaction).
        notification: Row values; status is already final.

    Returns:
        The generated notification id.
    """
    cur.execute(
        """
        INSERT INTO notifications (
            user_id, type, subject, content, email, status, sent_at, metadata
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            notification.user_id,
            notification.kind.value,
            notification.subject,
            notification.content,
            notification.email,
            notification.status.value,
            notification.sent_at,
            Json(notification.metadata) if notification.metadata is not None else None,
        ),
    )
    return str(cur.fetchone()[0])


def list_for_user(cur: PgCursor, user_id: str, limit: int = LIST_LIMIT) -> list[dict[str, Any]]:
    """Newest-first notifications for a user, capped at limit."""
    cur.execute(
        f"""
        SELECT {_COLUMNS}
        FROM notifications
        WHERE user_id = %s
        ORDER BY created_at DESC
        LIMIT %s
        """,
        (user_id, limit),
    )
    return [_row_to_dict(row) for row in cur.fetchall()]


def mark_as_read(cur: PgCursor, notification_id: str, user_id: str) -> dict[str, Any] | None:
    """Set read_at on a notification owned by user_id.

    read_at is independent of delivery status; re-reading keeps the first
    timestamp.

    Returns:
        Updated row, or None if no such notification for this user.
    """
    cur.execute(
        f"""
        UPDATE notifications
        SET read_at = COALESCE(read_at, now())
        WHERE id = %s AND user_id = %s
        RETURNING {_COLUMNS}
        """,
        (notification_id, user_id),
    )
    row = cur.fetchone()
    return _row_to_dict(row) if row is not None else None
