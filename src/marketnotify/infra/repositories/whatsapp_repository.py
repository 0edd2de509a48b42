"""Conversation store - WhatsApp conversations, messages and templates.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor

_CONVERSATION_COLUMNS = """
    c.id, c.phone_number, c.user_id, c.seller_id, c.ticket_id,
    c.status, c.last_message_at, c.created_at
"""

_MESSAGE_COLUMNS = """
    id, conversation_id, provider_message_id, direction, content,
    media_url, status, delivered_at, created_at
"""

_TEMPLATE_COLUMNS = """
    id, name, category, content, variables, is_active, approved_by, created_at
"""


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _conversation_row(row: tuple[Any, ...]) -> dict[str, Any]:
    conversation = {
        "id": str(row[0]),
        "phone_number": row[1],
        "user_id": row[2],
        "seller_id": row[3],
        "ticket_id": row[4],
        "status": row[5],
        "last_message_at": _iso(row[6]),
        "created_at": _iso(row[7]),
    }
    if len(row) > 8:
        conversation["message_count"] = row[8]
    return conversation


def _message_row(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "conversation_id": str(row[1]),
        "provider_message_id": row[2],
        "direction": row[3],
        "content": row[4],
        "media_url": row[5],
        "status": row[6],
        "delivered_at": _iso(row[7]),
        "created_at": _iso(row[8]),
    }


def _template_row(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "name": row[1],
        "category": row[2],
        "content": row[3],
        "variables": list(row[4] or []),
        "is_active": row[5],
        "approved_by": row[6],
        "created_at": _iso(row[7]),
    }


# ── Conversations ─────────────────────────────────────────


def get_or_create_active_conversation(
    cur: PgCursor,
    phone_number: str,
    *,
    user_id: str | None = None,
    seller_id: str | None = None,
    ticket_id: str | None = None,
) -> tuple[str, bool]:
    """Return the ACTIVE conversation for phone_number, creating it if absent.

    Single statement against the partial unique index on
    (phone_number) WHERE status = 'ACTIVE', so concurrent callers for a new
    number converge on one row. Correlation ids are only recorded on create.

    Returns:
        Tuple of (conversation_id, created).
    """
    cur.execute(
        """
        INSERT INTO whatsapp_conversations (phone_number, user_id, seller_id, ticket_id, status)
        VALUES (%s, %s, %s, %s, 'ACTIVE')
        ON CONFLICT (phone_number) WHERE status = 'ACTIVE'
        DO UPDATE SET phone_number = EXCLUDED.phone_number
        RETURNING id, (xmax = 0) AS created
        """,
        (phone_number, user_id, seller_id, ticket_id),
    )
    row = cur.fetchone()
    return str(row[0]), bool(row[1])


def touch_conversation(cur: PgCursor, conversation_id: str, at: datetime) -> None:
    """Record message activity on a conversation."""
    cur.execute(
        "UPDATE whatsapp_conversations SET last_message_at = %s WHERE id = %s",
        (at, conversation_id),
    )


def list_conversations(
    cur: PgCursor,
    *,
    user_id: str | None = None,
    seller_id: str | None = None,
    ticket_id: str | None = None,
    status: str | None = None,
    limit: int,
    offset: int,
) -> tuple[list[dict[str, Any]], int]:
    """Filtered conversations, most recently active first.

    Returns:
        Tuple of (conversations with message_count, total matching).
    """
    clauses: list[str] = []
    params: list[Any] = []
    for column, value in (
        ("user_id", user_id),
        ("seller_id", seller_id),
        ("ticket_id", ticket_id),
        ("status", status),
    ):
        if value is not None:
            clauses.append(f"c.{column} = %s")
            params.append(value)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    cur.execute(f"SELECT count(*) FROM whatsapp_conversations c {where}", params)
    total = cur.fetchone()[0]

    cur.execute(
        f"""
        SELECT {_CONVERSATION_COLUMNS},
               (SELECT count(*) FROM whatsapp_messages m WHERE m.conversation_id = c.id)
        FROM whatsapp_conversations c
        {where}
        ORDER BY c.last_message_at DESC NULLS LAST, c.created_at DESC
        LIMIT %s OFFSET %s
        """,
        [*params, limit, offset],
    )
    return [_conversation_row(row) for row in cur.fetchall()], total


# ── Messages ──────────────────────────────────────────────


def insert_message(
    cur: PgCursor,
    *,
    conversation_id: str,
    provider_message_id: str,
    direction: str,
    content: str,
    media_url: str | None,
    status: str,
    delivered_at: datetime | None,
) -> dict[str, Any]:
    """Persist one message and return it."""
    cur.execute(
        f"""
        INSERT INTO whatsapp_messages (
            conversation_id, provider_message_id, direction, content,
            media_url, status, delivered_at
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        RETURNING {_MESSAGE_COLUMNS}
        """,
        (conversation_id, provider_message_id, direction, content, media_url, status, delivered_at),
    )
    return _message_row(cur.fetchone())


def list_messages(
    cur: PgCursor,
    conversation_id: str,
    *,
    limit: int,
    offset: int,
) -> tuple[list[dict[str, Any]], int]:
    """Messages of a conversation in createdAt-ascending order."""
    cur.execute(
        "SELECT count(*) FROM whatsapp_messages WHERE conversation_id = %s",
        (conversation_id,),
    )
    total = cur.fetchone()[0]

    cur.execute(
        f"""
        SELECT {_MESSAGE_COLUMNS}
        FROM whatsapp_messages
        WHERE conversation_id = %s
        ORDER BY created_at ASC, id ASC
        LIMIT %s OFFSET %s
        """,
        (conversation_id, limit, offset),
    )
    return [_message_row(row) for row in cur.fetchall()], total


# ── Templates ─────────────────────────────────────────────


def create_template(
    cur: PgCursor,
    *,
    name: str,
    category: str,
    content: str,
    variables: list[str],
    approved_by: str | None,
) -> dict[str, Any] | None:
    """Insert an active template.

    Returns:
        The new template, or None if the name is already taken.
    """
    cur.execute(
        f"""
        INSERT INTO whatsapp_templates (name, category, content, variables, is_active, approved_by)
        VALUES (%s, %s, %s, %s, true, %s)
        ON CONFLICT (name) DO NOTHING
        RETURNING {_TEMPLATE_COLUMNS}
        """,
        (name, category, content, variables, approved_by),
    )
    row = cur.fetchone()
    return _template_row(row) if row is not None else None


def get_template_by_name(cur: PgCursor, name: str) -> dict[str, Any] | None:
    cur.execute(
        f"SELECT {_TEMPLATE_COLUMNS} FROM whatsapp_templates WHERE name = %s",
        (name,),
    )
    row = cur.fetchone()
    return _template_row(row) if row is not None else None


def list_templates(
    cur: PgCursor,
    *,
    category: str | None = None,
    is_active: bool | None = None,
) -> list[dict[str, Any]]:
    """Templates, newest first, optionally filtered."""
    clauses: list[str] = []
    params: list[Any] = []
    if category is not None:
        clauses.append("category = %s")
        params.append(category)
    if is_active is not None:
        clauses.append("is_active = %s")
        params.append(is_active)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    cur.execute(
        f"SELECT {_TEMPLATE_COLUMNS} FROM whatsapp_templates {where} ORDER BY created_at DESC",
        params,
    )
    return [_template_row(row) for row in cur.fetchall()]
