"""Dedup receipts for at-least-once event delivery.

Uses raw SQL with psycopg2 (no ORM).
"""

from psycopg2.extensions import cursor as PgCursor

EVENT_BUS_SOURCE = "event_bus"


def claim_event(
    cur: PgCursor,
    external_id: str,
    *,
    event_type: str | None = None,
    source: str = EVENT_BUS_SOURCE,
) -> bool:
    """Record that an event is being processed.

    Returns:
        True if this call inserted the receipt, False if it already existed
        (duplicate delivery).
    """
    cur.execute(
        """
        INSERT INTO processed_events (source, external_id, event_type)
        VALUES (%s, %s, %s)
        ON CONFLICT (source, external_id) DO NOTHING
        """,
        (source, external_id, event_type),
    )
    return cur.rowcount == 1


def release_event(cur: PgCursor, external_id: str, *, source: str = EVENT_BUS_SOURCE) -> None:
    """Drop a receipt so a dead-lettered event can be replayed."""
    cur.execute(
        "DELETE FROM processed_events WHERE source = %s AND external_id = %s",
        (source, external_id),
    )
