"""Dead-letter sink for events whose processing failed.

Entries are appended to a Redis list so they survive worker restarts and can
be inspected (LRANGE) or replayed by re-publishing the stored envelope.
"""

from __future__ import annotations

import json
from typing import Any, Protocol

import redis

from marketnotify.infra.time import utc_now
from marketnotify.observability.logging import get_logger
from marketnotify.observability.redaction import safe_log_context

logger = get_logger(__name__)


class DeadLetterSink(Protocol):
    def publish(
        self,
        *,
        event_type: str | None,
        event_id: str | None,
        envelope: Any,
        error: BaseException,
    ) -> None: ...


def build_entry(
    *,
    event_type: str | None,
    event_id: str | None,
    envelope: Any,
    error: BaseException,
) -> dict[str, Any]:
    """Serializable dead-letter record with the original envelope."""
    return {
        "eventType": event_type,
        "eventId": event_id,
        "envelope": envelope,
        "error": {"type": type(error).__name__, "message": str(error)},
        "failedAt": utc_now().isoformat(),
    }


class RedisDeadLetterSink:
    """Appends dead-letter entries to a Redis list (RPUSH)."""

    def __init__(self, client: redis.Redis, key: str) -> None:
        self._client = client
        self._key = key

    def publish(
        self,
        *,
        event_type: str | None,
        event_id: str | None,
        envelope: Any,
        error: BaseException,
    ) -> None:
        entry = build_entry(event_type=event_type, event_id=event_id, envelope=envelope, error=error)
        log_ctx = safe_log_context(
            event_type=event_type,
            event_id=event_id,
            error_type=type(error).__name__,
        )
        try:
            self._client.rpush(self._key, json.dumps(entry, default=str))
        except redis.RedisError:
            # The event is lost at this point; the log line is the only trace
            logger.exception("dead-letter publish failed", extra={"extra_fields": log_ctx})
            return

        logger.warning("event dead-lettered", extra={"extra_fields": log_ctx})
