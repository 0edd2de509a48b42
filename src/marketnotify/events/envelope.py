"""Domain event envelope as published on the marketplace event bus.

Two framings are accepted:
- bare:    {"eventId", "type" | "pattern", "timestamp", "source", "payload", ...}
- wrapped: {"pattern": "...", "data": <bare envelope>}  (upstream transport framing)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


class InvalidEventError(Exception):
    """Raised when a bus message is not a usable domain event."""

    pass


@dataclass(frozen=True)
class DomainEvent:
    type: str
    payload: dict[str, Any]
    event_id: str | None = None
    timestamp: str | None = None
    source: str | None = None
    correlation_id: str | None = None
    envelope: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: Any, *, channel: str | None = None) -> "DomainEvent":
        """Build an event from a decoded envelope.

        Args:
            data: Decoded JSON envelope (either framing).
            channel: Bus channel the message arrived on; last-resort event type.

        Raises:
            InvalidEventError: If the envelope has no type or a non-object payload.
        """
        if not isinstance(data, dict):
            raise InvalidEventError("envelope must be a JSON object")

        outer_pattern = data.get("pattern")
        inner = data.get("data")
        envelope = inner if isinstance(inner, dict) and "payload" in inner else data

        event_type = envelope.get("type") or envelope.get("pattern") or outer_pattern or channel
        if not event_type or not isinstance(event_type, str):
            raise InvalidEventError("missing event type")

        payload = envelope.get("payload")
        if not isinstance(payload, dict):
            raise InvalidEventError("payload must be a JSON object")

        event_id = envelope.get("eventId")
        return cls(
            type=event_type,
            payload=payload,
            event_id=str(event_id) if event_id else None,
            timestamp=envelope.get("timestamp"),
            source=envelope.get("source"),
            correlation_id=envelope.get("correlationId"),
            envelope=envelope,
        )

    @classmethod
    def from_message(cls, raw: str | bytes, *, channel: str | None = None) -> "DomainEvent":
        """Decode a raw bus message.

        Raises:
            InvalidEventError: If raw is not JSON or not a usable envelope.
        """
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise InvalidEventError(f"message is not valid JSON: {type(e).__name__}") from e
        return cls.from_dict(data, channel=channel)
