"""Event router - the single entry point driven by the event bus.

route() never raises: an unknown type is dropped, a duplicate is skipped and
a handler failure is dead-lettered. In every case the event counts as
consumed from the transport's point of view.
"""

from __future__ import annotations

from typing import Literal, Mapping

from marketnotify.infra.db import txn
from marketnotify.infra.repositories.processed_events_repository import (
    claim_event,
    release_event,
)
from marketnotify.notifications.dispatcher import NotificationDispatcher
from marketnotify.observability.correlation import correlation_scope
from marketnotify.observability.logging import get_logger
from marketnotify.observability.redaction import safe_log_context

from .dead_letter import DeadLetterSink
from .envelope import DomainEvent
from .handlers import EVENT_HANDLERS, Handler

logger = get_logger(__name__)

RouteResult = Literal["handled", "unknown", "duplicate", "failed"]


class EventRouter:
    """Dispatch table from event type to handler, with per-event fault isolation.

    Args:
        dispatcher: Notification dispatcher passed to every handler.
        dead_letter: Sink receiving events whose handler raised.
        handlers: Event type -> handler table (defaults to EVENT_HANDLERS).
        deduplicate: Claim eventIds in processed_events before handling.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        dead_letter: DeadLetterSink,
        handlers: Mapping[str, Handler] | None = None,
        *,
        deduplicate: bool = True,
    ) -> None:
        self._dispatcher = dispatcher
        self._dead_letter = dead_letter
        self._handlers = dict(EVENT_HANDLERS if handlers is None else handlers)
        self._deduplicate = deduplicate

    def event_types(self) -> list[str]:
        """Registered event types, i.e. the bus channels to subscribe to."""
        return sorted(self._handlers)

    def handler_for(self, event_type: str) -> Handler | None:
        return self._handlers.get(event_type)

    def route(self, event: DomainEvent) -> RouteResult:
        with correlation_scope(event.correlation_id, event.event_id):
            return self._route(event)

    def _route(self, event: DomainEvent) -> RouteResult:
        log_ctx = safe_log_context(event_type=event.type, event_id=event.event_id, source=event.source)

        handler = self._handlers.get(event.type)
        if handler is None:
            logger.warning("no handler for event type - dropped", extra={"extra_fields": log_ctx})
            return "unknown"

        claimed = False
        try:
            if self._deduplicate and event.event_id:
                with txn() as cur:
                    claimed = claim_event(cur, event.event_id, event_type=event.type)
                if not claimed:
                    logger.info("duplicate event ignored", extra={"extra_fields": log_ctx})
                    return "duplicate"

            logger.info("event received", extra={"extra_fields": log_ctx})
            handler(self._dispatcher, event.payload)
        except Exception as e:
            logger.exception("event handler failed", extra={"extra_fields": log_ctx})
            if claimed:
                self._release(event)
            self._dead_letter.publish(
                event_type=event.type,
                event_id=event.event_id,
                envelope=event.envelope or {"type": event.type, "payload": event.payload},
                error=e,
            )
            return "failed"

        return "handled"

    def _release(self, event: DomainEvent) -> None:
        try:
            with txn() as cur:
                release_event(cur, event.event_id)
        except Exception:
            # Replay of this event will be reported as a duplicate
            logger.exception(
                "failed to release event claim",
                extra={"extra_fields": safe_log_context(event_id=event.event_id)},
            )
