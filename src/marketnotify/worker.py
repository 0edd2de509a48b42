"""Notification worker - consumes the event bus until SIGINT/SIGTERM.

Run with: python -m marketnotify.worker
"""

from __future__ import annotations

import signal

import redis

from marketnotify.channels.mail import build_email_channel
from marketnotify.config import Settings, load_settings
from marketnotify.events.consumer import EventBusConsumer
from marketnotify.events.dead_letter import RedisDeadLetterSink
from marketnotify.events.router import EventRouter
from marketnotify.notifications.dispatcher import NotificationDispatcher
from marketnotify.observability.logging import get_logger
from marketnotify.observability.redaction import safe_log_context

logger = get_logger(__name__)


def build_consumer(settings: Settings, client: redis.Redis | None = None) -> EventBusConsumer:
    """Wire channels, dispatcher, router and dead-letter sink into a consumer."""
    if client is None:
        client = redis.Redis.from_url(settings.event_bus.url, decode_responses=True)

    dead_letter = RedisDeadLetterSink(client, settings.event_bus.dead_letter_key)
    dispatcher = NotificationDispatcher(build_email_channel(settings.smtp))
    router = EventRouter(dispatcher, dead_letter)
    return EventBusConsumer(router, client, settings.event_bus, dead_letter)


def main() -> None:
    settings = load_settings()
    consumer = build_consumer(settings)

    def _shutdown(signum, frame) -> None:
        logger.info(
            "shutdown signal received",
            extra={"extra_fields": safe_log_context(signal=signal.Signals(signum).name)},
        )
        consumer.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    logger.info(
        "notification worker starting",
        extra={"extra_fields": safe_log_context(max_workers=settings.event_bus.max_workers)},
    )
    consumer.run()


if __name__ == "__main__":
    main()
