"""Event bus consumer - Redis pub/sub subscription feeding the event router.

The listener thread only decodes messages; handlers run on a bounded thread
pool. When every worker is busy the listener blocks, so a slow provider
applies backpressure instead of growing an unbounded queue.

Reconnects to Redis with capped exponential backoff. Handler failures never
reach this layer (the router dead-letters them).
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

import redis

from marketnotify.config import EventBusSettings
from marketnotify.observability.logging import get_logger
from marketnotify.observability.redaction import safe_log_context

from .dead_letter import DeadLetterSink
from .envelope import DomainEvent, InvalidEventError
from .router import EventRouter

logger = get_logger(__name__)

# Seconds
POLL_INTERVAL = 1.0
SLOT_WAIT = 0.5
RECONNECT_INITIAL_DELAY = 0.5
RECONNECT_MAX_DELAY = 30.0


class EventBusConsumer:
    """Long-running subscriber; run() blocks until stop() is called."""

    def __init__(
        self,
        router: EventRouter,
        client: redis.Redis,
        settings: EventBusSettings,
        dead_letter: DeadLetterSink,
    ) -> None:
        self._router = router
        self._client = client
        self._dead_letter = dead_letter
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_workers,
            thread_name_prefix="event-handler",
        )
        self._slots = threading.BoundedSemaphore(settings.max_workers)
        self._stop = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Ask run() to return after the current poll; in-flight handlers finish."""
        self._stop.set()

    def run(self) -> None:
        channels = self._router.event_types()
        delay = RECONNECT_INITIAL_DELAY

        try:
            while not self._stop.is_set():
                pubsub = self._client.pubsub(ignore_subscribe_messages=True)
                try:
                    pubsub.subscribe(*channels)
                    logger.info(
                        "subscribed to event bus",
                        extra={"extra_fields": safe_log_context(channels=len(channels))},
                    )
                    delay = RECONNECT_INITIAL_DELAY
                    self._listen(pubsub)
                except (redis.ConnectionError, redis.TimeoutError) as e:
                    logger.warning(
                        "event bus connection lost, reconnecting",
                        extra={
                            "extra_fields": safe_log_context(
                                error_type=type(e).__name__,
                                retry_in_seconds=delay,
                            )
                        },
                    )
                    self._stop.wait(delay)
                    delay = min(delay * 2, RECONNECT_MAX_DELAY)
                finally:
                    pubsub.close()
        finally:
            self._executor.shutdown(wait=True)
            logger.info("event bus consumer stopped")

    def _listen(self, pubsub: Any) -> None:
        while not self._stop.is_set():
            message = pubsub.get_message(timeout=POLL_INTERVAL)
            if message is None or message.get("type") != "message":
                continue
            self.dispatch(message.get("channel"), message.get("data"))

    def dispatch(self, channel: str | None, data: Any) -> Future | None:
        """Decode one bus message and hand it to the worker pool.

        Returns:
            The handler future, or None if the message was rejected or the
            consumer stopped while waiting for a free worker.
        """
        try:
            event = DomainEvent.from_message(data, channel=channel)
        except InvalidEventError as e:
            logger.warning(
                "malformed event message",
                extra={"extra_fields": safe_log_context(channel=channel, error=str(e))},
            )
            self._dead_letter.publish(event_type=channel, event_id=None, envelope=data, error=e)
            return None

        while not self._slots.acquire(timeout=SLOT_WAIT):
            if self._stop.is_set():
                return None

        future = self._executor.submit(self._router.route, event)
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: Future) -> None:
        self._slots.release()
        error = future.exception()
        if error is not None:
            logger.error(
                "event task crashed",
                extra={"extra_fields": safe_log_context(error_type=type(error).__name__)},
            )
