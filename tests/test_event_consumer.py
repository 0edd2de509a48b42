"""Tests for the event bus consumer (Redis is mocked)."""

from __future__ import annotations

import json
import threading
from unittest.mock import MagicMock, patch

import redis

from marketnotify.config import EventBusSettings
from marketnotify.events.consumer import EventBusConsumer

ENVELOPE = json.dumps({"eventId": "evt-1", "type": "order.created", "payload": {"orderId": "o-1"}})


def _consumer(router=None, client=None, max_workers: int = 2):
    router = router or MagicMock()
    router.event_types.return_value = ["order.created", "payment.completed"]
    dead_letter = MagicMock()
    consumer = EventBusConsumer(
        router,
        client or MagicMock(),
        EventBusSettings(url="redis://test", max_workers=max_workers),
        dead_letter,
    )
    return consumer, router, dead_letter


class TestDispatch:
    def test_valid_message_is_routed(self):
        consumer, router, dead_letter = _consumer()
        future = consumer.dispatch("order.created", ENVELOPE)
        future.result(timeout=5)
        event = router.route.call_args[0][0]
        assert event.type == "order.created"
        assert event.event_id == "evt-1"
        dead_letter.publish.assert_not_called()
        consumer.stop()

    def test_malformed_message_is_dead_lettered(self):
        consumer, router, dead_letter = _consumer()
        assert consumer.dispatch("order.created", "{not json") is None
        router.route.assert_not_called()
        kwargs = dead_letter.publish.call_args.kwargs
        assert kwargs["event_type"] == "order.created"
        assert kwargs["envelope"] == "{not json"

    def test_pool_saturation_blocks_until_stop(self):
        release = threading.Event()
        router = MagicMock()
        router.route.side_effect = lambda event: release.wait(5)
        consumer, _, _ = _consumer(router=router, max_workers=1)

        first = consumer.dispatch("order.created", ENVELOPE)
        assert first is not None

        result: list = []
        waiter = threading.Thread(target=lambda: result.append(consumer.dispatch("order.created", ENVELOPE)))
        waiter.start()
        waiter.join(timeout=1.0)
        assert waiter.is_alive()  # blocked on the semaphore

        consumer.stop()
        waiter.join(timeout=5)
        release.set()
        first.result(timeout=5)
        assert result == [None]


class TestRun:
    def test_subscribes_to_router_event_types_and_routes_messages(self):
        client = MagicMock()
        pubsub = client.pubsub.return_value
        consumer, router, _ = _consumer(client=client)

        messages = iter([{"type": "message", "channel": "order.created", "data": ENVELOPE}])

        def get_message(timeout):
            try:
                return next(messages)
            except StopIteration:
                consumer.stop()
                return None

        pubsub.get_message.side_effect = get_message
        consumer.run()

        client.pubsub.assert_called_once_with(ignore_subscribe_messages=True)
        pubsub.subscribe.assert_called_once_with("order.created", "payment.completed")
        router.route.assert_called_once()
        pubsub.close.assert_called()

    def test_reconnects_with_backoff_after_connection_loss(self):
        client = MagicMock()
        pubsub = client.pubsub.return_value
        consumer, _, _ = _consumer(client=client)

        attempts = {"n": 0}

        def subscribe(*channels):
            attempts["n"] += 1
            if attempts["n"] < 3:
                raise redis.ConnectionError("connection refused")

        pubsub.subscribe.side_effect = subscribe
        pubsub.get_message.side_effect = lambda timeout: consumer.stop()

        waits: list[float] = []
        with patch.object(consumer._stop, "wait", side_effect=lambda d: waits.append(d)):
            consumer.run()

        assert attempts["n"] == 3
        assert waits == [0.5, 1.0]
