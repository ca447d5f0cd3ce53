"""In-process event bus with Kafka-shaped producer and consumer wrappers."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Sequence

Handler = Callable[[dict[str, Any]], Awaitable[None]]
TopicHandler = Callable[[str, dict[str, Any]], Awaitable[None]]

_LOGGER = logging.getLogger(__name__)


class EventBus:
    """Dispatches published messages to the handlers subscribed to a topic."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> None:
        self._subscribers[topic].append(handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        handlers = self._subscribers.get(topic)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                self._subscribers.pop(topic, None)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    async def publish(self, topic: str, message: dict[str, Any]) -> int:
        """Deliver ``message`` to every subscriber and return how many handled it.

        A failing handler is logged and skipped so one consumer cannot block
        delivery to the others.
        """

        delivered = 0
        # Iterate over a copy in case handlers mutate subscriptions.
        for handler in list(self._subscribers.get(topic, [])):
            try:
                await handler(message)
            except Exception:
                _LOGGER.exception("Event handler failed for topic %s", topic)
                continue
            delivered += 1
        return delivered


_DEFAULT_BUS = EventBus()


def get_event_bus() -> EventBus:
    """Return the process-wide default bus."""

    return _DEFAULT_BUS


class EventProducer:
    """Publishes messages onto an event bus once connected."""

    def __init__(self, bus: EventBus | None = None) -> None:
        self._bus = bus or _DEFAULT_BUS
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def send(self, topic: str, value: dict[str, Any]) -> None:
        if not self._connected:
            raise RuntimeError("Producer not connected")
        await self._bus.publish(topic, value)

    async def close(self) -> None:
        self._connected = False


class EventConsumer:
    """Subscribes a topic-aware handler to one or more topics."""

    def __init__(
        self,
        topics: Sequence[str],
        handler: TopicHandler,
        *,
        bus: EventBus | None = None,
    ) -> None:
        self._topics = list(topics)
        self._handler = handler
        self._bus = bus or _DEFAULT_BUS
        self._registrations: list[tuple[str, Handler]] = []
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        for topic in self._topics:
            async def _callback(message: dict[str, Any], current_topic: str = topic) -> None:
                await self._handler(current_topic, message)

            self._bus.subscribe(topic, _callback)
            self._registrations.append((topic, _callback))
        self._started = True

    async def stop(self) -> None:
        if not self._started:
            return
        for topic, callback in self._registrations:
            self._bus.unsubscribe(topic, callback)
        self._registrations.clear()
        self._started = False
