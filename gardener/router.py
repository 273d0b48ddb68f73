"""
Command Router
==============

Dispatches inbound command messages to the one actuator bound to each topic.
Every message is handled independently; failures are logged and never reach
the bus.
"""

import threading
from typing import Dict, List

import structlog

from .errors import NotFoundError, UnknownTopicError
from .messenger import Message
from .registry import Device, DeviceRegistry
from .shutdown import ShutdownSignal

logger = structlog.get_logger(__name__)

TOPIC_ROUTES: Dict[str, str] = {
    "c/pump": "pump",
    "c/lcd": "display",
}


class CommandRouter:
    """Routes c/<name> commands to registered actuators."""

    def __init__(self, registry: DeviceRegistry, shutdown: ShutdownSignal,
                 routes: Dict[str, str] = None):
        self._registry = registry
        self._shutdown = shutdown
        self._routes = dict(TOPIC_ROUTES if routes is None else routes)
        self._subscribed: Dict[str, bool] = {topic: False for topic in self._routes}
        self._lock = threading.Lock()

    @property
    def topics(self) -> List[str]:
        return list(self._routes)

    def is_subscribed(self, topic: str) -> bool:
        return self._subscribed.get(topic, False)

    def route(self, topic: str) -> Device:
        """Return the device bound to a topic.

        Raises:
            UnknownTopicError: If the topic has no route or its device was
                never registered
        """
        try:
            name = self._routes[topic]
        except KeyError:
            raise UnknownTopicError(f"no route for topic {topic!r}") from None
        try:
            return self._registry.get(name)
        except NotFoundError as e:
            raise UnknownTopicError(f"topic {topic!r} routes to {e}") from None

    def handle(self, message: Message) -> None:
        if self._shutdown.is_set():
            logger.debug("command dropped after shutdown", topic=message.topic)
            return

        try:
            device = self.route(message.topic)
        except UnknownTopicError as e:
            logger.warning("unknown topic", topic=message.topic, error=str(e))
            return

        logger.info("command received", topic=message.topic, device=device.name,
                    payload=message.payload)
        try:
            device.driver.handle_message(message.payload)
        except Exception as e:
            logger.error("command failed", topic=message.topic, device=device.name,
                         error=str(e))

    def subscribe(self, bus) -> None:
        """Subscribe every routed topic that is not yet subscribed."""
        with self._lock:
            pending = [t for t, done in self._subscribed.items() if not done]
            for topic in pending:
                self._subscribed[topic] = True
        for topic in pending:
            bus.subscribe(topic, self.handle)

    def unsubscribe(self, bus) -> None:
        with self._lock:
            active = [t for t, done in self._subscribed.items() if done]
            for topic in active:
                self._subscribed[topic] = False
        for topic in active:
            try:
                bus.unsubscribe(topic)
            except Exception as e:
                logger.warning("unsubscribe failed", topic=topic, error=str(e))
