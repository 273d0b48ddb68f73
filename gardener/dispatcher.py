"""
Event Dispatcher
================

Turns rising edges from input devices into outbound messages. Handlers run
on the input driver's notification thread and only publish, which is
fire-and-forget on the bus.
"""

import threading
from typing import List

import structlog

from .hal import RISING, EdgeEvent, EdgeSubscription
from .registry import Device
from .shutdown import ShutdownSignal

logger = structlog.get_logger(__name__)


class EventDispatcher:
    """Publishes one message per rising edge of each watched input."""

    def __init__(self, bus, shutdown: ShutdownSignal):
        self._bus = bus
        self._shutdown = shutdown
        self._subscriptions: List[EdgeSubscription] = []
        self._lock = threading.Lock()

    def watch(self, device: Device, topic: str, payload: bytes) -> EdgeSubscription:
        """Register a rising-edge handler on an input device.

        Args:
            device: Registered input device
            topic: Topic published on every rising edge
            payload: Literal payload published with it

        Returns:
            Subscription handle; cancel() unregisters the handler
        """
        name = device.name

        def on_edge(event: EdgeEvent) -> None:
            if event.edge != RISING:
                return
            if self._shutdown.is_set():
                logger.debug("edge ignored after shutdown", device=name)
                return
            logger.info("button pressed", button=name, topic=topic)
            try:
                self._bus.publish(topic, payload)
            except Exception as e:
                logger.error("publish failed", device=name, topic=topic, error=str(e))

        subscription = device.driver.register_edge_handler(on_edge)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unwatch_all(self) -> int:
        """Cancel every subscription; returns how many were still active."""
        with self._lock:
            subscriptions, self._subscriptions = self._subscriptions, []
        return sum(1 for s in subscriptions if s.cancel())

    @property
    def subscriptions(self) -> List[EdgeSubscription]:
        with self._lock:
            return list(self._subscriptions)
