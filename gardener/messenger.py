"""
Publish/Subscribe Messaging
===========================

The station's single message bus collaborator. MQTTMessenger talks to a
broker through paho-mqtt; LocalMessenger delivers in process for brokerless
runs and tests. Both are safe for concurrent publish from several threads.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Deque, Dict, List, Optional, Protocol

import paho.mqtt.client as mqtt
import structlog

from .errors import BusConnectionError

logger = structlog.get_logger(__name__)

LOCAL_BROKER = "local"


@dataclass(frozen=True)
class Message:
    """An immutable topic message."""

    topic: str
    payload: bytes
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


MessageHandler = Callable[[Message], None]


class MessageBus(Protocol):
    """What the station needs from a publish/subscribe client."""

    def connect(self) -> None: ...

    def publish(self, topic: str, payload: bytes) -> None: ...

    def subscribe(self, topic: str, handler: MessageHandler) -> None: ...

    def unsubscribe(self, topic: str) -> None: ...

    def disconnect(self) -> None: ...


def _deliver(handlers: Dict[str, MessageHandler], message: Message) -> None:
    for sub, handler in handlers.items():
        if not mqtt.topic_matches_sub(sub, message.topic):
            continue
        try:
            handler(message)
        except Exception as e:
            logger.error("message handler failed", topic=message.topic,
                         subscription=sub, error=str(e))


class MQTTMessenger:
    """paho-mqtt client wrapper.

    The network loop runs on paho's own thread (loop_start). Subscriptions
    are remembered and re-issued on every (re)connect.
    """

    def __init__(
        self,
        broker: str = "otto",
        port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "gardener",
        qos: int = 0,
        connect_timeout: float = 5.0,
    ):
        self.broker = broker
        self.port = port
        self.username = username
        self.password = password
        self.client_id = f"{client_id}-{int(time.time())}"
        self.qos = qos
        self.connect_timeout = connect_timeout

        self._client: Optional[mqtt.Client] = None
        self._handlers: Dict[str, MessageHandler] = {}
        self._lock = threading.Lock()
        self._connected = False
        self._ready = threading.Event()
        self._connect_rc = None

    def _make_client(self) -> mqtt.Client:
        return mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            protocol=mqtt.MQTTv311,
        )

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        """Connect to the broker and start the network loop.

        Raises:
            BusConnectionError: If the broker refuses or cannot be reached
                within connect_timeout
        """
        client = self._make_client()
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        if self.username:
            client.username_pw_set(self.username, self.password or None)

        self._ready.clear()
        logger.info("connecting to broker", broker=self.broker, port=self.port)
        try:
            client.connect(self.broker, self.port, keepalive=60)
        except (OSError, ValueError) as e:
            raise BusConnectionError(
                f"cannot connect to {self.broker}:{self.port}: {e}") from e

        self._client = client
        client.loop_start()

        if not self._ready.wait(self.connect_timeout):
            self.disconnect()
            raise BusConnectionError(
                f"timed out connecting to {self.broker}:{self.port}")
        if not self._connected:
            self.disconnect()
            raise BusConnectionError(
                f"broker {self.broker}:{self.port} refused connection: {self._connect_rc}")

    def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.disconnect()
            client.loop_stop()
        except Exception as e:
            logger.warning("disconnect error", error=str(e))
        self._connected = False

    def publish(self, topic: str, payload: bytes) -> None:
        """Queue a message for delivery; failures are logged, never raised."""
        client = self._client
        if client is None:
            logger.error("publish before connect", topic=topic)
            return
        try:
            info = client.publish(topic, payload, qos=self.qos)
        except (ValueError, TypeError) as e:
            logger.error("publish failed", topic=topic, error=str(e))
            return
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error("publish failed", topic=topic, error=mqtt.error_string(info.rc))

    def subscribe(self, topic: str, handler: MessageHandler) -> None:
        with self._lock:
            self._handlers[topic] = handler
        if self._connected:
            self._client.subscribe(topic, qos=self.qos)
        logger.info("subscribed", topic=topic)

    def unsubscribe(self, topic: str) -> None:
        with self._lock:
            if self._handlers.pop(topic, None) is None:
                return
        if self._connected:
            self._client.unsubscribe(topic)

    # ----- paho callbacks (network thread) -----

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        self._connect_rc = reason_code
        if reason_code.is_failure:
            self._connected = False
            logger.error("broker connection refused", reason=str(reason_code))
        else:
            self._connected = True
            logger.info("connected to broker", broker=self.broker)
            with self._lock:
                topics = list(self._handlers)
            for topic in topics:
                client.subscribe(topic, qos=self.qos)
        self._ready.set()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected = False
        logger.warning("disconnected from broker", reason=str(reason_code))

    def _on_message(self, client, userdata, msg):
        logger.debug("message received", topic=msg.topic, payload=msg.payload)
        with self._lock:
            handlers = dict(self._handlers)
        _deliver(handlers, Message(msg.topic, bytes(msg.payload)))


class LocalMessenger:
    """In-process bus; publish delivers synchronously to local subscribers."""

    def __init__(self, history: int = 1000):
        self._handlers: Dict[str, MessageHandler] = {}
        self._history: Deque[Message] = deque(maxlen=history)
        self._lock = threading.Lock()
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        self._connected = True
        logger.info("local bus ready")

    def disconnect(self) -> None:
        self._connected = False

    def publish(self, topic: str, payload: bytes) -> None:
        message = Message(topic, bytes(payload))
        with self._lock:
            self._history.append(message)
            handlers = dict(self._handlers)
        _deliver(handlers, message)

    def subscribe(self, topic: str, handler: MessageHandler) -> None:
        with self._lock:
            self._handlers[topic] = handler

    def unsubscribe(self, topic: str) -> None:
        with self._lock:
            self._handlers.pop(topic, None)

    @property
    def subscriptions(self) -> List[str]:
        with self._lock:
            return list(self._handlers)

    def messages(self, topic: Optional[str] = None) -> List[Message]:
        """Published messages, oldest first, optionally for one topic."""
        with self._lock:
            history = list(self._history)
        if topic is None:
            return history
        return [m for m in history if m.topic == topic]


def create_messenger(broker: str, port: int = 1883, username: str = "",
                     password: str = "", client_id: str = "gardener"):
    """Build the bus client for a broker address ("local" for in-process)."""
    if broker == LOCAL_BROKER:
        return LocalMessenger()
    return MQTTMessenger(
        broker=broker,
        port=port,
        username=username or None,
        password=password or None,
        client_id=client_id,
    )
