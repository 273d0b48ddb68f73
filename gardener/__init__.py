"""
Garden Station Package
======================

Event-driven controller for an automated irrigation station.
Polls soil and environmental sensors, reacts to button presses, drives the
pump relay and display, and talks to the rest of the garden over MQTT.
"""

from .errors import (
    StationError,
    DuplicateNameError,
    NotFoundError,
    DeviceInitError,
    StartupError,
    BusConnectionError,
    UnknownTopicError,
    EncodingError,
    SimulationActiveError,
)
from .hal import EnvReading, EdgeEvent, RISING, FALLING
from .registry import Device, DeviceRegistry
from .encoding import encode_soil, encode_env, encode_edge
from .messenger import Message, MQTTMessenger, LocalMessenger, create_messenger
from .shutdown import ShutdownSignal
from .poller import SensorPoller, PollingJob
from .dispatcher import EventDispatcher
from .router import CommandRouter, TOPIC_ROUTES
from .simulation import SimulationDriver
from .config import StationConfig, load_config
from .lifecycle import Gardener

__version__ = "0.1.0"

__all__ = [
    # Errors
    "StationError",
    "DuplicateNameError",
    "NotFoundError",
    "DeviceInitError",
    "StartupError",
    "BusConnectionError",
    "UnknownTopicError",
    "EncodingError",
    "SimulationActiveError",

    # Devices
    "EnvReading",
    "EdgeEvent",
    "RISING",
    "FALLING",
    "Device",
    "DeviceRegistry",

    # Payloads and messaging
    "encode_soil",
    "encode_env",
    "encode_edge",
    "Message",
    "MQTTMessenger",
    "LocalMessenger",
    "create_messenger",

    # Station activities
    "ShutdownSignal",
    "SensorPoller",
    "PollingJob",
    "EventDispatcher",
    "CommandRouter",
    "TOPIC_ROUTES",
    "SimulationDriver",

    # Coordinator
    "StationConfig",
    "load_config",
    "Gardener",
]
