"""
Station Errors
==============

Exception types raised by the garden station core.
"""


class StationError(Exception):
    """Base class for all garden station errors."""


class DuplicateNameError(StationError):
    """A device, polling job or route is already registered under this name."""


class NotFoundError(StationError):
    """No device is registered under the requested name."""


class DeviceInitError(StationError):
    """A device driver could not be constructed."""

    def __init__(self, device: str, reason: str):
        super().__init__(f"device {device!r} failed to initialize: {reason}")
        self.device = device
        self.reason = reason


class StartupError(StationError):
    """Station startup was aborted."""


class BusConnectionError(StationError):
    """The message bus connection could not be established."""


class UnknownTopicError(StationError):
    """An inbound topic has no route."""


class EncodingError(StationError):
    """A sensor reading could not be serialized."""


class SimulationActiveError(StationError):
    """A simulation is already running for the device."""
