"""
Device Registry
===============

Maps logical device names to device handles. Lookup and enumeration only;
the registry performs no I/O.
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List

from .errors import DuplicateNameError, NotFoundError

SENSOR = "sensor"
ACTUATOR = "actuator"
DISPLAY = "display"
INPUT = "input"

CAPABILITIES = (SENSOR, ACTUATOR, DISPLAY, INPUT)


@dataclass(frozen=True)
class Device:
    """A named handle to a device driver."""

    name: str
    capability: str
    driver: Any

    def __post_init__(self):
        if self.capability not in CAPABILITIES:
            raise ValueError(f"Invalid capability {self.capability!r}")


class DeviceRegistry:
    """Registry of the station's devices.

    Populated once during initialization; safe for concurrent lookups
    afterwards.
    """

    def __init__(self):
        self._devices: Dict[str, Device] = {}
        self._lock = threading.Lock()

    def add(self, device: Device) -> Device:
        """Register a device under its name.

        Args:
            device: Device to register

        Returns:
            The registered device

        Raises:
            DuplicateNameError: If a device with the same name exists
        """
        with self._lock:
            if device.name in self._devices:
                raise DuplicateNameError(f"device {device.name!r} already registered")
            self._devices[device.name] = device
        return device

    def get(self, name: str) -> Device:
        """Look up a device by name.

        Raises:
            NotFoundError: If no device is registered under the name
        """
        try:
            return self._devices[name]
        except KeyError:
            raise NotFoundError(f"device {name!r} not found") from None

    def names(self) -> List[str]:
        return list(self._devices)

    def by_capability(self, capability: str) -> List[Device]:
        return [d for d in self._devices.values() if d.capability == capability]

    def __contains__(self, name: str) -> bool:
        return name in self._devices

    def __iter__(self) -> Iterator[Device]:
        return iter(list(self._devices.values()))

    def __len__(self) -> int:
        return len(self._devices)
