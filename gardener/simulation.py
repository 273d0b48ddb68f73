"""
Simulation Driver
=================

Mock mode only: drifts a mock sensor's synthetic analog value by a fixed
increment on every tick so the poller sees changing data without hardware.
"""

import threading
from typing import Dict, Optional

import structlog

from .errors import NotFoundError, SimulationActiveError
from .registry import Device
from .shutdown import ShutdownSignal

logger = structlog.get_logger(__name__)

DEFAULT_INTERVAL = 5.0
DEFAULT_DELTA = 0.02


class _Simulation:
    def __init__(self, device: Device, interval: float, delta: float):
        self.device = device
        self.interval = interval
        self.delta = delta
        self.ticks = 0
        self.thread: Optional[threading.Thread] = None


class SimulationDriver:
    """Runs at most one drift loop per device until shutdown."""

    def __init__(self, shutdown: ShutdownSignal):
        self._shutdown = shutdown
        self._simulations: Dict[str, _Simulation] = {}
        self._lock = threading.Lock()

    def start_simulation(self, device: Device, interval: float = DEFAULT_INTERVAL,
                         delta: float = DEFAULT_DELTA, start: bool = True) -> None:
        """Start drifting a device's synthetic value.

        Args:
            device: Device whose driver exposes a settable analog pin
            interval: Seconds between ticks
            delta: Increment added on every tick
            start: Start the loop thread (False leaves ticking to step())

        Raises:
            SimulationActiveError: If the device is already simulated
        """
        if interval <= 0:
            raise ValueError(f"Simulation interval must be positive, got {interval}")

        sim = _Simulation(device, interval, delta)
        with self._lock:
            if device.name in self._simulations:
                raise SimulationActiveError(f"device {device.name!r} is already simulated")
            self._simulations[device.name] = sim

        if start:
            sim.thread = threading.Thread(
                target=self._run, args=(sim,), name=f"sim-{device.name}", daemon=True
            )
            sim.thread.start()
        logger.info("simulation started", device=device.name, interval=interval, delta=delta)

    def _run(self, sim: _Simulation) -> None:
        # wait() returns True once shutdown is signaled
        while not self._shutdown.wait(sim.interval):
            self._tick(sim)
        logger.debug("simulation exited", device=sim.device.name)

    def _tick(self, sim: _Simulation) -> None:
        try:
            pin = sim.device.driver.pin
            value = pin.get()
        except Exception as e:
            logger.error("emulator failure", device=sim.device.name, error=str(e))
            return
        try:
            pin.set(value + sim.delta)
        except Exception as e:
            logger.error("emulator failure", device=sim.device.name, error=str(e))
            return
        sim.ticks += 1

    def step(self, name: str) -> None:
        """Perform one tick synchronously; does nothing after shutdown."""
        with self._lock:
            sim = self._simulations.get(name)
        if sim is None:
            raise NotFoundError(f"device {name!r} is not simulated")
        if self._shutdown.is_set():
            return
        self._tick(sim)

    def ticks(self, name: str) -> int:
        with self._lock:
            sim = self._simulations.get(name)
        return sim.ticks if sim else 0

    def join(self, timeout: Optional[float] = None) -> bool:
        with self._lock:
            threads = [s.thread for s in self._simulations.values() if s.thread]
        for thread in threads:
            thread.join(timeout)
        return not any(t.is_alive() for t in threads)
