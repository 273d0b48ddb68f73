"""
Sensor Poller
=============

Periodically reads each monitored sensor and publishes the encoded value.

Every polling job owns a schedule.Scheduler driven from its own thread, so a
slow or hung read only delays its own device. Ticks of one job never overlap.
"""

import threading
from typing import Callable, Dict, List, Optional, Union

import schedule
import structlog

from .errors import DuplicateNameError, NotFoundError
from .registry import Device
from .shutdown import ShutdownSignal

logger = structlog.get_logger(__name__)

Encoder = Callable[[object], bytes]


def topic_for(device_name: str) -> str:
    """Outbound topic for a device, e.g. d/soil."""
    return f"d/{device_name}"


class PollingJob:
    """A running read-and-publish schedule for one sensor."""

    def __init__(self, device: Device, interval: float, encode: Encoder, topic: str,
                 bus, shutdown: ShutdownSignal, resolution: float = 1.0):
        if interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {interval}")

        self.device = device
        self.interval = interval
        self.encode = encode
        self.topic = topic
        self.resolution = min(resolution, interval)

        self.cycles = 0
        self.published = 0
        self.failures = 0

        self._bus = bus
        self._shutdown = shutdown
        self._cancelled = threading.Event()
        self._cycle_lock = threading.Lock()
        self._scheduler = schedule.Scheduler()
        self._scheduler.every(interval).seconds.do(self._cycle)
        self._thread: Optional[threading.Thread] = None

    @property
    def stopped(self) -> bool:
        return self._cancelled.is_set() or self._shutdown.is_set()

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._run, name=f"poll-{self.device.name}", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        while not self.stopped:
            self._scheduler.run_pending()
            idle = self._scheduler.idle_seconds
            wait = self.resolution if idle is None else min(max(idle, 0.0), self.resolution)
            self._cancelled.wait(wait)
        logger.debug("poller exited", device=self.device.name)

    def run_pending(self) -> None:
        """Run the cycle if its next tick is due."""
        self._scheduler.run_pending()

    def run_now(self) -> None:
        """Run the cycle immediately, as if the next tick had come due."""
        self._scheduler.run_all()

    def cancel(self) -> bool:
        """Stop the schedule. Returns False if already cancelled.

        No read starts after this returns; a read already in progress may
        complete.
        """
        if self._cancelled.is_set():
            return False
        self._cancelled.set()
        self._scheduler.clear()
        return True

    def join(self, timeout: Optional[float] = None) -> bool:
        if self._thread is not None:
            self._thread.join(timeout)
            return not self._thread.is_alive()
        return True

    def _cycle(self) -> None:
        name = self.device.name
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("previous read still running, tick dropped", device=name)
            return
        try:
            if self.stopped:
                return
            self.cycles += 1

            try:
                value = self.device.driver.get()
            except Exception as e:
                self.failures += 1
                logger.error("sensor read failed", device=name, error=str(e))
                return

            try:
                payload = self.encode(value)
            except Exception as e:
                self.failures += 1
                logger.error("encode failed", device=name, value=repr(value), error=str(e))
                return

            logger.info("sensor reading", device=name, topic=self.topic, value=payload.decode())
            try:
                self._bus.publish(self.topic, payload)
            except Exception as e:
                self.failures += 1
                logger.error("publish failed", device=name, topic=self.topic, error=str(e))
                return
            self.published += 1
        finally:
            self._cycle_lock.release()


class SensorPoller:
    """Owns the polling jobs of every monitored sensor."""

    def __init__(self, bus, shutdown: ShutdownSignal, resolution: float = 1.0):
        """Initialize the poller.

        Args:
            bus: Message bus used for publishing readings
            shutdown: Station shutdown signal observed by every job
            resolution: Longest time (seconds) a job thread sleeps between
                schedule checks
        """
        self._bus = bus
        self._shutdown = shutdown
        self._resolution = resolution
        self._jobs: Dict[str, PollingJob] = {}
        self._lock = threading.Lock()

    def start_polling(self, device: Device, interval: float, encode: Encoder,
                      topic: Optional[str] = None, start: bool = True) -> PollingJob:
        """Begin polling a sensor on a fixed interval.

        Args:
            device: Registered sensor device
            interval: Seconds between cycles
            encode: Turns a reading into payload bytes
            topic: Outbound topic, defaults to d/<device name>
            start: Start the job thread (False leaves ticking to the caller)

        Returns:
            The PollingJob handle

        Raises:
            DuplicateNameError: If the device is already being polled
        """
        job = PollingJob(device, interval, encode, topic or topic_for(device.name),
                         self._bus, self._shutdown, self._resolution)
        with self._lock:
            if device.name in self._jobs:
                raise DuplicateNameError(f"device {device.name!r} is already polled")
            self._jobs[device.name] = job

        if start:
            job.start()
        logger.info("polling started", device=device.name, topic=job.topic, interval=interval)
        return job

    def stop_polling(self, device: Union[Device, str]) -> bool:
        name = device if isinstance(device, str) else device.name
        with self._lock:
            job = self._jobs.get(name)
        if job is None:
            raise NotFoundError(f"device {name!r} is not polled")
        return job.cancel()

    def stop_all(self) -> None:
        for job in self.jobs:
            job.cancel()

    def join(self, timeout: Optional[float] = None) -> bool:
        return all([job.join(timeout) for job in self.jobs])

    def get_job(self, name: str) -> PollingJob:
        with self._lock:
            try:
                return self._jobs[name]
            except KeyError:
                raise NotFoundError(f"device {name!r} is not polled") from None

    @property
    def jobs(self) -> List[PollingJob]:
        with self._lock:
            return list(self._jobs.values())
