"""
Lifecycle Coordinator
=====================

Gardener owns the station's start/stop semantics. It builds every
collaborator once, brings the devices up in a fixed order, wires pollers,
edge handlers and command routes to them, and on shutdown fires the one-shot
signal that every activity observes.
"""

import threading
from typing import Any, Callable, Dict, List, Optional

import structlog

from . import hal
from .config import StationConfig
from .dispatcher import EventDispatcher
from .encoding import encode_edge, encode_env, encode_soil
from .errors import DeviceInitError, StartupError
from .messenger import create_messenger
from .poller import SensorPoller
from .registry import ACTUATOR, CAPABILITIES, DISPLAY, INPUT, SENSOR, Device, DeviceRegistry
from .router import CommandRouter
from .server import StatusServer
from .shutdown import ShutdownSignal
from .simulation import SimulationDriver

logger = structlog.get_logger(__name__)

# BCM pin numbers; soil is the ADS1115 channel the VH400 is wired to
PINMAP = {
    "on": 17,
    "off": 27,
    "soil": 0,
    "pump": 5,
}
ENV_ADDRESS = 0x76
DISPLAY_ADDRESS = 0x3C

BUTTON_TOPICS = {
    "on": "d/on",
    "off": "d/off",
}

DriverFactory = Callable[[], Any]


class Gardener:
    """The garden station controller."""

    def __init__(self, config: Optional[StationConfig] = None, messenger=None,
                 factories: Optional[Dict[str, DriverFactory]] = None,
                 resolution: float = 1.0):
        """Initialize the coordinator. Nothing is built until init().

        Args:
            config: Station configuration, defaults to StationConfig()
            messenger: Message bus to use instead of one built from config
            factories: Per-device driver factories overriding the defaults,
                keyed by device name
            resolution: Poller thread wake-up granularity in seconds
        """
        self.config = config or StationConfig()
        self.done = ShutdownSignal()
        self.resolution = resolution

        self.messenger = messenger
        self.registry: Optional[DeviceRegistry] = None
        self.poller: Optional[SensorPoller] = None
        self.dispatcher: Optional[EventDispatcher] = None
        self.router: Optional[CommandRouter] = None
        self.simulator: Optional[SimulationDriver] = None
        self.server: Optional[StatusServer] = None

        self._factories = self._default_factories()
        self._factories.update(factories or {})
        self._errors: List[DeviceInitError] = []
        self._started = False
        self._lock = threading.Lock()

    def _default_factories(self) -> Dict[str, DriverFactory]:
        mock = self.config.mock
        return {
            "on": lambda: hal.create_button("on", PINMAP["on"], mock=mock),
            "off": lambda: hal.create_button("off", PINMAP["off"], mock=mock),
            "pump": lambda: hal.create_relay("pump", PINMAP["pump"], mock=mock),
            "env": lambda: hal.create_env_sensor("env", ENV_ADDRESS, mock=mock),
            "display": lambda: hal.create_display("display", DISPLAY_ADDRESS, mock=mock),
            "soil": lambda: hal.create_soil_sensor("soil", PINMAP["soil"], mock=mock),
        }

    # ----- init -----

    def init(self) -> None:
        """Build collaborators and bring up every device group in order.

        Raises:
            StartupError: If init already ran, or any device driver failed
                to construct (all failures are reported together)
        """
        with self._lock:
            if self.registry is not None:
                raise StartupError("gardener already initialized")
            self.registry = DeviceRegistry()

        config = self.config
        if self.messenger is None:
            self.messenger = create_messenger(
                config.broker, config.port, config.username, config.password,
                client_id=config.station_name,
            )
        if config.status_port > 0:
            self.server = StatusServer(self.status, port=config.status_port)
        self.poller = SensorPoller(self.messenger, self.done, self.resolution)
        self.dispatcher = EventDispatcher(self.messenger, self.done)
        self.router = CommandRouter(self.registry, self.done)
        self.simulator = SimulationDriver(self.done)

        self._init_buttons()
        self._init_pump()
        self._init_env()
        self._init_display()
        self._init_soil()

        if self._errors:
            self.stop()
            for err in self._errors:
                logger.error("device initialization failed", device=err.device, error=err.reason)
            names = ", ".join(err.device for err in self._errors)
            raise StartupError(f"device initialization failed: {names}") from self._errors[0]

        logger.info("gardener initialized", devices=self.registry.names())

    def _add(self, name: str, capability: str) -> Optional[Device]:
        try:
            driver = self._factories[name]()
        except DeviceInitError as e:
            self._errors.append(e)
            return None
        except Exception as e:
            self._errors.append(DeviceInitError(name, str(e)))
            return None
        return self.registry.add(Device(name, capability, driver))

    def _init_buttons(self) -> None:
        for name, topic in BUTTON_TOPICS.items():
            device = self._add(name, INPUT)
            if device is not None:
                self.dispatcher.watch(device, topic, encode_edge(name))

    def _init_pump(self) -> None:
        self._add("pump", ACTUATOR)

    def _init_env(self) -> None:
        device = self._add("env", SENSOR)
        if device is not None:
            self.poller.start_polling(device, self.config.poll_interval, encode_env)

    def _init_display(self) -> None:
        device = self._add("display", DISPLAY)
        if device is None:
            return
        try:
            device.driver.clear()
        except Exception as e:
            self._errors.append(DeviceInitError("display", f"clear failed: {e}"))

    def _init_soil(self) -> None:
        device = self._add("soil", SENSOR)
        if device is None:
            return
        self.poller.start_polling(device, self.config.poll_interval, encode_soil)
        if self.config.mock:
            self.simulator.start_simulation(
                device, self.config.sim_interval, self.config.sim_delta
            )

    # ----- start / stop -----

    def start(self) -> None:
        """Connect to the bus and subscribe the command routes.

        If stop() runs while the connection is being made, start() releases
        the bus again before returning.

        Raises:
            StartupError: If init() has not run
            BusConnectionError: If the bus connection fails
        """
        if self.registry is None:
            raise StartupError("init() must be called before start()")
        if self.done.is_set():
            raise StartupError("gardener already stopped")

        self.messenger.connect()
        # Set before wiring so a concurrent stop() knows to release the bus
        self._started = True
        self.router.subscribe(self.messenger)

        if self.server is not None:
            try:
                self.server.start()
            except OSError as e:
                logger.error("status server failed to start", port=self.config.status_port,
                             error=str(e))

        if self.done.is_set():
            logger.info("stopped while starting, releasing bus")
            self._release()
            return
        logger.info("gardener started", station=self.config.station_name)

    def stop(self) -> bool:
        """Fire the shutdown signal and tear down every activity.

        Returns:
            True for the call that delivered the signal, False afterwards
        """
        if not self.done.fire():
            return False
        logger.info("stopping gardener")

        if self.poller is not None:
            self.poller.stop_all()
        if self.dispatcher is not None:
            self.dispatcher.unwatch_all()
        if self.server is not None:
            self.server.stop()
        if self._started:
            self._release()
        return True

    def _release(self) -> None:
        # Safe to run twice: every step is idempotent
        self.router.unsubscribe(self.messenger)
        if self.server is not None:
            self.server.stop()
        self.messenger.disconnect()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for poller and simulation threads to exit."""
        ok = True
        if self.poller is not None:
            ok = self.poller.join(timeout) and ok
        if self.simulator is not None:
            ok = self.simulator.join(timeout) and ok
        return ok

    # ----- status -----

    def status(self) -> Dict[str, Any]:
        devices: Dict[str, List[str]] = {cap: [] for cap in CAPABILITIES}
        polling = []
        if self.registry is not None:
            for device in self.registry:
                devices[device.capability].append(device.name)
        if self.poller is not None:
            for job in self.poller.jobs:
                polling.append({
                    "device": job.device.name,
                    "topic": job.topic,
                    "interval": job.interval,
                    "cycles": job.cycles,
                    "published": job.published,
                    "failures": job.failures,
                })
        return {
            "station": self.config.station_name,
            "mock": self.config.mock,
            "broker": self.config.broker,
            "started": self._started,
            "stopped": self.done.is_set(),
            "devices": devices,
            "polling": polling,
        }
