"""
Hardware Abstraction Layer for the Garden Station
=================================================

Defines protocols and implementations for the station's devices: the VH400
soil moisture probe, the BME280 environmental sensor, the pump relay, the
on/off push buttons and the OLED display.
Provides both real hardware interfaces and mock implementations for testing.
"""

import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Protocol

from .errors import DeviceInitError

RISING = "rising"
FALLING = "falling"


@dataclass(frozen=True)
class EnvReading:
    """A single temperature/humidity/pressure sample."""

    temperature: float
    humidity: float
    pressure: float


@dataclass(frozen=True)
class EdgeEvent:
    """Edge notification delivered by an input device."""

    device: str
    edge: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EdgeCallback = Callable[[EdgeEvent], None]


class Sensor(Protocol):
    """Protocol for a readable sensor."""

    name: str

    def get(self):
        """Read the current value.

        Returns:
            The sensor reading (float for soil, EnvReading for env)

        Raises:
            Any exception on read failure
        """
        ...


class Actuator(Protocol):
    """Protocol for a device driven by inbound messages."""

    name: str

    def handle_message(self, payload: bytes) -> None:
        """Apply a command payload to the device."""
        ...


class Input(Protocol):
    """Protocol for an edge-triggered input device."""

    name: str

    def register_edge_handler(self, callback: EdgeCallback) -> "EdgeSubscription":
        """Register a callback invoked once per edge."""
        ...


class EdgeSubscription:
    """Handle returned by register_edge_handler.

    Cancelling is idempotent; the handler is removed the first time only.
    """

    def __init__(self, device: str, remove: Callable[[], None]):
        self.device = device
        self._remove = remove
        self._lock = threading.Lock()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> bool:
        with self._lock:
            if not self._active:
                return False
            self._active = False
        self._remove()
        return True


class _EdgeSource:
    """Keeps the registered edge callbacks of an input device."""

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[EdgeCallback] = []
        self._handlers_lock = threading.Lock()

    def register_edge_handler(self, callback: EdgeCallback) -> EdgeSubscription:
        with self._handlers_lock:
            self._handlers.append(callback)

        def remove():
            with self._handlers_lock:
                if callback in self._handlers:
                    self._handlers.remove(callback)

        return EdgeSubscription(self.name, remove)

    @property
    def handler_count(self) -> int:
        with self._handlers_lock:
            return len(self._handlers)

    def _notify(self, edge: str) -> None:
        event = EdgeEvent(device=self.name, edge=edge)
        with self._handlers_lock:
            handlers = list(self._handlers)
        for handler in handlers:
            handler(event)


def parse_switch(payload: bytes) -> bool:
    """Interpret a relay command payload.

    Args:
        payload: Raw command bytes, e.g. b"on" or b"0"

    Returns:
        True to energize the relay, False to release it

    Raises:
        ValueError: If the payload is not a recognized switch command
    """
    text = payload.decode("utf-8", errors="replace").strip().lower()
    if text in ("on", "1", "true"):
        return True
    if text in ("off", "0", "false"):
        return False
    raise ValueError(f"invalid switch command {text!r}")


# ---------- Mock implementations ----------

class MockAnalogPin:
    """Synthetic analog input whose value can be set from software."""

    def __init__(self, value: float = 0.0):
        self._value = float(value)
        self._lock = threading.Lock()

    def get(self) -> float:
        with self._lock:
            return self._value

    def set(self, value: float) -> None:
        with self._lock:
            self._value = float(value)


class MockVH400:
    """Mock VH400 soil moisture probe backed by a MockAnalogPin."""

    def __init__(self, name: str = "soil", pin: int = 0, initial: float = 0.40):
        self.name = name
        self.pin_number = pin
        self.pin = MockAnalogPin(initial)

    def get(self) -> float:
        """Return the synthetic soil moisture value."""
        return self.pin.get()


class MockBME280:
    """Mock BME280 returning a fixed room-condition reading."""

    def __init__(self, name: str = "env", bus: str = "/dev/i2c-1", address: int = 0x76):
        self.name = name
        self.bus = bus
        self.address = address
        self.reading = EnvReading(temperature=22.5, humidity=45.0, pressure=1013.25)

    def get(self) -> EnvReading:
        return self.reading


class MockRelay:
    """Mock relay that records every state change."""

    def __init__(self, name: str = "pump", pin: int = 5):
        self.name = name
        self.pin = pin
        self.state = False
        self.history: List[bool] = []
        self._lock = threading.Lock()

    def handle_message(self, payload: bytes) -> None:
        state = parse_switch(payload)
        with self._lock:
            self.state = state
            self.history.append(state)


class MockButton(_EdgeSource):
    """Mock push button; press() emits a rising then a falling edge."""

    def __init__(self, name: str, pin: int):
        super().__init__(name)
        self.pin = pin

    def press(self) -> None:
        self._notify(RISING)
        self._notify(FALLING)

    def emit(self, edge: str) -> None:
        self._notify(edge)


class MockOLED:
    """Mock display keeping the last text written to it."""

    def __init__(self, name: str = "display", address: int = 0x3C, bus: int = 1):
        self.name = name
        self.address = address
        self.bus = bus
        self.lines: List[str] = []
        self.clear_count = 0

    def clear(self) -> None:
        self.lines = []
        self.clear_count += 1

    def handle_message(self, payload: bytes) -> None:
        self.lines = payload.decode("utf-8").splitlines()


# ---------- Real implementations ----------

class RealVH400:
    """Real VH400 soil probe read through an ADS1115 ADC channel."""

    def __init__(self, name: str = "soil", channel: int = 0, address: int = 0x48):
        """Initialize the ADS1115 channel the probe is wired to.

        Args:
            name: Device name
            channel: ADC channel number (0-3)
            address: I2C address of the ADS1115
        """
        self.name = name
        try:
            import board
            import busio
            from adafruit_ads1x15.ads1115 import ADS1115
            from adafruit_ads1x15.analog_in import AnalogIn
        except ImportError as e:
            raise DeviceInitError(name, f"Adafruit ADS1x15 libraries not available: {e}")

        pin_map = {0: ADS1115.P0, 1: ADS1115.P1, 2: ADS1115.P2, 3: ADS1115.P3}
        if channel not in pin_map:
            raise DeviceInitError(name, f"invalid channel {channel}, must be 0-3")

        try:
            i2c = busio.I2C(board.SCL, board.SDA)
            self.adc = ADS1115(i2c, address=address)
            self.analog_in = AnalogIn(self.adc, pin_map[channel])
        except (OSError, ValueError, RuntimeError) as e:
            raise DeviceInitError(name, str(e))

    def get(self) -> float:
        return self.analog_in.voltage


class RealBME280:
    """Real BME280 on the I2C bus."""

    def __init__(self, name: str = "env", address: int = 0x76):
        self.name = name
        try:
            import board
            import busio
            from adafruit_bme280 import basic as adafruit_bme280
        except ImportError as e:
            raise DeviceInitError(name, f"Adafruit BME280 library not available: {e}")

        try:
            i2c = busio.I2C(board.SCL, board.SDA)
            self.sensor = adafruit_bme280.Adafruit_BME280_I2C(i2c, address=address)
        except (OSError, ValueError, RuntimeError) as e:
            raise DeviceInitError(name, str(e))

    def get(self) -> EnvReading:
        return EnvReading(
            temperature=self.sensor.temperature,
            humidity=self.sensor.relative_humidity,
            pressure=self.sensor.pressure,
        )


def _import_gpio(name: str):
    try:
        import RPi.GPIO as GPIO
    except (ImportError, RuntimeError) as e:
        raise DeviceInitError(name, f"RPi.GPIO not available: {e}")
    GPIO.setwarnings(False)
    GPIO.setmode(GPIO.BCM)
    return GPIO


class RealRelay:
    """Relay on a GPIO output pin (BCM numbering)."""

    def __init__(self, name: str, pin: int):
        self.name = name
        self.pin = pin
        self.GPIO = _import_gpio(name)
        try:
            self.GPIO.setup(pin, self.GPIO.OUT, initial=self.GPIO.LOW)
        except (OSError, ValueError, RuntimeError) as e:
            raise DeviceInitError(name, str(e))

    def handle_message(self, payload: bytes) -> None:
        state = parse_switch(payload)
        self.GPIO.output(self.pin, self.GPIO.HIGH if state else self.GPIO.LOW)


class RealButton(_EdgeSource):
    """Push button on a GPIO input pin with edge detection."""

    def __init__(self, name: str, pin: int, bouncetime: int = 50):
        super().__init__(name)
        self.pin = pin
        self.GPIO = _import_gpio(name)
        try:
            self.GPIO.setup(pin, self.GPIO.IN, pull_up_down=self.GPIO.PUD_DOWN)
            self.GPIO.add_event_detect(
                pin, self.GPIO.BOTH, callback=self._on_edge, bouncetime=bouncetime
            )
        except (OSError, ValueError, RuntimeError) as e:
            raise DeviceInitError(name, str(e))

    def _on_edge(self, channel: int) -> None:
        # Runs on the RPi.GPIO event thread
        self._notify(RISING if self.GPIO.input(channel) else FALLING)


class RealOLED:
    """SSD1306 OLED display on the I2C bus."""

    def __init__(self, name: str = "display", address: int = 0x3C,
                 width: int = 128, height: int = 32):
        self.name = name
        try:
            import board
            import busio
            import adafruit_ssd1306
        except ImportError as e:
            raise DeviceInitError(name, f"Adafruit SSD1306 library not available: {e}")

        try:
            i2c = busio.I2C(board.SCL, board.SDA)
            self.oled = adafruit_ssd1306.SSD1306_I2C(width, height, i2c, addr=address)
        except (OSError, ValueError, RuntimeError) as e:
            raise DeviceInitError(name, str(e))
        self.rows = height // 8

    def clear(self) -> None:
        self.oled.fill(0)
        self.oled.show()

    def handle_message(self, payload: bytes) -> None:
        lines = payload.decode("utf-8").splitlines()
        self.oled.fill(0)
        for row, line in enumerate(lines[: self.rows]):
            self.oled.text(line, 0, row * 8, 1)
        self.oled.show()


# ---------- Factories ----------

def _use_mock(mock: bool) -> bool:
    return mock or os.getenv('MOCK_HARDWARE', '0') == '1'


def create_soil_sensor(name: str = "soil", channel: int = 0, mock: bool = False) -> Sensor:
    """Factory function to create the soil moisture probe.

    Args:
        name: Device name
        channel: ADS1115 channel the probe is wired to
        mock: If True, return mock implementation

    Returns:
        Soil sensor instance (real or mock)

    Raises:
        DeviceInitError: If the real hardware cannot be initialized
    """
    if _use_mock(mock):
        return MockVH400(name, channel)
    return RealVH400(name, channel)


def create_env_sensor(name: str = "env", address: int = 0x76, mock: bool = False) -> Sensor:
    """Factory function to create the temperature/humidity/pressure sensor."""
    if _use_mock(mock):
        return MockBME280(name, address=address)
    return RealBME280(name, address)


def create_relay(name: str, pin: int, mock: bool = False) -> Actuator:
    if _use_mock(mock):
        return MockRelay(name, pin)
    return RealRelay(name, pin)


def create_button(name: str, pin: int, mock: bool = False) -> Input:
    if _use_mock(mock):
        return MockButton(name, pin)
    return RealButton(name, pin)


def create_display(name: str = "display", address: int = 0x3C,
                   mock: bool = False) -> Actuator:
    if _use_mock(mock):
        return MockOLED(name, address)
    return RealOLED(name, address)
