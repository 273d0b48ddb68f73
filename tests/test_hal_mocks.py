"""
Test HAL (Hardware Abstraction Layer) mock implementations
"""

import pytest
import os
from pathlib import Path
import sys
import typing

# Add repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gardener.hal import (
    RISING,
    FALLING,
    EnvReading,
    MockAnalogPin,
    MockVH400,
    MockBME280,
    MockRelay,
    MockButton,
    MockOLED,
    Sensor,
    Actuator,
    Input,
    parse_switch,
    create_soil_sensor,
    create_env_sensor,
    create_relay,
    create_button,
    create_display,
)
from gardener.errors import DeviceInitError


class TestMockVH400:
    """Test MockVH400 implementation."""

    def test_mock_soil_initialization(self):
        """Test MockVH400 defaults."""
        soil = MockVH400()
        assert soil.name == "soil"
        assert isinstance(soil.pin, MockAnalogPin)

    def test_mock_soil_reads_pin(self):
        """Test that the reading follows the synthetic pin value."""
        soil = MockVH400(initial=0.42)
        assert soil.get() == 0.42

        soil.pin.set(0.5)
        assert soil.get() == 0.5

    def test_mock_soil_repeated_readings(self):
        """Test that repeated readings are identical without drift."""
        soil = MockVH400()
        readings = [soil.get() for _ in range(10)]
        assert all(r == readings[0] for r in readings)


class TestMockBME280:
    """Test MockBME280 implementation."""

    def test_mock_env_reading(self):
        """Test that the mock returns a plausible EnvReading."""
        env = MockBME280()
        reading = env.get()

        assert isinstance(reading, EnvReading)
        assert 15.0 <= reading.temperature <= 35.0
        assert 0.0 <= reading.humidity <= 100.0
        assert 900.0 <= reading.pressure <= 1100.0

    def test_mock_env_address(self):
        assert MockBME280(address=0x77).address == 0x77


class TestMockRelay:
    """Test MockRelay and switch parsing."""

    @pytest.mark.parametrize("payload,expected", [
        (b"on", True), (b"ON", True), (b"1", True), (b" true\n", True),
        (b"off", False), (b"0", False), (b"False", False),
    ])
    def test_parse_switch(self, payload, expected):
        assert parse_switch(payload) is expected

    @pytest.mark.parametrize("payload", [b"", b"maybe", b"\xff\xfe", b"2"])
    def test_parse_switch_invalid(self, payload):
        with pytest.raises(ValueError):
            parse_switch(payload)

    def test_relay_history(self):
        """Test that every command is recorded in order."""
        relay = MockRelay()
        relay.handle_message(b"on")
        relay.handle_message(b"off")
        relay.handle_message(b"on")

        assert relay.state is True
        assert relay.history == [True, False, True]

    def test_relay_rejects_garbage(self):
        """Test that an invalid command leaves the relay untouched."""
        relay = MockRelay()
        with pytest.raises(ValueError):
            relay.handle_message(b"open")
        assert relay.history == []


class TestMockButton:
    """Test MockButton edge notifications."""

    def test_press_emits_rising_then_falling(self):
        button = MockButton("on", 17)
        events = []
        button.register_edge_handler(events.append)

        button.press()

        assert [e.edge for e in events] == [RISING, FALLING]
        assert all(e.device == "on" for e in events)

    def test_cancel_subscription(self):
        """Test that a cancelled handler receives nothing and cancel is idempotent."""
        button = MockButton("off", 27)
        events = []
        subscription = button.register_edge_handler(events.append)

        assert subscription.cancel() is True
        assert subscription.cancel() is False
        assert button.handler_count == 0

        button.press()
        assert events == []

    def test_multiple_handlers(self):
        button = MockButton("on", 17)
        first, second = [], []
        button.register_edge_handler(first.append)
        button.register_edge_handler(second.append)

        button.emit(RISING)

        assert len(first) == 1
        assert len(second) == 1


class TestMockOLED:
    """Test MockOLED display."""

    def test_write_and_clear(self):
        display = MockOLED()
        display.handle_message(b"moisture\n0.42")
        assert display.lines == ["moisture", "0.42"]

        display.clear()
        assert display.lines == []
        assert display.clear_count == 1


class TestHALFactoryFunctions:
    """Test HAL factory functions."""

    def test_factories_mock_mode(self):
        """Test every factory with mock=True."""
        assert isinstance(create_soil_sensor(mock=True), MockVH400)
        assert isinstance(create_env_sensor(mock=True), MockBME280)
        assert isinstance(create_relay("pump", 5, mock=True), MockRelay)
        assert isinstance(create_button("on", 17, mock=True), MockButton)
        assert isinstance(create_display(mock=True), MockOLED)

    def test_factory_return_protocols(self):
        """Test each factory declares the device protocol its drivers satisfy."""
        expected = {
            create_soil_sensor: Sensor,
            create_env_sensor: Sensor,
            create_relay: Actuator,
            create_button: Input,
            create_display: Actuator,
        }
        for factory, protocol in expected.items():
            assert typing.get_type_hints(factory)["return"] is protocol

        assert callable(create_soil_sensor(mock=True).get)
        assert callable(create_relay("pump", 5, mock=True).handle_message)
        assert callable(create_button("on", 17, mock=True).register_edge_handler)

    def test_factory_names(self):
        assert create_button("off", 27, mock=True).name == "off"
        assert create_relay("pump", 5, mock=True).pin == 5

    def test_create_with_environment_variable(self, monkeypatch):
        """Test that MOCK_HARDWARE=1 forces mock drivers."""
        monkeypatch.setenv('MOCK_HARDWARE', '1')

        assert isinstance(create_soil_sensor(), MockVH400)
        assert isinstance(create_relay("pump", 5), MockRelay)

    def test_real_hardware_unavailable_is_fatal(self, monkeypatch):
        """Test that missing hardware raises instead of falling back to a mock."""
        monkeypatch.delenv('MOCK_HARDWARE', raising=False)
        # Hide the hardware libraries even if they happen to be installed
        for module in ("board", "busio", "RPi", "RPi.GPIO", "adafruit_ssd1306"):
            monkeypatch.setitem(sys.modules, module, None)

        with pytest.raises(DeviceInitError) as excinfo:
            create_relay("pump", 5)
        assert excinfo.value.device == "pump"

        with pytest.raises(DeviceInitError):
            create_display()


if __name__ == "__main__":
    pytest.main([__file__])
