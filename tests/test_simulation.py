"""
Test simulation.py - Mock mode value drift
"""

import pytest
import time
from pathlib import Path
import sys

from structlog.testing import capture_logs

# Add repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gardener.simulation import SimulationDriver, DEFAULT_INTERVAL, DEFAULT_DELTA
from gardener.registry import Device, SENSOR
from gardener.shutdown import ShutdownSignal
from gardener.errors import SimulationActiveError, NotFoundError
from gardener.hal import MockVH400


class BrokenPin:
    """Analog pin whose reads fail a fixed number of times."""

    def __init__(self, failures):
        self.failures = failures
        self.value = 0.0

    def get(self):
        if self.failures > 0:
            self.failures -= 1
            raise OSError("adc read failed")
        return self.value

    def set(self, value):
        self.value = value


class BrokenSoil:
    def __init__(self, failures):
        self.name = "soil"
        self.pin = BrokenPin(failures)


class NoPinSensor:
    """Sensor driver without a settable analog pin."""

    name = "soil"

    def get(self):
        return 0.4


class TestSimulationDriver:
    """Test SimulationDriver ticks and lifecycle."""

    def setup_method(self):
        self.shutdown = ShutdownSignal()
        self.driver = SimulationDriver(self.shutdown)

    def teardown_method(self):
        self.shutdown.fire()
        self.driver.join(2)

    def test_defaults(self):
        assert DEFAULT_INTERVAL == 5.0
        assert DEFAULT_DELTA == 0.02

    @pytest.mark.parametrize("v0,delta,k", [
        (0.40, 0.02, 1),
        (0.40, 0.02, 25),
        (0.0, 0.1, 10),
        (1.5, -0.05, 7),
    ])
    def test_value_after_k_ticks(self, v0, delta, k):
        """Test the synthetic value equals v0 + k*delta after k ticks."""
        soil = MockVH400(initial=v0)
        self.driver.start_simulation(Device("soil", SENSOR, soil), 5.0, delta, start=False)

        for _ in range(k):
            self.driver.step("soil")

        assert soil.get() == pytest.approx(v0 + k * delta)
        assert self.driver.ticks("soil") == k

    def test_second_simulation_rejected(self):
        """Test a device can only have one simulation."""
        device = Device("soil", SENSOR, MockVH400())
        self.driver.start_simulation(device, 5.0, 0.02, start=False)

        with pytest.raises(SimulationActiveError):
            self.driver.start_simulation(device, 5.0, 0.02, start=False)

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            self.driver.start_simulation(Device("soil", SENSOR, MockVH400()), 0, 0.02)

    def test_step_unknown_device(self):
        with pytest.raises(NotFoundError):
            self.driver.step("soil")

    def test_read_failure_logged_and_loop_continues(self):
        soil = BrokenSoil(failures=2)
        self.driver.start_simulation(Device("soil", SENSOR, soil), 5.0, 0.5, start=False)

        with capture_logs() as logs:
            for _ in range(4):
                self.driver.step("soil")

        assert soil.pin.value == pytest.approx(1.0)
        assert [e["event"] for e in logs].count("emulator failure") == 2

    def test_driver_without_pin(self):
        """Test a driver with no analog pin logs failures and the loop survives."""
        self.driver.start_simulation(Device("soil", SENSOR, NoPinSensor()), 0.01, 0.02)

        with capture_logs() as logs:
            deadline = time.monotonic() + 5
            while (sum(e["event"] == "emulator failure" for e in logs) < 3
                   and time.monotonic() < deadline):
                time.sleep(0.01)

        assert sum(e["event"] == "emulator failure" for e in logs) >= 3
        assert self.driver.ticks("soil") == 0
        assert self.driver.join(0) is False

        self.shutdown.fire()
        assert self.driver.join(2) is True

    def test_no_ticks_after_shutdown(self):
        soil = MockVH400(initial=0.4)
        self.driver.start_simulation(Device("soil", SENSOR, soil), 5.0, 0.02, start=False)
        self.driver.step("soil")

        self.shutdown.fire()
        self.driver.step("soil")

        assert soil.get() == pytest.approx(0.42)

    def test_thread_drifts_then_exits_on_shutdown(self):
        """Test the loop thread ticks on its interval and stops on shutdown."""
        soil = MockVH400(initial=0.0)
        self.driver.start_simulation(Device("soil", SENSOR, soil), 0.02, 0.01)

        deadline = time.monotonic() + 5
        while self.driver.ticks("soil") < 3 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert self.driver.ticks("soil") >= 3

        self.shutdown.fire()
        assert self.driver.join(2) is True

        ticks = self.driver.ticks("soil")
        assert soil.get() == pytest.approx(ticks * 0.01)
        time.sleep(0.1)
        assert self.driver.ticks("soil") == ticks


if __name__ == "__main__":
    pytest.main([__file__])
