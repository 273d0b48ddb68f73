"""
Test dispatcher.py - Button edges to outbound messages
"""

import pytest
import threading
from pathlib import Path
import sys

from structlog.testing import capture_logs

# Add repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gardener.dispatcher import EventDispatcher
from gardener.registry import Device, INPUT
from gardener.messenger import LocalMessenger
from gardener.shutdown import ShutdownSignal
from gardener.hal import MockButton, RISING, FALLING


class TestEventDispatcher:
    """Test EventDispatcher edge handling."""

    def setup_method(self):
        self.bus = LocalMessenger()
        self.shutdown = ShutdownSignal()
        self.dispatcher = EventDispatcher(self.bus, self.shutdown)
        self.on = MockButton("on", 17)
        self.off = MockButton("off", 27)
        self.dispatcher.watch(Device("on", INPUT, self.on), "d/on", b"on")
        self.dispatcher.watch(Device("off", INPUT, self.off), "d/off", b"off")

    @pytest.mark.parametrize("presses", [1, 5, 50])
    def test_one_message_per_rising_edge(self, presses):
        """Test that N presses publish exactly N messages."""
        for _ in range(presses):
            self.on.press()

        messages = self.bus.messages()
        assert len(messages) == presses
        assert all(m.topic == "d/on" and m.payload == b"on" for m in messages)

    def test_falling_edges_ignored(self):
        self.on.emit(FALLING)
        self.on.emit(FALLING)
        assert self.bus.messages() == []

    def test_emission_order_preserved(self):
        """Test interleaved presses publish in the order they happened."""
        sequence = ["on", "off", "off", "on", "off"]
        buttons = {"on": self.on, "off": self.off}
        for name in sequence:
            buttons[name].emit(RISING)

        messages = self.bus.messages()
        assert [m.topic for m in messages] == [f"d/{n}" for n in sequence]
        assert [m.payload for m in messages] == [n.encode() for n in sequence]

    def test_logs_button_press(self):
        with capture_logs() as logs:
            self.off.press()

        pressed = [e for e in logs if e["event"] == "button pressed"]
        assert len(pressed) == 1
        assert pressed[0]["button"] == "off"

    def test_publish_failure_isolated(self):
        """Test that a failing publish is logged and the next edge still publishes."""

        class FlakyBus:
            def __init__(self):
                self.calls = 0
                self.sent = []

            def publish(self, topic, payload):
                self.calls += 1
                if self.calls == 1:
                    raise ConnectionError("not connected")
                self.sent.append((topic, payload))

        bus = FlakyBus()
        dispatcher = EventDispatcher(bus, self.shutdown)
        button = MockButton("on", 17)
        dispatcher.watch(Device("on", INPUT, button), "d/on", b"on")

        with capture_logs() as logs:
            button.press()
            button.press()

        assert bus.sent == [("d/on", b"on")]
        assert any(e["event"] == "publish failed" for e in logs)

    def test_no_publish_after_shutdown(self):
        self.on.press()
        self.shutdown.fire()
        self.on.press()
        self.off.press()

        assert len(self.bus.messages()) == 1

    def test_unwatch_all(self):
        """Test subscriptions are cancelled exactly once."""
        assert len(self.dispatcher.subscriptions) == 2
        assert self.dispatcher.unwatch_all() == 2
        assert self.dispatcher.unwatch_all() == 0
        assert self.on.handler_count == 0

        self.on.press()
        assert self.bus.messages() == []

    def test_concurrent_edges_all_published(self):
        """Test edges from several notification threads are all delivered."""
        threads = [threading.Thread(target=lambda: [self.on.press() for _ in range(20)])
                   for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(self.bus.messages("d/on")) == 80


if __name__ == "__main__":
    pytest.main([__file__])
