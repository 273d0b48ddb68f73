#!/usr/bin/env python3
"""
station.py - Garden station controller for Raspberry Pi
=======================================================

Brings up the station's buttons, pump relay, environmental sensor, display
and soil probe, publishes readings and button presses over MQTT and routes
c/pump and c/lcd commands to the devices. Runs until SIGINT/SIGTERM.

Usage:
  garden-station --mock --mqtt-broker localhost --log-output stdout
  garden-station --mqtt-broker local --mock      # no broker needed
"""

from __future__ import annotations

import argparse
import signal
import sys

import structlog

from .config import LOG_FORMATS, LOG_OUTPUTS, load_config
from .errors import BusConnectionError, StartupError
from .lifecycle import Gardener
from .logging_setup import configure_logging

logger = structlog.get_logger(__name__)

JOIN_TIMEOUT = 5.0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Garden station controller for Raspberry Pi"
    )
    parser.add_argument("--mock", action="store_true", default=None,
                        help="Use mock devices instead of GPIO/I2C hardware")
    parser.add_argument("--mqtt-broker", dest="broker",
                        help="MQTT broker address, or 'local' for an in-process bus (default: otto)")
    parser.add_argument("--mqtt-port", dest="port", type=int,
                        help="MQTT broker port (default: 1883)")
    parser.add_argument("--mqtt-username", dest="username", help="MQTT username")
    parser.add_argument("--mqtt-password", dest="password", help="MQTT password")
    parser.add_argument("--station-name", dest="station_name",
                        help="Station name (default: gardener)")
    parser.add_argument("--poll-interval", dest="poll_interval", type=float,
                        help="Seconds between sensor reads (default: 10)")
    parser.add_argument("--status-port", dest="status_port", type=int,
                        help="Status server port, 0 disables it (default: 8011)")
    parser.add_argument("--log-level", dest="log_level",
                        help="Log level: debug, info, warn, error")
    parser.add_argument("--log-output", dest="log_output", choices=LOG_OUTPUTS,
                        help="Log output (default: file)")
    parser.add_argument("--log-format", dest="log_format", choices=LOG_FORMATS,
                        help="Log format (default: text)")
    parser.add_argument("--log-file", dest="log_file",
                        help="Log file path when --log-output=file")
    return parser


def install_signal_handlers(gardener: Gardener) -> None:
    """Route SIGINT/SIGTERM to Gardener.stop()."""

    def handler(signum, frame):
        logger.info("received signal, stopping gardener", signal=signal.Signals(signum).name)
        gardener.stop()

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def run(gardener: Gardener) -> int:
    """Start the station and block until it is stopped.

    Returns:
        Process exit status
    """
    try:
        gardener.init()
    except StartupError as e:
        logger.error("gardener failed to initialize", error=str(e))
        return 1

    install_signal_handlers(gardener)
    try:
        gardener.start()
    except BusConnectionError as e:
        logger.error("gardener failed to connect to broker", error=str(e))
        gardener.stop()
        return 1

    while not gardener.done.wait(1.0):
        pass

    if not gardener.join(JOIN_TIMEOUT):
        logger.warning("workers still running after shutdown", timeout=JOIN_TIMEOUT)
    logger.info("gardener stopped")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(vars(args))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    configure_logging(config.log_level, config.log_output, config.log_format, config.log_file)
    logger.info(
        "starting garden-station",
        station=config.station_name,
        mock=config.mock,
        broker=config.broker,
        log_level=config.log_level,
        log_output=config.log_output,
    )
    return run(Gardener(config))


if __name__ == "__main__":
    sys.exit(main())
