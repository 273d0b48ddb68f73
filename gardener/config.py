"""
config.py - Station configuration

Defaults, then config.json, then environment, then command-line flags.

Env:
  STATION_NAME=gardener
  MOCK_HARDWARE=0|1
  MQTT_BROKER=otto        # "local" runs an in-process bus
  MQTT_PORT=1883
  MQTT_USERNAME / MQTT_PASSWORD
  POLL_INTERVAL=10        # seconds between sensor reads
  SIM_INTERVAL=5          # mock mode drift period
  SIM_DELTA=0.02          # mock mode drift per tick
  STATUS_PORT=8011        # 0 disables the status server
  LOG_LEVEL=info
  LOG_OUTPUT=file         # stdout | stderr | file
  LOG_FORMAT=text         # text | json
  LOG_FILE=garden-station.log

Config file (optional): ../config.json, or the path in GARDENER_CONFIG
  {
    "station_name": "gardener",
    "mqtt": { "broker": "otto", "port": 1883 },
    "poll": { "interval": 10 },
    "simulation": { "interval": 5, "delta": 0.02 },
    "status": { "port": 8011 },
    "log": { "level": "info", "output": "file", "format": "text" }
  }
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)

REPO_ROOT = Path(__file__).parent.parent
CONFIG_FILE = REPO_ROOT / "config.json"

LOG_OUTPUTS = ("stdout", "stderr", "file")
LOG_FORMATS = ("text", "json")

# dotted config.json path -> (field, environment variable, type)
_FIELDS = {
    "station_name":        ("station_name", "STATION_NAME", str),
    "mock":                ("mock", "MOCK_HARDWARE", bool),
    "mqtt.broker":         ("broker", "MQTT_BROKER", str),
    "mqtt.port":           ("port", "MQTT_PORT", int),
    "mqtt.username":       ("username", "MQTT_USERNAME", str),
    "mqtt.password":       ("password", "MQTT_PASSWORD", str),
    "poll.interval":       ("poll_interval", "POLL_INTERVAL", float),
    "simulation.interval": ("sim_interval", "SIM_INTERVAL", float),
    "simulation.delta":    ("sim_delta", "SIM_DELTA", float),
    "status.port":         ("status_port", "STATUS_PORT", int),
    "log.level":           ("log_level", "LOG_LEVEL", str),
    "log.output":          ("log_output", "LOG_OUTPUT", str),
    "log.format":          ("log_format", "LOG_FORMAT", str),
    "log.file":            ("log_file", "LOG_FILE", str),
}


@dataclass
class StationConfig:
    station_name: str = "gardener"
    mock: bool = False
    broker: str = "otto"
    port: int = 1883
    username: str = ""
    password: str = ""
    poll_interval: float = 10.0
    sim_interval: float = 5.0
    sim_delta: float = 0.02
    status_port: int = 8011
    log_level: str = "info"
    log_output: str = "file"
    log_format: str = "text"
    log_file: str = "garden-station.log"

    def validate(self) -> "StationConfig":
        if self.log_output not in LOG_OUTPUTS:
            raise ValueError(f"Invalid log output {self.log_output!r}, must be one of {LOG_OUTPUTS}")
        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Invalid log format {self.log_format!r}, must be one of {LOG_FORMATS}")
        if self.poll_interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {self.poll_interval}")
        if self.sim_interval <= 0:
            raise ValueError(f"Simulation interval must be positive, got {self.sim_interval}")
        return self


def _coerce(value: Any, kind: type) -> Any:
    if kind is bool:
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    return kind(value)


def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, "r") as f:
            cfg = json.load(f) or {}
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("failed to read config file", path=str(path), error=str(e))
        return {}
    if not isinstance(cfg, dict):
        logger.warning("config file is not an object", path=str(path))
        return {}
    return cfg


def _lookup(cfg: Dict[str, Any], path: str) -> Any:
    cur: Any = cfg
    for key in path.split("."):
        if not isinstance(cur, dict) or key not in cur:
            return None
        cur = cur[key]
    return cur


def load_config(overrides: Optional[Dict[str, Any]] = None,
                config_file: Optional[Path] = None,
                environ: Optional[Dict[str, str]] = None) -> StationConfig:
    """Build the station configuration.

    Args:
        overrides: Field values from the command line; None entries are ignored
        config_file: JSON file to read, defaults to GARDENER_CONFIG or
            config.json at the repository root
        environ: Environment mapping, defaults to os.environ

    Returns:
        Validated StationConfig

    Raises:
        ValueError: If a value has the wrong type or is out of range
    """
    env = os.environ if environ is None else environ
    if config_file is None:
        config_file = Path(env.get("GARDENER_CONFIG", CONFIG_FILE))
    cfg = _load_file(Path(config_file))

    config = StationConfig()
    for path, (name, env_key, kind) in _FIELDS.items():
        value = _lookup(cfg, path)
        if env.get(env_key) not in (None, ""):
            value = env[env_key]
        if value is not None:
            setattr(config, name, _coerce(value, kind))

    for name, value in (overrides or {}).items():
        if value is not None:
            setattr(config, name, value)

    config.log_level = config.log_level.lower()
    return config.validate()
