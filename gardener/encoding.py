"""
Payload Encoding for Station Messages
=====================================

Pure functions that turn sensor readings and button edges into the byte
payloads published on the station's outbound topics.
All functions are stateless and testable without hardware dependencies.
"""

import json
import math
from typing import Any

from .errors import EncodingError

ENV_FIELDS = ("temperature", "humidity", "pressure")

EDGE_PAYLOADS = {
    "on": b"on",
    "off": b"off",
}


def encode_soil(value: Any) -> bytes:
    """Serialize a soil moisture value as fixed-precision decimal text.

    Uses a width of 5 with 2 decimals, so small values keep a leading pad.

    Args:
        value: Numeric sensor value

    Returns:
        ASCII payload bytes

    Raises:
        EncodingError: If the value is not a finite number

    Example:
        encode_soil(0.42)  # → b" 0.42"
    """
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"soil value {value!r} is not numeric: {e}")

    if not math.isfinite(number):
        raise EncodingError(f"soil value {value!r} is not finite")

    return ("%5.2f" % number).encode("ascii")


def encode_env(reading: Any) -> bytes:
    """Serialize a temperature/humidity/pressure reading as a JSON document.

    Args:
        reading: EnvReading (or any object/dict with the three fields)

    Returns:
        Compact JSON object bytes with exactly the keys in ENV_FIELDS

    Raises:
        EncodingError: If a field is missing or not a finite number
    """
    doc = {}
    for key in ENV_FIELDS:
        if isinstance(reading, dict):
            value = reading.get(key)
        else:
            value = getattr(reading, key, None)

        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise EncodingError(f"env reading field {key!r} is missing or not numeric")
        if not math.isfinite(value):
            raise EncodingError(f"env reading field {key!r} is not finite")
        doc[key] = value

    return json.dumps(doc, separators=(",", ":")).encode("utf-8")


def encode_edge(name: str) -> bytes:
    """Return the literal payload published for a button edge."""
    try:
        return EDGE_PAYLOADS[name]
    except KeyError:
        raise EncodingError(f"no edge payload for {name!r}") from None
