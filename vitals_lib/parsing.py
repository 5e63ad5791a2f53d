"""Pure functions for decoding ``KEY:VALUE`` sensor lines."""

import logging
from typing import Optional

from vitals_lib import protocol
from vitals_lib.errors import InvalidResponse
from vitals_lib.models import Reading, SensorKey

logger = logging.getLogger(__name__)


def normalize_key(raw: str) -> str:
    """Upper-case a key and map Portuguese device names to their SensorKey.

    Args:
        raw: Key text as sent by the device

    Returns:
        SensorKey member for known keys, else the upper-cased text
    """
    key = raw.strip().upper()
    if key in protocol.KEY_ALIASES:
        return protocol.KEY_ALIASES[key]
    try:
        return SensorKey(key)
    except ValueError:
        return key


def parse_sensor_line(line: str) -> Optional[Reading]:
    """Parse one protocol line into a Reading.

    Expected format: <KEY>:<VALUE>
    Example: "HR:72", "SpO2:NA", "TEMP:36.55"

    Args:
        line: Trimmed line from the framer

    Returns:
        Reading, or None for lines that are not key/value pairs
        (device log output, banners)

    Raises:
        InvalidResponse: If the value is neither a sentinel nor a number
    """
    if protocol.KEY_VALUE_SEPARATOR not in line:
        return None

    parts = line.split(protocol.KEY_VALUE_SEPARATOR)
    key = normalize_key(parts[0])
    if not key:
        return None

    # Anything after a second colon is ignored
    value_str = parts[1].strip()

    if value_str in protocol.ERROR_SENTINELS:
        return Reading(key=key, value=None)

    match = protocol.RE_LEADING_NUMBER.match(value_str)
    if not match:
        raise InvalidResponse(f"Non-numeric value in line: {line!r}")

    try:
        return Reading(key=key, value=float(match.group(0)))
    except ValueError as e:
        raise InvalidResponse(f"Failed to parse numeric value in line: {line!r}") from e


def decode_line(line: str) -> Optional[Reading]:
    """Lenient variant of parse_sensor_line used by the read loop.

    Malformed values are treated as protocol noise and dropped.
    """
    try:
        return parse_sensor_line(line)
    except InvalidResponse as e:
        logger.debug(f"Skipping unparseable line: {e}")
        return None
