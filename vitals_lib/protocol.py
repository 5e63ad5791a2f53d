"""Wire protocol constants for the vitals sensor box.

The device speaks a line-oriented ASCII protocol over USB serial:
the host sends a request token, the device answers with one or more
``KEY:VALUE`` lines. A request for heart rate also yields oxygen
saturation, so both keys share a single combined token.
"""

import re
from typing import Dict, Final, FrozenSet, Optional, Tuple

from vitals_lib.models import SensorKey

# ============================================================================
# Line Termination
# ============================================================================

# Host terminates every request token with LF
INPUT_TERMINATOR: Final[str] = "\n"

# Device may answer with LF or CRLF
RE_LINE_SPLIT: Final[re.Pattern[str]] = re.compile(r"\r?\n")

# ============================================================================
# Serial Defaults
# ============================================================================

DEFAULT_BAUD: Final[int] = 115200
READ_TIMEOUT_S: Final[float] = 0.2
READ_CHUNK_MAX: Final[int] = 4096

# ============================================================================
# Request Tokens
# ============================================================================

CMD_HR_SPO2: Final[str] = "HR_SPO2"  # Combined pulse oximeter request
CMD_HEIGHT: Final[str] = "ALTURA"  # Firmware names height in Portuguese
CMD_TEMP: Final[str] = "TEMP"
CMD_GSR: Final[str] = "GSR"

# WEIGHT has no token: the scale pushes its reading unsolicited
COMMAND_FOR_KEY: Final[Dict[SensorKey, str]] = {
    SensorKey.HR: CMD_HR_SPO2,
    SensorKey.SPO2: CMD_HR_SPO2,
    SensorKey.HEIGHT: CMD_HEIGHT,
    SensorKey.TEMP: CMD_TEMP,
    SensorKey.GSR: CMD_GSR,
}


def command_for_key(key: str) -> Optional[str]:
    """Return the request token for a sensor key, or None if it has none."""
    return COMMAND_FOR_KEY.get(key)  # type: ignore[call-overload]


def keys_for_command(token: str) -> Tuple[SensorKey, ...]:
    """Return every key answered by a request token, in declaration order."""
    return tuple(k for k, t in COMMAND_FOR_KEY.items() if t == token)


# ============================================================================
# Response Grammar
# ============================================================================

KEY_VALUE_SEPARATOR: Final[str] = ":"

# Device could not produce a reading (no finger, probe out of range, ...)
ERROR_SENTINELS: Final[FrozenSet[str]] = frozenset({"NA", "OUT"})

# The firmware reports height and weight under their Portuguese names
KEY_ALIASES: Final[Dict[str, SensorKey]] = {
    "ALTURA": SensorKey.HEIGHT,
    "PESO": SensorKey.WEIGHT,
}

# Leading decimal number; trailing text (units, noise) is ignored
RE_LEADING_NUMBER: Final[re.Pattern[str]] = re.compile(
    r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?"
)

# ============================================================================
# Timing Constants (seconds)
# ============================================================================

# Debounce between a screen change and the request being sent
COMMAND_DELAY: Final[float] = 0.3

# Backoff before re-issuing a request after an error sentinel
RETRY_DELAY: Final[float] = 1.0

# Error sentinels tolerated before a measurement is abandoned
MAX_RETRIES: Final[int] = 3
