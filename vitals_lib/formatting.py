"""Range validation and display formatting for sensor values."""

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Dict, Mapping, Optional

from vitals_lib.config import DEFAULT_RANGES
from vitals_lib.models import SensorKey, ValueRange

WAITING_TEXT = "Waiting…"
ERROR_TEXT = "Error"
MISSING_TEXT = "—"


def valid_by_range(
    key: str, value: float, ranges: Optional[Mapping[str, ValueRange]] = None
) -> bool:
    """Check a value against the configured range for its key.

    Args:
        key: Sensor key
        value: Candidate value
        ranges: Range table. Defaults to DEFAULT_RANGES.

    Returns:
        True if the key has no range or value lies within it (inclusive)
    """
    table = DEFAULT_RANGES if ranges is None else ranges
    bound = table.get(key)
    if bound is None:
        return True
    return bound.contains(value)


def clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(value, maximum))


def _round_half_up(value: float, places: int) -> str:
    # Round the shortest decimal repr so 36.55 renders as 36.6
    quantum = Decimal(1).scaleb(-places)
    try:
        rounded = Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Beyond decimal context precision; plain float formatting is exact enough
        return f"{value:.{places}f}"
    if rounded.is_zero():
        rounded = abs(rounded)
    return str(rounded)


def _plain(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return repr(value)


_FORMATTERS: Dict[str, Callable[[float], str]] = {
    SensorKey.HR: lambda v: f"{_round_half_up(v, 0)} bpm",
    SensorKey.SPO2: lambda v: f"{_round_half_up(v, 0)} %",
    SensorKey.TEMP: lambda v: f"{_round_half_up(v, 1)} °C",
    SensorKey.GSR: lambda v: _round_half_up(v, 0),
    SensorKey.HEIGHT: lambda v: f"{_round_half_up(v, 1)} cm",
    SensorKey.WEIGHT: lambda v: f"{_round_half_up(v, 1)} kg",
}


def format_value(key: str, value: float) -> str:
    """Render a value for display using the key's unit and precision.

    Never fails: non-finite values render as an em-dash and unknown
    keys as the bare number.

    Examples:
        >>> format_value("TEMP", 36.55)
        '36.6 °C'
        >>> format_value("HR", 71.9)
        '72 bpm'
    """
    if not math.isfinite(value):
        return MISSING_TEXT

    formatter = _FORMATTERS.get(key)
    if formatter is None:
        return _plain(value)
    return formatter(value)
