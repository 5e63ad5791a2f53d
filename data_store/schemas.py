"""Schema normalization for accepted measurements to DataFrame format.

Every row describes one value accepted by a measurement session, whether
for the key on screen or for a sibling key answered by the same request.
"""

from datetime import timezone
from typing import Any, Dict, Optional

from vitals_lib.models import Reading

# DataFrame schema: column names and their dtypes
SCHEMA = {
    "timestamp": str,  # UTC ISO 8601 format
    "key": str,  # Sensor key (HR, SPO2, ...)
    "value": float,  # Raw value as decoded from the device
    "display": str,  # Rendered text shown to the user
    "screen": float,  # Wizard screen active when accepted (NaN if none)
}


def reading_to_row(reading: Reading, display: str, screen: Optional[int] = None) -> Dict[str, Any]:
    """Convert an accepted Reading to a DataFrame row dictionary.

    Args:
        reading: Reading accepted by the session
        display: Text rendered for it
        screen: Wizard screen number at acceptance time

    Returns:
        Dictionary with all SCHEMA keys, ready for DataFrame append

    Raises:
        ValueError: If the reading is an error sentinel (never accepted)
    """
    if reading.value is None:
        raise ValueError(f"Error sentinel readings are never recorded: {reading}")

    ts = reading.ts
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    elif ts.tzinfo != timezone.utc:
        ts = ts.astimezone(timezone.utc)

    return {
        "timestamp": ts.isoformat(),
        "key": str(reading.key),
        "value": reading.value,
        "display": display,
        "screen": screen,
    }
