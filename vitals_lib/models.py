"""Data models for the vitals wizard library."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, StrEnum
from typing import Optional


class SensorKey(StrEnum):
    """Physiological quantities the sensor box can report."""

    HR = "HR"
    SPO2 = "SPO2"
    TEMP = "TEMP"
    GSR = "GSR"
    HEIGHT = "HEIGHT"
    WEIGHT = "WEIGHT"


class ConnectionState(Enum):
    """Controller connection states."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    READ_FAILED = "read_failed"


class SessionState(Enum):
    """Lifecycle of a single measurement session."""

    IDLE = "idle"
    WAITING = "waiting"
    LOCKED = "locked"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class ValueRange:
    """Inclusive [minimum, maximum] bound for a sensor key."""

    minimum: float
    maximum: float

    def __post_init__(self) -> None:
        if self.minimum > self.maximum:
            raise ValueError(f"minimum {self.minimum} exceeds maximum {self.maximum}")

    def contains(self, value: float) -> bool:
        return self.minimum <= value <= self.maximum


@dataclass(frozen=True)
class Reading:
    """One decoded protocol line.

    Attributes:
        key: Upper-cased sensor key. Known keys compare equal to SensorKey members.
        value: Numeric value, or None when the device sent an error sentinel.
        ts: UTC timestamp when the line was decoded.
    """

    key: str
    value: Optional[float]
    ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_error(self) -> bool:
        """True if the device reported NA/OUT instead of a number."""
        return self.value is None
