"""
vitals_lib - Measurement acquisition for a multi-step vitals collection wizard.

Talks to the sensor box over USB serial (line-oriented KEY:VALUE protocol).
"""

from vitals_lib.config import WizardConfig
from vitals_lib.controller import MeasurementController
from vitals_lib.errors import (
    InvalidConfigValue,
    InvalidResponse,
    SerialIOError,
    VitalsError,
)
from vitals_lib.models import (
    ConnectionState,
    Reading,
    SensorKey,
    SessionState,
    ValueRange,
)

__version__ = "0.1.0"

__all__ = [
    "MeasurementController",
    "WizardConfig",
    "Reading",
    "SensorKey",
    "SessionState",
    "ConnectionState",
    "ValueRange",
    "VitalsError",
    "InvalidResponse",
    "InvalidConfigValue",
    "SerialIOError",
]
