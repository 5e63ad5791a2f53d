"""Wizard configuration: screen mapping, value ranges and timing."""

from dataclasses import dataclass, field
from typing import Dict, Optional

from vitals_lib import protocol
from vitals_lib.errors import InvalidConfigValue
from vitals_lib.models import SensorKey, ValueRange

TOTAL_SCREENS = 17

# Wizard steps that trigger a measurement
DEFAULT_SCREEN_KEYS: Dict[int, SensorKey] = {
    5: SensorKey.WEIGHT,
    6: SensorKey.HEIGHT,
    8: SensorKey.HR,
    9: SensorKey.SPO2,
    10: SensorKey.TEMP,
    13: SensorKey.GSR,
}

DEFAULT_RANGES: Dict[SensorKey, ValueRange] = {
    SensorKey.HR: ValueRange(30, 220),
    SensorKey.SPO2: ValueRange(70, 100),
    SensorKey.TEMP: ValueRange(30, 43),
    SensorKey.GSR: ValueRange(0, 1023),
    SensorKey.HEIGHT: ValueRange(40, 250),
    SensorKey.WEIGHT: ValueRange(2, 300),
}


@dataclass
class WizardConfig:
    """Configuration for one wizard session.

    Attributes:
        screen_keys: Screen number (1..total_screens) to the key measured on it.
        total_screens: Number of wizard screens, used for progress.
        ranges: Valid value range per key. Keys without a range accept anything.
        command_delay_s: Debounce between a screen change and the request.
        retry_delay_s: Backoff before re-issuing a request after NA/OUT.
        max_retries: Error sentinels tolerated before giving up.
        lock_on_first_valid: Stop listening after the first in-range value.
    """

    screen_keys: Dict[int, SensorKey] = field(
        default_factory=lambda: dict(DEFAULT_SCREEN_KEYS)
    )
    total_screens: int = TOTAL_SCREENS
    ranges: Dict[SensorKey, ValueRange] = field(
        default_factory=lambda: dict(DEFAULT_RANGES)
    )
    command_delay_s: float = protocol.COMMAND_DELAY
    retry_delay_s: float = protocol.RETRY_DELAY
    max_retries: int = protocol.MAX_RETRIES
    lock_on_first_valid: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.total_screens < 1:
            raise InvalidConfigValue(f"total_screens must be >= 1, got {self.total_screens}")

        for screen in self.screen_keys:
            if not (1 <= screen <= self.total_screens):
                raise InvalidConfigValue(
                    f"screen {screen} outside 1-{self.total_screens}"
                )

        if self.command_delay_s < 0 or self.retry_delay_s < 0:
            raise InvalidConfigValue("delays must be non-negative")

        if self.max_retries < 1:
            raise InvalidConfigValue(f"max_retries must be >= 1, got {self.max_retries}")

    def key_for_screen(self, screen: int) -> Optional[SensorKey]:
        """Return the key measured on a screen, or None."""
        return self.screen_keys.get(screen)

    def range_for(self, key: str) -> Optional[ValueRange]:
        return self.ranges.get(key)  # type: ignore[call-overload]
