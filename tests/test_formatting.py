"""Tests for range validation and display formatting."""

import math

import pytest

from vitals_lib.config import DEFAULT_RANGES
from vitals_lib.formatting import (
    MISSING_TEXT,
    clamp,
    format_value,
    valid_by_range,
)
from vitals_lib.models import SensorKey, ValueRange


@pytest.mark.parametrize(
    "key,value,expected",
    [
        ("HR", 72, "72 bpm"),
        ("HR", 71.9, "72 bpm"),
        ("HR", 72.5, "73 bpm"),
        ("SPO2", 98, "98 %"),
        ("SPO2", 97.5, "98 %"),
        ("TEMP", 36.55, "36.6 °C"),
        ("TEMP", 36.5, "36.5 °C"),
        ("TEMP", 37, "37.0 °C"),
        ("GSR", 512, "512"),
        ("GSR", 511.6, "512"),
        ("HEIGHT", 172.5, "172.5 cm"),
        ("HEIGHT", 172.25, "172.3 cm"),
        ("WEIGHT", 70.25, "70.3 kg"),
        ("WEIGHT", 70, "70.0 kg"),
    ],
)
def test_format_known_keys(key: str, value: float, expected: str) -> None:
    """Test unit suffix and half-up rounding per key."""
    assert format_value(key, value) == expected


def test_format_accepts_sensor_key_members() -> None:
    """Test that SensorKey members and plain strings format the same."""
    assert format_value(SensorKey.TEMP, 36.55) == format_value("TEMP", 36.55)


def test_format_unknown_key_plain_number() -> None:
    """Test that unknown keys render the bare number."""
    assert format_value("BATTERY", 72.0) == "72"
    assert format_value("BATTERY", 3.7) == "3.7"


@pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
def test_format_non_finite(value: float) -> None:
    """Test that non-finite values render as a dash."""
    assert format_value("HR", value) == MISSING_TEXT
    assert format_value("BATTERY", value) == MISSING_TEXT


def test_format_never_negative_zero() -> None:
    """Test that tiny negative values do not render as -0."""
    assert format_value("GSR", -0.2) == "0"


def test_valid_by_range_inclusive_bounds() -> None:
    """Test that range bounds are inclusive."""
    assert valid_by_range("HR", 30)
    assert valid_by_range("HR", 220)
    assert not valid_by_range("HR", 29.9)
    assert not valid_by_range("HR", 220.1)
    assert valid_by_range("SPO2", 100)
    assert not valid_by_range("SPO2", 69)


def test_valid_by_range_unknown_key() -> None:
    """Test that keys without a range accept anything."""
    assert valid_by_range("BATTERY", -1000)


def test_valid_by_range_custom_table() -> None:
    """Test validation against a caller-supplied range table."""
    ranges = dict(DEFAULT_RANGES)
    ranges[SensorKey.TEMP] = ValueRange(35, 38)

    assert not valid_by_range("TEMP", 39, ranges)
    assert valid_by_range("TEMP", 39)


def test_clamp() -> None:
    """Test clamping into a range."""
    assert clamp(10, 30, 220) == 30
    assert clamp(300, 30, 220) == 220
    assert clamp(72, 30, 220) == 72


def test_documented_examples() -> None:
    """Test the reference validator and formatter cases."""
    assert not valid_by_range("HR", 25)
    assert valid_by_range("HR", 75)
    assert clamp(500, 0, 1023) == 500
    assert format_value("TEMP", 36.55) == "36.6 °C"
    assert format_value("HR", 71.9) == "72 bpm"
    assert format_value("HR", math.nan) == "—"
