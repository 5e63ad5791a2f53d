"""Custom exceptions for the vitals wizard library."""


class VitalsError(Exception):
    """Base exception for all vitals wizard library errors."""

    pass


class SerialIOError(VitalsError):
    """Raised when serial communication fails (port closed, open failed, read error)."""

    pass


class InvalidResponse(VitalsError):
    """Raised when the device sends a malformed protocol line."""

    pass


class InvalidConfigValue(VitalsError):
    """Raised when a wizard configuration value is invalid."""

    pass
