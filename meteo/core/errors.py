from __future__ import annotations


class MeteoError(Exception):
    """Base class for errors raised by the telemetry service."""


class InvalidRangeError(MeteoError, ValueError):
    """A history range that is not a finite positive number of minutes."""

    def __init__(self, message: str = "Invalid 'minutes' query parameter") -> None:
        super().__init__(message)
        self.message = message


class StoreUnavailableError(MeteoError):
    """The metric store is not configured or cannot be reached."""
