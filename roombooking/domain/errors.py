"""Errors raised by the booking engine's strict entry points."""

from __future__ import annotations


class BookingEngineError(ValueError):
    """Base class for rejected engine input."""


class InvalidTimeFormat(BookingEngineError):
    """A time-of-day value is not a strict ``HH:MM`` string."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid time format: {value!r} (expected HH:MM)")
        self.value = value


class InvalidBookingShape(BookingEngineError):
    """A booking draft is not a well-formed permanent or event booking."""
