"""Domain events emitted by the storage layer's write side."""

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field


class BookingCreated(BaseModel):
    """Fired when a new Booking is persisted."""

    booking_id: str


class BookingUpdated(BaseModel):
    booking_id: str


class BookingCancelled(BaseModel):
    """Fired when a booking is soft-deleted."""

    booking_id: str


class BookingTemporarilyFreed(BaseModel):
    """Fired when dates are added to or removed from a booking's exceptions."""

    booking_id: str
    added: list[dt.date] = Field(default_factory=list)
    removed: list[dt.date] = Field(default_factory=list)


class UnavailabilityDeclared(BaseModel):
    period_id: str
    room_id: str


class UnavailabilityLifted(BaseModel):
    period_id: str
    room_id: str


class HallChanged(BaseModel):
    """Fired on any hall create/update/delete."""

    hall_id: str


class RoomChanged(BaseModel):
    """Fired on room create/update."""

    room_id: str
    hall_id: str


class RoomDeleted(BaseModel):
    """Fired after a room is removed; handlers clean up what referenced it."""

    room_id: str
    hall_id: str
