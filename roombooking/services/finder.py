"""Find rooms that are free at an instant or for a proposed slot."""

from __future__ import annotations

import datetime as dt
from collections import defaultdict
from typing import Iterable, TypeVar

from roombooking.domain.models import (
    Booking,
    BookingDraft,
    BookingType,
    Room,
    RoomFeature,
    UnavailabilityPeriod,
)
from roombooking.services.conflicts import find_conflicts
from roombooking.services.recurrence import occurrences_for_date
from roombooking.services.timeutils import as_date, contains, to_minutes

T = TypeVar("T")


def find_free_rooms(
    target: dt.date | str,
    instant: str,
    rooms: Iterable[Room],
    bookings: Iterable[Booking],
    periods: Iterable[UnavailabilityPeriod] = (),
) -> list[Room]:
    """Rooms with no booking or unavailability covering ``target`` at ``instant``.

    Coverage is half-open (``start <= instant < end``), so a room is free
    again at the minute its last class ends. Raises ``InvalidTimeFormat`` if
    *instant* is malformed.
    """
    to_minutes(instant)  # rejects a malformed instant even when nothing is booked
    rooms = list(rooms)
    occurrences = occurrences_for_date(bookings, periods, as_date(target), [r.id for r in rooms])

    busy = {
        occurrence.room_id
        for occurrence in occurrences
        if contains(occurrence.start_time, occurrence.end_time, instant)
    }
    return [room for room in rooms if room.id not in busy]


def find_alternative_rooms(
    rooms: Iterable[Room],
    target: dt.date | str,
    start_time: str,
    end_time: str,
    bookings: Iterable[Booking],
    periods: Iterable[UnavailabilityPeriod] = (),
) -> list[Room]:
    """Rooms where a one-off event from *start_time* to *end_time* would not conflict."""
    day = as_date(target)
    bookings_by_room: dict[str, list[Booking]] = defaultdict(list)
    for booking in bookings:
        bookings_by_room[booking.room_id].append(booking)
    periods = list(periods)

    available: list[Room] = []
    for room in rooms:
        draft = BookingDraft(
            type=BookingType.EVENT,
            room_id=room.id,
            hall_id=room.hall_id,
            date=day,
            start_time=start_time,
            end_time=end_time,
        )
        if not find_conflicts(draft, bookings_by_room[room.id], periods):
            available.append(room)
    return available


def filter_rooms(
    rooms: Iterable[Room],
    hall_id: str | None = None,
    min_capacity: int = 0,
    feature: RoomFeature | None = None,
    socket_threshold: int = 6,
) -> list[Room]:
    """Narrow a room list by hall, minimum capacity and one feature."""
    result = [r for r in rooms if hall_id is None or r.hall_id == hall_id]
    if min_capacity > 0:
        result = [r for r in result if r.capacity >= min_capacity]
    if feature == RoomFeature.PROJECTOR:
        result = [r for r in result if r.has_projector]
    elif feature == RoomFeature.SOCKETS:
        result = [r for r in result if r.working_sockets >= socket_threshold]
    elif feature == RoomFeature.SPEAKER:
        result = [r for r in result if r.has_mic_speaker]
    return result


def cap_results(items: list[T], limit: int | None) -> tuple[list[T], int]:
    """Display helper: the first *limit* items and the full count.

    *limit* must be at least 1; ``None`` means no cap.
    """
    if limit is None:
        return items, len(items)
    if limit < 1:
        raise ValueError(f"limit must be at least 1, got {limit}")
    return items[:limit], len(items)
