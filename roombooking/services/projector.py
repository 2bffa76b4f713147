"""Project resolved occurrences onto day-grid and weekly-timetable layouts.

Every view goes through the same two steps: clip occurrences to the visible
window (``to_block``) and stack overlapping blocks into lanes
(``assign_lanes``).
"""

from __future__ import annotations

import datetime as dt
from collections import defaultdict
from typing import Iterable

from roombooking.domain.models import (
    BlockKind,
    Booking,
    Occurrence,
    Room,
    RoomDayRow,
    UnavailabilityPeriod,
    VisualBlock,
    WeekDayRow,
)
from roombooking.services.recurrence import (
    occurrences_for_date,
    resolve_booking,
    resolve_period,
)
from roombooking.services.timeutils import (
    TimeWindow,
    as_date,
    day_name,
    to_minutes_lenient,
    week_dates,
)

TEMPFREE_LABEL = "Temporarily Free"


def _clamp(value: int, low: int, high: int) -> int:
    return min(high, max(low, value))


def _unique_bookings(bookings: Iterable[Booking]) -> list[Booking]:
    seen: set[str] = set()
    unique: list[Booking] = []
    for booking in bookings:
        if booking.id in seen:
            continue
        seen.add(booking.id)
        unique.append(booking)
    return unique


def to_block(occurrence: Occurrence, window: TimeWindow) -> VisualBlock | None:
    """Clip *occurrence* to *window*; ``None`` if nothing of it is visible.

    Offsets are clipped, the displayed times are not.
    """
    start = _clamp(to_minutes_lenient(occurrence.start_time) - window.start_minute, 0, window.span)
    end = _clamp(to_minutes_lenient(occurrence.end_time) - window.start_minute, 0, window.span)
    if end <= start:
        return None

    record = occurrence.record
    if isinstance(record, UnavailabilityPeriod):
        meta = record.custom_message or ""
    else:
        meta = record.course_code or ""

    return VisualBlock(
        room_id=occurrence.room_id,
        date=occurrence.date,
        kind=occurrence.kind,
        label=occurrence.label,
        meta=meta,
        start_time=occurrence.start_time,
        end_time=occurrence.end_time,
        start_minute=start,
        duration_minutes=end - start,
        raw=record,
    )


def assign_lanes(blocks: Iterable[VisualBlock]) -> tuple[list[VisualBlock], int]:
    """Greedy overlap stacking.

    Blocks are ordered by start minute (ties keep input order) and each goes
    into the first lane whose last block ends at or before its start.
    Returns the placed blocks and the lane count (at least 1).
    """
    ordered = sorted(blocks, key=lambda b: b.start_minute)
    lane_ends: list[int] = []
    placed: list[VisualBlock] = []
    for block in ordered:
        for index, lane_end in enumerate(lane_ends):
            if lane_end <= block.start_minute:
                lane = index
                break
        else:
            lane = len(lane_ends)
            lane_ends.append(0)
        lane_ends[lane] = block.end_minute
        placed.append(block.model_copy(update={"lane_index": lane}))
    return placed, max(1, len(lane_ends))


def layout(
    occurrences: Iterable[Occurrence], window: TimeWindow | None = None
) -> tuple[list[VisualBlock], int]:
    """Clip and stack one row's worth of occurrences."""
    window = window or TimeWindow()
    blocks = [b for b in (to_block(o, window) for o in occurrences) if b is not None]
    return assign_lanes(blocks)


def day_occurrences(
    target: dt.date | str,
    bookings: Iterable[Booking],
    periods: Iterable[UnavailabilityPeriod],
    room_ids: Iterable[str] | None = None,
    hall_id: str | None = None,
) -> list[Occurrence]:
    """Occurrences for a day grid, with temp-free markers in place of suspended classes."""
    day = as_date(target)
    wanted = set(room_ids) if room_ids is not None else None

    occurrences: list[Occurrence] = []
    for booking in _unique_bookings(bookings):
        if wanted is not None and booking.room_id not in wanted:
            continue
        occurrence = resolve_booking(booking, day, include_suppressed=True)
        if occurrence is None:
            continue
        if occurrence.suppressed:
            occurrence = occurrence.model_copy(
                update={"kind": BlockKind.TEMPFREE, "label": TEMPFREE_LABEL}
            )
        occurrences.append(occurrence)

    for period in periods:
        if wanted is not None and period.room_id not in wanted:
            continue
        if hall_id is not None and period.hall_id and period.hall_id != hall_id:
            continue
        occurrence = resolve_period(period, day)
        if occurrence is not None:
            occurrences.append(occurrence)
    return occurrences


def project_room_day(
    target: dt.date | str,
    rooms: Iterable[Room],
    bookings: Iterable[Booking],
    periods: Iterable[UnavailabilityPeriod] = (),
    hall_id: str | None = None,
    window: TimeWindow | None = None,
) -> list[RoomDayRow]:
    """One row per room (sorted by room number) for a single day."""
    window = window or TimeWindow()
    rooms_sorted = sorted(rooms, key=lambda r: r.number)
    occurrences = day_occurrences(
        target, bookings, periods, room_ids=[r.id for r in rooms_sorted], hall_id=hall_id
    )

    by_room: dict[str, list[Occurrence]] = defaultdict(list)
    for occurrence in occurrences:
        by_room[occurrence.room_id].append(occurrence)

    rows: list[RoomDayRow] = []
    for room in rooms_sorted:
        blocks, lane_count = layout(by_room.get(room.id, []), window)
        rows.append(RoomDayRow(room=room, blocks=blocks, lane_count=lane_count))
    return rows


def project_week(
    anchor: dt.date | str,
    bookings: Iterable[Booking],
    periods: Iterable[UnavailabilityPeriod] = (),
    window: TimeWindow | None = None,
    room_ids: Iterable[str] | None = None,
) -> list[WeekDayRow]:
    """Monday..Sunday rows for the week containing *anchor*.

    Suspended classes are simply absent here; the weekly timetable shows no
    temp-free markers.
    """
    window = window or TimeWindow()
    unique = _unique_bookings(bookings)
    periods = list(periods)
    room_ids = list(room_ids) if room_ids is not None else None

    rows: list[WeekDayRow] = []
    for day in week_dates(anchor):
        occurrences = occurrences_for_date(unique, periods, day, room_ids)
        blocks, lane_count = layout(occurrences, window)
        rows.append(
            WeekDayRow(
                date=day,
                day_of_week=day.isoweekday(),
                day_name=day_name(day.isoweekday()),
                blocks=blocks,
                lane_count=lane_count,
            )
        )
    return rows
