"""Resolve weekly and dated records onto concrete calendar dates.

A permanent booking or recurring unavailability period matches a date by
weekday (Monday=1 .. Sunday=7); event bookings and date-type periods match
only their own date. Records with missing or malformed times, or with a
weekday/date combination that does not fit their type, never resolve.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Iterable

from roombooking.domain.errors import InvalidTimeFormat
from roombooking.domain.models import (
    BlockKind,
    Booking,
    BookingType,
    Occurrence,
    PeriodType,
    Session,
    UnavailabilityPeriod,
)
from roombooking.services.timeutils import (
    add_weeks,
    as_date,
    dates_for_weekday,
    duration,
    format_duration,
    to_minutes,
    weekday_of,
)

logger = logging.getLogger(__name__)


def _has_valid_times(record: Booking | UnavailabilityPeriod) -> bool:
    try:
        return to_minutes(record.start_time) < to_minutes(record.end_time)
    except InvalidTimeFormat as exc:
        logger.debug("Skipping %s %s: %s", type(record).__name__, record.id, exc)
        return False


def has_valid_shape(booking: Booking) -> bool:
    """Permanent bookings carry a weekday (1..7) and no date; events the reverse."""
    if booking.type == BookingType.PERMANENT:
        valid = booking.date is None and booking.day_of_week in range(1, 8)
    else:
        valid = booking.day_of_week is None and booking.date is not None
    if not valid:
        logger.debug("Skipping booking %s: inconsistent %s shape", booking.id, booking.type)
    return valid


def is_temporarily_free(booking: Booking, target: dt.date | str) -> bool:
    """True if this permanent booking's session is suspended on *target*."""
    if booking.type != BookingType.PERMANENT:
        return False
    return as_date(target) in booking.temporary_free_dates


def booking_matches(booking: Booking, target: dt.date | str) -> bool:
    """Date/weekday match only; ignores activity, times and exceptions."""
    day = as_date(target)
    if booking.type == BookingType.EVENT:
        return booking.date == day
    return booking.day_of_week == weekday_of(day)


def period_matches(period: UnavailabilityPeriod, target: dt.date | str) -> bool:
    day = as_date(target)
    if period.type == PeriodType.DATE:
        return period.date == day
    return period.day_of_week == weekday_of(day)


def resolve_booking(
    booking: Booking,
    target: dt.date | str,
    include_suppressed: bool = False,
) -> Occurrence | None:
    """Return the booking's occurrence on *target*, or ``None``.

    Inactive bookings never resolve. A permanent booking whose
    ``temporary_free_dates`` contains *target* is omitted unless
    *include_suppressed* is set, in which case the occurrence comes back with
    ``suppressed=True``.
    """
    day = as_date(target)
    if not booking.is_active or not has_valid_shape(booking):
        return None
    if not booking_matches(booking, day) or not _has_valid_times(booking):
        return None

    suppressed = is_temporarily_free(booking, day)
    if suppressed and not include_suppressed:
        return None

    return Occurrence(
        kind=BlockKind(booking.type.value),
        room_id=booking.room_id,
        hall_id=booking.hall_id,
        date=day,
        start_time=booking.start_time,
        end_time=booking.end_time,
        label=booking.label,
        record=booking,
        suppressed=suppressed,
    )


def resolve_period(period: UnavailabilityPeriod, target: dt.date | str) -> Occurrence | None:
    day = as_date(target)
    if not period_matches(period, day) or not _has_valid_times(period):
        return None
    return Occurrence(
        kind=BlockKind.UNAVAILABLE,
        room_id=period.room_id,
        hall_id=period.hall_id,
        date=day,
        start_time=period.start_time,
        end_time=period.end_time,
        label=period.reason_label,
        record=period,
    )


def occurrences_for_date(
    bookings: Iterable[Booking],
    periods: Iterable[UnavailabilityPeriod],
    target: dt.date | str,
    room_ids: Iterable[str] | None = None,
) -> list[Occurrence]:
    """All live occurrences on *target*: bookings first, then periods, in input order."""
    day = as_date(target)
    wanted = set(room_ids) if room_ids is not None else None

    occurrences: list[Occurrence] = []
    for booking in bookings:
        if wanted is not None and booking.room_id not in wanted:
            continue
        occurrence = resolve_booking(booking, day)
        if occurrence is not None:
            occurrences.append(occurrence)
    for period in periods:
        if wanted is not None and period.room_id not in wanted:
            continue
        occurrence = resolve_period(period, day)
        if occurrence is not None:
            occurrences.append(occurrence)
    return occurrences


def off_schedule_dates(booking: Booking, dates: Iterable[dt.date | str]) -> list[dt.date]:
    """The entries of *dates* that do not fall on the permanent booking's weekday."""
    return [day for day in map(as_date, dates) if weekday_of(day) != booking.day_of_week]


def upcoming_sessions(
    booking: Booking, start: dt.date | str, weeks: int = 4
) -> list[Session]:
    """Dated sessions of a permanent booking for *weeks* weeks from *start*.

    Temporarily-free sessions are listed with ``temporarily_free=True`` so they
    can be restored. Events and malformed records have no sessions.
    """
    if booking.type != BookingType.PERMANENT or not has_valid_shape(booking):
        return []
    if not _has_valid_times(booking):
        return []

    first = as_date(start)
    last = add_weeks(first, weeks) - dt.timedelta(days=1)
    minutes = duration(booking.start_time, booking.end_time)
    return [
        Session(
            date=day,
            start_time=booking.start_time,
            end_time=booking.end_time,
            duration_minutes=minutes,
            duration_label=format_duration(minutes),
            temporarily_free=day in booking.temporary_free_dates,
        )
        for day in dates_for_weekday(first, last, booking.day_of_week)
    ]
