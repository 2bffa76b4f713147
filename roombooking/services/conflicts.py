"""Service for detecting conflicts between a proposed booking and a room's commitments.

Two passes, concatenated without short-circuiting:

1. unavailability periods declared by administrators;
2. existing bookings in the same room.

Overlap is half-open: touching endpoints are NOT conflicts. Existing records
with unusable times are skipped; the draft itself is validated up front and
rejected if malformed.
"""

from __future__ import annotations

import logging
from typing import Iterable

from roombooking.domain.errors import InvalidTimeFormat
from roombooking.domain.models import (
    Booking,
    BookingDraft,
    BookingType,
    Conflict,
    ConflictKind,
    PeriodType,
    UnavailabilityPeriod,
)
from roombooking.services.recurrence import (
    booking_matches,
    has_valid_shape,
    is_temporarily_free,
    period_matches,
)
from roombooking.services.timeutils import day_name, overlaps, weekday_of
from roombooking.services.validation import validate_draft

logger = logging.getLogger(__name__)

DEFAULT_CONFLICT_MESSAGE = "This room is not available at the selected time."


def _times_overlap(record: Booking | UnavailabilityPeriod, draft: BookingDraft) -> bool | None:
    """Overlap test against *record*, or ``None`` if its times are unusable."""
    try:
        return overlaps(record.start_time, record.end_time, draft.start_time, draft.end_time)
    except InvalidTimeFormat as exc:
        logger.debug("Skipping %s %s: %s", type(record).__name__, record.id, exc)
        return None


def _unavailable_reason(period: UnavailabilityPeriod) -> str:
    if period.custom_message:
        return period.custom_message
    reason = period.reason.value.replace("_", " ")
    if period.type == PeriodType.RECURRING:
        return f"Room is unavailable every {day_name(period.day_of_week)} ({reason})."
    return f"Room is unavailable ({reason}) at this time."


def _period_applies(period: UnavailabilityPeriod, draft: BookingDraft) -> bool:
    if draft.type == BookingType.EVENT:
        return period_matches(period, draft.date)
    # A one-off closure does not block a standing weekly booking.
    if period.type == PeriodType.DATE:
        return False
    return period.day_of_week == draft.day_of_week


def unavailability_conflicts(
    draft: BookingDraft, periods: Iterable[UnavailabilityPeriod]
) -> list[Conflict]:
    conflicts: list[Conflict] = []
    for period in periods:
        if period.room_id != draft.room_id or not _period_applies(period, draft):
            continue
        if _times_overlap(period, draft):
            conflicts.append(
                Conflict(
                    kind=ConflictKind.UNAVAILABLE,
                    reason=_unavailable_reason(period),
                    period=period,
                )
            )
    return conflicts


def _booking_reason(draft: BookingDraft, existing: Booking) -> str | None:
    """Reason string if *existing* collides with *draft* by date, else ``None``.

    Time overlap is checked separately.
    """
    span = f"{existing.start_time}-{existing.end_time}"

    if draft.type == BookingType.EVENT:
        if not booking_matches(existing, draft.date):
            return None
        if existing.type == BookingType.EVENT:
            return f"Overlaps with another event booking ({span})."
        if is_temporarily_free(existing, draft.date):
            return None
        return f"Overlaps with a permanent class ({day_name(existing.day_of_week)} {span})."

    if existing.type == BookingType.PERMANENT:
        if existing.day_of_week != draft.day_of_week:
            return None
        return f"Overlaps with an existing permanent booking ({day_name(existing.day_of_week)} {span})."

    # New permanent vs existing event: any event on that weekday blocks it,
    # regardless of exception lists.
    if existing.date is None or weekday_of(existing.date) != draft.day_of_week:
        return None
    return f"Conflicts with an event on {existing.date.isoformat()} ({span})."


def booking_conflicts(
    draft: BookingDraft,
    existing_bookings: Iterable[Booking],
    exclude_booking_id: str | None = None,
) -> list[Conflict]:
    """Conflicts against *existing_bookings*, assumed to be in the draft's room."""
    conflicts: list[Conflict] = []
    for existing in existing_bookings:
        if exclude_booking_id is not None and existing.id == exclude_booking_id:
            continue
        if not existing.is_active or not has_valid_shape(existing):
            continue
        reason = _booking_reason(draft, existing)
        if reason is None:
            continue
        if _times_overlap(existing, draft):
            conflicts.append(Conflict(kind=ConflictKind.BOOKING, reason=reason, booking=existing))
    return conflicts


def find_conflicts(
    proposed: BookingDraft,
    existing_bookings: Iterable[Booking],
    unavailability: Iterable[UnavailabilityPeriod] = (),
    exclude_booking_id: str | None = None,
) -> list[Conflict]:
    """Return every conflict for *proposed*: unavailability first, then bookings.

    Raises ``InvalidTimeFormat`` / ``InvalidBookingShape`` if *proposed* is
    malformed. Results keep the encounter order of the input lists.
    """
    validate_draft(proposed)
    return unavailability_conflicts(proposed, unavailability) + booking_conflicts(
        proposed, existing_bookings, exclude_booking_id
    )


def has_conflict(
    proposed: BookingDraft,
    existing_bookings: Iterable[Booking],
    unavailability: Iterable[UnavailabilityPeriod] = (),
    exclude_booking_id: str | None = None,
) -> bool:
    return bool(find_conflicts(proposed, existing_bookings, unavailability, exclude_booking_id))


def first_conflict_reason(conflicts: list[Conflict]) -> str | None:
    """The message shown to the user: the first conflict's reason, if any."""
    if not conflicts:
        return None
    return conflicts[0].reason or DEFAULT_CONFLICT_MESSAGE
