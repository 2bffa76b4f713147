"""Boundary checks applied to new booking input before any conflict check."""

from __future__ import annotations

from roombooking.domain.errors import InvalidBookingShape
from roombooking.domain.models import BookingDraft, BookingType
from roombooking.services.timeutils import to_minutes


def validate_draft(draft: BookingDraft) -> BookingDraft:
    """Reject malformed drafts; never coerce them.

    Raises ``InvalidTimeFormat`` for bad times and ``InvalidBookingShape``
    for everything else. Returns the draft unchanged when it is valid.
    """
    if not draft.room_id:
        raise InvalidBookingShape("room_id is required")

    start = to_minutes(draft.start_time)
    end = to_minutes(draft.end_time)
    if start >= end:
        raise InvalidBookingShape("start_time must be before end_time")

    if draft.type == BookingType.PERMANENT:
        if draft.date is not None:
            raise InvalidBookingShape("a permanent booking cannot carry a date")
        if draft.day_of_week is None:
            raise InvalidBookingShape("a permanent booking requires day_of_week")
        if not 1 <= draft.day_of_week <= 7:
            raise InvalidBookingShape("day_of_week must be between 1 (Monday) and 7 (Sunday)")
    else:
        if draft.day_of_week is not None:
            raise InvalidBookingShape("an event booking cannot carry day_of_week")
        if draft.date is None:
            raise InvalidBookingShape("an event booking requires a date")

    return draft
