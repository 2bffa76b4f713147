"""Time-of-day and calendar arithmetic shared by every scheduling service.

Times of day are ``HH:MM`` strings; intervals are half-open, so a block
ending at 10:00 never overlaps one starting at 10:00.
"""

from __future__ import annotations

import datetime as dt
import re

import dateparser
from dateutil.rrule import WEEKLY, rrule
from pydantic import BaseModel, model_validator

from roombooking.domain.errors import InvalidTimeFormat

TIME_PATTERN = re.compile(r"^([0-1]\d|2[0-3]):([0-5]\d)$")

DAY_NAMES = ["", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def to_minutes(value: str) -> int:
    """Return minutes since midnight for a strict ``HH:MM`` string.

    Raises ``InvalidTimeFormat`` for anything else, including ``None``.
    """
    if not isinstance(value, str):
        raise InvalidTimeFormat(value)
    m = TIME_PATTERN.match(value)
    if m is None:
        raise InvalidTimeFormat(value)
    return int(m.group(1)) * 60 + int(m.group(2))


def to_minutes_lenient(value: object) -> int:
    """Permissive variant of :func:`to_minutes` for layout code; ``0`` on failure."""
    try:
        return to_minutes(value)  # type: ignore[arg-type]
    except InvalidTimeFormat:
        return 0


def is_valid_time(value: object) -> bool:
    return isinstance(value, str) and TIME_PATTERN.match(value) is not None


def from_minutes(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}"


# ---------------------------------------------------------------------------
# Interval predicates
# ---------------------------------------------------------------------------


def overlaps(a_start: str, a_end: str, b_start: str, b_end: str) -> bool:
    """True iff ``[a_start, a_end)`` and ``[b_start, b_end)`` intersect."""
    return to_minutes(a_start) < to_minutes(b_end) and to_minutes(b_start) < to_minutes(a_end)


def contains(start: str, end: str, instant: str) -> bool:
    """True iff ``start <= instant < end``."""
    return to_minutes(start) <= to_minutes(instant) < to_minutes(end)


def duration(start: str, end: str) -> int:
    """Minutes from *start* to *end*. Ordering is the caller's concern."""
    return to_minutes(end) - to_minutes(start)


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


def format_time(value: str) -> str:
    """``"13:05"`` -> ``"1:05 PM"``."""
    minutes = to_minutes(value)
    hour, minute = divmod(minutes, 60)
    period = "PM" if hour >= 12 else "AM"
    hour12 = 12 if hour == 0 else hour - 12 if hour > 12 else hour
    return f"{hour12}:{minute:02d} {period}"


def format_duration(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    if hours == 0:
        return f"{mins} minutes"
    hour_part = f"{hours} hour{'s' if hours > 1 else ''}"
    if mins == 0:
        return hour_part
    return f"{hour_part} {mins} minutes"


class TimeWindow(BaseModel):
    """The visible part of the day in grid and timeline views."""

    start: str = "06:00"
    end: str = "20:00"

    @model_validator(mode="after")
    def _start_before_end(self) -> TimeWindow:
        if to_minutes(self.start) >= to_minutes(self.end):
            raise ValueError("window start must be before window end")
        return self

    @property
    def start_minute(self) -> int:
        return to_minutes(self.start)

    @property
    def end_minute(self) -> int:
        return to_minutes(self.end)

    @property
    def span(self) -> int:
        return self.end_minute - self.start_minute


class TimeSlot(BaseModel):
    time: str
    display: str


def time_slots(window: TimeWindow | None = None, step: int = 30) -> list[TimeSlot]:
    """Header slots from window start to window end inclusive, every *step* minutes."""
    window = window or TimeWindow()
    return [
        TimeSlot(time=from_minutes(m), display=format_time(from_minutes(m)))
        for m in range(window.start_minute, window.end_minute + 1, step)
    ]


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def as_date(value: dt.date | str) -> dt.date:
    """Accept a ``date`` or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(value)


def weekday_of(value: dt.date | str) -> int:
    """Day of week with Monday=1 .. Sunday=7."""
    return as_date(value).isoweekday()


def day_name(day_of_week: int) -> str:
    if 1 <= day_of_week <= 7:
        return DAY_NAMES[day_of_week]
    return ""


def week_start(value: dt.date | str) -> dt.date:
    """Monday of the week containing *value*."""
    day = as_date(value)
    return day - dt.timedelta(days=day.isoweekday() - 1)


def week_dates(anchor: dt.date | str) -> list[dt.date]:
    monday = week_start(anchor)
    return [monday + dt.timedelta(days=i) for i in range(7)]


def add_weeks(value: dt.date | str, weeks: int) -> dt.date:
    return as_date(value) + dt.timedelta(weeks=weeks)


def dates_for_weekday(
    start: dt.date | str, end: dt.date | str, day_of_week: int
) -> list[dt.date]:
    """Every date in ``[start, end]`` falling on *day_of_week* (Monday=1)."""
    first = as_date(start)
    last = as_date(end)
    if last < first:
        return []
    rule = rrule(
        WEEKLY,
        byweekday=day_of_week - 1,
        dtstart=dt.datetime.combine(first, dt.time()),
        until=dt.datetime.combine(last, dt.time()),
    )
    return [occurrence.date() for occurrence in rule]


def parse_instant(text: str, now: dt.datetime) -> tuple[dt.date, str] | None:
    """Parse free text such as ``"tomorrow 9am"`` into ``(date, "HH:MM")``.

    Relative phrases resolve against *now*. Returns ``None`` when nothing
    recognisable is found.
    """
    settings = {
        "PREFER_DATES_FROM": "future",
        "RELATIVE_BASE": now.replace(tzinfo=None),
        "RETURN_AS_TIMEZONE_AWARE": False,
    }
    result = dateparser.parse(text, settings=settings)
    if result is None:
        return None
    return result.date(), f"{result.hour:02d}:{result.minute:02d}"
