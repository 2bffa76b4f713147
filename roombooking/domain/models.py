"""Domain models for the room-booking engine."""

from __future__ import annotations

import datetime as dt
import uuid
from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

from roombooking.services.timeutils import to_minutes


class BookingType(StrEnum):
    PERMANENT = "permanent"
    EVENT = "event"


class PeriodType(StrEnum):
    DATE = "date"
    RECURRING = "recurring"


class UnavailabilityReason(StrEnum):
    MAINTENANCE = "maintenance"
    CLEANING = "cleaning"
    STUDENT_STUDY = "student_study"
    CLOSED = "closed"


class BlockKind(StrEnum):
    PERMANENT = "permanent"
    EVENT = "event"
    TEMPFREE = "tempfree"
    UNAVAILABLE = "unavailable"


class ConflictKind(StrEnum):
    UNAVAILABLE = "unavailable"
    BOOKING = "booking"


class RoomFeature(StrEnum):
    PROJECTOR = "projector"
    SOCKETS = "sockets"
    SPEAKER = "speaker"


class HistoryEntryType(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    CANCELLED = "cancelled"
    TEMPORARILY_FREED = "temporarily_freed"
    RESTORED = "restored"
    UNAVAILABILITY_DECLARED = "unavailability_declared"
    UNAVAILABILITY_LIFTED = "unavailability_lifted"


REASON_LABELS = {
    UnavailabilityReason.MAINTENANCE: "Maintenance",
    UnavailabilityReason.CLEANING: "Cleaning",
    UnavailabilityReason.STUDENT_STUDY: "Free for Student Study",
    UnavailabilityReason.CLOSED: "Closed",
}


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------


class LectureHall(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    location: str | None = None
    created_at: dt.datetime = Field(default_factory=_utcnow)


class Room(BaseModel):
    id: str = Field(default_factory=_new_id)
    hall_id: str
    number: str
    capacity: int = Field(gt=0)
    working_sockets: int = Field(default=0, ge=0)
    has_projector: bool = False
    has_mic_speaker: bool = False


class Booking(BaseModel):
    """A stored booking.

    Times stay plain strings so that partially written records can still be
    loaded; the resolver and conflict engine skip the ones they cannot parse.
    ``room_name`` and ``hall_name`` are display copies only.
    """

    id: str = Field(default_factory=_new_id)
    type: BookingType
    room_id: str
    hall_id: str | None = None
    room_name: str | None = None
    hall_name: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    course_name: str | None = None
    course_code: str | None = None
    title: str | None = None
    index_prefix: str | None = None
    staff_id: str | None = None
    is_active: bool = True
    day_of_week: int | None = None
    date: dt.date | None = None
    temporary_free_dates: list[dt.date] = Field(default_factory=list)
    created_at: dt.datetime = Field(default_factory=_utcnow)
    updated_at: dt.datetime | None = None

    @property
    def label(self) -> str:
        return self.course_name or self.title or "Untitled"


class UnavailabilityPeriod(BaseModel):
    id: str = Field(default_factory=_new_id)
    hall_id: str | None = None
    room_id: str
    type: PeriodType
    start_time: str | None = None
    end_time: str | None = None
    reason: UnavailabilityReason
    custom_message: str | None = None
    date: dt.date | None = None
    day_of_week: int | None = None
    created_at: dt.datetime = Field(default_factory=_utcnow)

    @property
    def reason_label(self) -> str:
        return REASON_LABELS.get(self.reason, str(self.reason))


class HistoryEntry(BaseModel):
    """One change to a booking or unavailability period, filed under its room."""

    id: str = Field(default_factory=_new_id)
    record_id: str
    room_id: str
    timestamp: dt.datetime = Field(default_factory=_utcnow)
    type: HistoryEntryType
    payload: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Engine input / output
# ---------------------------------------------------------------------------


class BookingDraft(BaseModel):
    """A proposed booking, checked by ``validate_draft`` before conflict checks."""

    type: BookingType
    room_id: str | None = None
    hall_id: str | None = None
    room_name: str | None = None
    hall_name: str | None = None
    start_time: str
    end_time: str
    day_of_week: int | None = None
    date: dt.date | None = None
    course_name: str | None = None
    course_code: str | None = None
    title: str | None = None
    index_prefix: str | None = None
    staff_id: str | None = None

    def to_booking(self, **overrides) -> Booking:
        return Booking(**{**self.model_dump(), **overrides})


class Occurrence(BaseModel):
    """One booking or unavailability period resolved onto a calendar date."""

    kind: BlockKind
    room_id: str
    hall_id: str | None = None
    date: dt.date
    start_time: str
    end_time: str
    label: str
    record: Booking | UnavailabilityPeriod
    suppressed: bool = False

    @property
    def start_minute(self) -> int:
        return to_minutes(self.start_time)

    @property
    def end_minute(self) -> int:
        return to_minutes(self.end_time)


class Conflict(BaseModel):
    kind: ConflictKind
    reason: str
    booking: Booking | None = None
    period: UnavailabilityPeriod | None = None

    @property
    def record_id(self) -> str | None:
        record = self.booking or self.period
        return record.id if record is not None else None


class VisualBlock(BaseModel):
    """A lane-assigned block ready for a grid or timeline renderer.

    ``start_minute`` is the offset from the window start after clipping;
    ``start_time``/``end_time`` keep the record's true times for labels.
    """

    room_id: str
    date: dt.date
    kind: BlockKind
    label: str
    meta: str = ""
    start_time: str
    end_time: str
    start_minute: int
    duration_minutes: int
    lane_index: int = 0
    raw: Booking | UnavailabilityPeriod

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes


class RoomDayRow(BaseModel):
    room: Room
    blocks: list[VisualBlock] = Field(default_factory=list)
    lane_count: int = 1


class WeekDayRow(BaseModel):
    date: dt.date
    day_of_week: int
    day_name: str
    blocks: list[VisualBlock] = Field(default_factory=list)
    lane_count: int = 1


class Session(BaseModel):
    """One dated session of a permanent booking."""

    date: dt.date
    start_time: str
    end_time: str
    duration_minutes: int
    duration_label: str
    temporarily_free: bool = False


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class HallCreate(BaseModel):
    name: str = Field(min_length=1)
    location: str | None = None


class RoomCreate(BaseModel):
    hall_id: str
    number: str = Field(min_length=1)
    capacity: int = Field(gt=0)
    working_sockets: int = Field(default=0, ge=0)
    has_projector: bool = False
    has_mic_speaker: bool = False


class UnavailabilityCreate(BaseModel):
    room_id: str
    type: PeriodType
    start_time: str
    end_time: str
    reason: UnavailabilityReason
    custom_message: str | None = None
    date: dt.date | None = None
    day_of_week: int | None = Field(default=None, ge=1, le=7)

    @model_validator(mode="after")
    def _well_formed(self) -> UnavailabilityCreate:
        if to_minutes(self.start_time) >= to_minutes(self.end_time):
            raise ValueError("start_time must be before end_time")
        if self.type == PeriodType.DATE and (self.date is None or self.day_of_week is not None):
            raise ValueError("a date period needs a date and no day_of_week")
        if self.type == PeriodType.RECURRING and (self.day_of_week is None or self.date is not None):
            raise ValueError("a recurring period needs day_of_week and no date")
        return self


class TemporaryFreeRequest(BaseModel):
    dates: list[dt.date] = Field(min_length=1)


class ConflictReport(BaseModel):
    has_conflict: bool
    message: str | None = None
    conflicts: list[Conflict] = Field(default_factory=list)


class FreeRoomsResponse(BaseModel):
    date: dt.date
    time: str
    rooms: list[Room]
    total: int
