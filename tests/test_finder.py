"""Tests for the free-room finder and room filters."""

from __future__ import annotations

import datetime as dt

import pytest

from roombooking.domain.errors import InvalidTimeFormat
from roombooking.domain.models import (
    Booking,
    BookingType,
    PeriodType,
    Room,
    RoomFeature,
    UnavailabilityPeriod,
    UnavailabilityReason,
)
from roombooking.services.finder import (
    cap_results,
    filter_rooms,
    find_alternative_rooms,
    find_free_rooms,
)

MONDAY = dt.date(2024, 6, 3)


def _make_rooms() -> list[Room]:
    return [
        Room(id="r1", hall_id="H1", number="101", capacity=40, working_sockets=8, has_projector=True),
        Room(id="r2", hall_id="H1", number="102", capacity=120, has_mic_speaker=True),
        Room(id="r3", hall_id="H2", number="201", capacity=25, working_sockets=4),
    ]


def _make_class(room_id: str = "r1", **overrides) -> Booking:
    defaults = dict(
        type=BookingType.PERMANENT,
        room_id=room_id,
        day_of_week=1,
        start_time="08:00",
        end_time="10:00",
        course_name="CSC101",
    )
    defaults.update(overrides)
    return Booking(**defaults)


# ---------------------------------------------------------------------------
# find_free_rooms
# ---------------------------------------------------------------------------


def test_room_busy_during_class_and_free_at_end():
    rooms = _make_rooms()
    bookings = [_make_class()]
    at_nine = find_free_rooms(MONDAY, "09:00", rooms, bookings)
    at_ten = find_free_rooms(MONDAY, "10:00", rooms, bookings)
    assert [r.id for r in at_nine] == ["r2", "r3"]
    assert [r.id for r in at_ten] == ["r1", "r2", "r3"]


def test_class_start_minute_is_busy():
    free = find_free_rooms(MONDAY, "08:00", _make_rooms(), [_make_class()])
    assert "r1" not in [r.id for r in free]


def test_temporarily_free_class_leaves_room_free():
    booking = _make_class(temporary_free_dates=[MONDAY])
    free = find_free_rooms(MONDAY, "09:00", _make_rooms(), [booking])
    assert "r1" in [r.id for r in free]


def test_other_weekday_does_not_block():
    free = find_free_rooms(MONDAY + dt.timedelta(days=1), "09:00", _make_rooms(), [_make_class()])
    assert len(free) == 3


def test_unavailability_blocks_room():
    period = UnavailabilityPeriod(
        room_id="r2",
        type=PeriodType.DATE,
        date=MONDAY,
        start_time="08:30",
        end_time="09:30",
        reason=UnavailabilityReason.CLEANING,
    )
    free = find_free_rooms("2024-06-03", "09:00", _make_rooms(), [], [period])
    assert [r.id for r in free] == ["r1", "r3"]


def test_malformed_instant_rejected():
    with pytest.raises(InvalidTimeFormat):
        find_free_rooms(MONDAY, "9am", _make_rooms(), [])


# ---------------------------------------------------------------------------
# find_alternative_rooms
# ---------------------------------------------------------------------------


def test_alternatives_exclude_conflicting_rooms():
    bookings = [
        _make_class(),
        Booking(
            type=BookingType.EVENT,
            room_id="r3",
            date=MONDAY,
            start_time="09:30",
            end_time="10:30",
            title="Seminar",
        ),
    ]
    rooms = find_alternative_rooms(_make_rooms(), MONDAY, "09:00", "10:00", bookings)
    assert [r.id for r in rooms] == ["r2"]


def test_alternatives_respect_temp_free_dates():
    bookings = [_make_class(temporary_free_dates=[MONDAY])]
    rooms = find_alternative_rooms(_make_rooms(), MONDAY, "09:00", "10:00", bookings)
    assert [r.id for r in rooms] == ["r1", "r2", "r3"]


def test_alternatives_respect_unavailability():
    period = UnavailabilityPeriod(
        room_id="r2",
        type=PeriodType.RECURRING,
        day_of_week=1,
        start_time="09:00",
        end_time="12:00",
        reason=UnavailabilityReason.MAINTENANCE,
    )
    rooms = find_alternative_rooms(_make_rooms(), MONDAY, "10:00", "11:00", [], [period])
    assert [r.id for r in rooms] == ["r1", "r3"]


# ---------------------------------------------------------------------------
# filter_rooms / cap_results
# ---------------------------------------------------------------------------


def test_filter_by_hall_and_capacity():
    rooms = _make_rooms()
    assert [r.id for r in filter_rooms(rooms, hall_id="H1")] == ["r1", "r2"]
    assert [r.id for r in filter_rooms(rooms, min_capacity=30)] == ["r1", "r2"]


@pytest.mark.parametrize(
    "feature, expected",
    [
        (RoomFeature.PROJECTOR, ["r1"]),
        (RoomFeature.SPEAKER, ["r2"]),
        (RoomFeature.SOCKETS, ["r1"]),
    ],
)
def test_filter_by_feature(feature, expected):
    assert [r.id for r in filter_rooms(_make_rooms(), feature=feature)] == expected


def test_socket_threshold_is_configurable():
    rooms = filter_rooms(_make_rooms(), feature=RoomFeature.SOCKETS, socket_threshold=4)
    assert [r.id for r in rooms] == ["r1", "r3"]


def test_cap_results():
    shown, total = cap_results(list(range(20)), 12)
    assert len(shown) == 12
    assert total == 20
    assert cap_results([1, 2], None) == ([1, 2], 2)


@pytest.mark.parametrize("limit", [0, -1])
def test_cap_results_rejects_non_positive_limit(limit):
    with pytest.raises(ValueError):
        cap_results([1, 2, 3], limit)
