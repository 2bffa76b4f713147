"""In-memory repositories standing in for the hosted document store."""

from __future__ import annotations

import datetime as dt
import logging

from cachetools import TTLCache

from roombooking.domain.models import (
    Booking,
    BookingType,
    HistoryEntry,
    LectureHall,
    Room,
    UnavailabilityPeriod,
)

logger = logging.getLogger(__name__)


class HallInUse(Exception):
    """Raised when deleting a hall that rooms still reference."""

    def __init__(self, hall_id: str, room_count: int) -> None:
        super().__init__(f"Hall {hall_id} still has {room_count} room(s)")
        self.hall_id = hall_id
        self.room_count = room_count


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class HallRepository:
    """Dict-backed store for LectureHall instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, LectureHall] = {}

    def add(self, hall: LectureHall) -> None:
        self._store[hall.id] = hall

    def get(self, hall_id: str) -> LectureHall | None:
        return self._store.get(hall_id)

    def list_all(self) -> list[LectureHall]:
        return list(self._store.values())

    def update(self, hall: LectureHall) -> None:
        self._store[hall.id] = hall

    def delete(self, hall_id: str, rooms: RoomRepository) -> None:
        """Delete a hall; refuses while any room still belongs to it."""
        in_use = rooms.list_by_hall(hall_id)
        if in_use:
            raise HallInUse(hall_id, len(in_use))
        self._store.pop(hall_id, None)


class RoomRepository:
    """Dict-backed store for Room instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Room] = {}

    def add(self, room: Room) -> None:
        self._store[room.id] = room

    def get(self, room_id: str) -> Room | None:
        return self._store.get(room_id)

    def list_all(self) -> list[Room]:
        return list(self._store.values())

    def list_by_hall(self, hall_id: str) -> list[Room]:
        return [r for r in self._store.values() if r.hall_id == hall_id]

    def update(self, room: Room) -> None:
        self._store[room.id] = room

    def delete(self, room_id: str) -> None:
        self._store.pop(room_id, None)


class BookingRepository:
    """Dict-backed store for Booking instances.

    Soft-deleted bookings stay in the store with ``is_active=False`` and are
    excluded from every listing.
    """

    def __init__(self) -> None:
        self._store: dict[str, Booking] = {}

    def add(self, booking: Booking) -> None:
        self._store[booking.id] = booking
        logger.info("Booking %s created (%s, room %s)", booking.id, booking.type, booking.room_id)

    def get(self, booking_id: str) -> Booking | None:
        return self._store.get(booking_id)

    def replace(self, booking: Booking) -> None:
        booking.updated_at = _utcnow()
        self._store[booking.id] = booking
        logger.info("Booking %s updated", booking.id)

    def list_all(self) -> list[Booking]:
        return [b for b in self._store.values() if b.is_active]

    def list_by_room(self, room_id: str) -> list[Booking]:
        return [b for b in self.list_all() if b.room_id == room_id]

    def list_by_staff(self, staff_id: str) -> list[Booking]:
        """Newest first."""
        return sorted(
            [b for b in self.list_all() if b.staff_id == staff_id],
            key=lambda b: b.created_at,
            reverse=True,
        )

    def list_by_index_prefix(self, index_prefix: str) -> list[Booking]:
        return [b for b in self.list_all() if b.index_prefix == index_prefix]

    def list_for_date(self, day: dt.date) -> list[Booking]:
        """Permanent bookings on the date's weekday, then events on the date."""
        weekday = day.isoweekday()
        active = self.list_all()
        permanent = [
            b for b in active if b.type == BookingType.PERMANENT and b.day_of_week == weekday
        ]
        events = [b for b in active if b.type == BookingType.EVENT and b.date == day]
        return permanent + events

    def soft_delete(self, booking_id: str) -> bool:
        booking = self._store.get(booking_id)
        if booking is None or not booking.is_active:
            return False
        booking.is_active = False
        booking.updated_at = _utcnow()
        logger.info("Booking %s cancelled", booking_id)
        return True

    def mark_temporarily_free(self, booking_id: str, dates: list[dt.date]) -> Booking | None:
        """Add *dates* to the booking's exception set (kept sorted, no duplicates)."""
        booking = self._store.get(booking_id)
        if booking is None:
            return None
        booking.temporary_free_dates = sorted(set(booking.temporary_free_dates) | set(dates))
        booking.updated_at = _utcnow()
        logger.info("Booking %s marked free on %s", booking_id, [d.isoformat() for d in dates])
        return booking

    def restore_dates(self, booking_id: str, dates: list[dt.date]) -> Booking | None:
        """Remove *dates* from the exception set, restoring those sessions."""
        booking = self._store.get(booking_id)
        if booking is None:
            return None
        removed = set(dates)
        booking.temporary_free_dates = [d for d in booking.temporary_free_dates if d not in removed]
        booking.updated_at = _utcnow()
        logger.info("Booking %s restored on %s", booking_id, [d.isoformat() for d in dates])
        return booking

    def deactivate_for_room(self, room_id: str) -> list[str]:
        """Soft-delete every active booking in a room; returns their ids."""
        ids = [b.id for b in self.list_by_room(room_id)]
        for booking_id in ids:
            self.soft_delete(booking_id)
        return ids


class UnavailabilityRepository:
    """Dict-backed store for UnavailabilityPeriod instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, UnavailabilityPeriod] = {}

    def add(self, period: UnavailabilityPeriod) -> None:
        self._store[period.id] = period
        logger.info("Unavailability %s declared for room %s", period.id, period.room_id)

    def get(self, period_id: str) -> UnavailabilityPeriod | None:
        return self._store.get(period_id)

    def list_all(self) -> list[UnavailabilityPeriod]:
        return list(self._store.values())

    def list_by_room(self, room_id: str) -> list[UnavailabilityPeriod]:
        return [p for p in self._store.values() if p.room_id == room_id]

    def delete(self, period_id: str) -> None:
        if self._store.pop(period_id, None) is not None:
            logger.info("Unavailability %s lifted", period_id)

    def delete_for_room(self, room_id: str) -> list[str]:
        ids = [p.id for p in self.list_by_room(room_id)]
        for period_id in ids:
            del self._store[period_id]
        return ids


class HistoryRepository:
    """List-backed store for HistoryEntry instances."""

    def __init__(self) -> None:
        self._entries: list[HistoryEntry] = []

    def add(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)

    def list_for_record(self, record_id: str) -> list[HistoryEntry]:
        return sorted(
            [e for e in self._entries if e.record_id == record_id],
            key=lambda e: e.timestamp,
        )

    def list_for_room(self, room_id: str) -> list[HistoryEntry]:
        return sorted(
            [e for e in self._entries if e.room_id == room_id],
            key=lambda e: e.timestamp,
        )


class DirectoryCache:
    """TTL cache of the hall and room lists.

    Owned by the storage layer; every hall or room write must call
    :meth:`invalidate` (the handler registry does so on the matching events).
    """

    _HALLS = "halls"
    _ROOMS = "rooms"

    def __init__(
        self,
        halls: HallRepository,
        rooms: RoomRepository,
        ttl: int = 60,
        maxsize: int = 256,
    ) -> None:
        self._halls = halls
        self._rooms = rooms
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)

    def halls(self) -> list[LectureHall]:
        cached = self._cache.get(self._HALLS)
        if cached is None:
            cached = self._halls.list_all()
            self._cache[self._HALLS] = cached
        return list(cached)

    def rooms(self) -> list[Room]:
        cached = self._cache.get(self._ROOMS)
        if cached is None:
            cached = self._rooms.list_all()
            self._cache[self._ROOMS] = cached
        return list(cached)

    def invalidate(self) -> None:
        self._cache.clear()


# ---------------------------------------------------------------------------
# Seed data – the campus halls and rooms
# ---------------------------------------------------------------------------

_SEED_HALLS = [
    (
        "New Lecture Theatre (NLT)",
        [("NLT 1", 300, True, True), ("NLT 2", 300, True, True), ("NLT 3", 150, True, False)],
    ),
    (
        "Science Complex",
        [("SC 101", 60, False, False), ("SC 102", 60, False, False), ("SC Auditorium", 200, True, False)],
    ),
    (
        "Sandwich Lecture Theatre",
        [("SLT Lower", 500, True, True), ("SLT Upper", 200, True, True)],
    ),
    (
        "Calabash Hub",
        [("CB 1", 40, False, False), ("CB 2", 40, False, False), ("CB 3", 30, False, False)],
    ),
]


def seed_directory(halls: HallRepository, rooms: RoomRepository) -> None:
    for hall_name, hall_rooms in _SEED_HALLS:
        hall = LectureHall(name=hall_name)
        halls.add(hall)
        for number, capacity, has_projector, has_mic_speaker in hall_rooms:
            rooms.add(
                Room(
                    hall_id=hall.id,
                    number=number,
                    capacity=capacity,
                    has_projector=has_projector,
                    has_mic_speaker=has_mic_speaker,
                )
            )


def create_directory() -> tuple[HallRepository, RoomRepository]:
    """Return hall and room repositories pre-loaded with the campus halls."""
    halls = HallRepository()
    rooms = RoomRepository()
    seed_directory(halls, rooms)
    return halls, rooms
