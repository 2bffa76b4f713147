"""FastAPI application: HTTP surface over the room-booking engine."""

from __future__ import annotations

import datetime as dt
import logging
from time import perf_counter

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from roombooking.config import get_settings
from roombooking.domain.bus import EventBus
from roombooking.domain.errors import BookingEngineError
from roombooking.domain.events import (
    BookingCancelled,
    BookingCreated,
    BookingTemporarilyFreed,
    BookingUpdated,
    HallChanged,
    RoomChanged,
    RoomDeleted,
    UnavailabilityDeclared,
    UnavailabilityLifted,
)
from roombooking.domain.handlers import HandlerRegistry
from roombooking.domain.models import (
    Booking,
    BookingDraft,
    BookingType,
    ConflictReport,
    FreeRoomsResponse,
    HallCreate,
    HistoryEntry,
    LectureHall,
    Room,
    RoomCreate,
    RoomDayRow,
    RoomFeature,
    Session,
    TemporaryFreeRequest,
    UnavailabilityCreate,
    UnavailabilityPeriod,
    WeekDayRow,
)
from roombooking.repos.memory import (
    BookingRepository,
    DirectoryCache,
    HallInUse,
    HallRepository,
    HistoryRepository,
    RoomRepository,
    UnavailabilityRepository,
    seed_directory,
)
from roombooking.services.conflicts import find_conflicts, first_conflict_reason
from roombooking.services.finder import (
    cap_results,
    filter_rooms,
    find_alternative_rooms,
    find_free_rooms,
)
from roombooking.services.projector import project_room_day, project_week
from roombooking.services.recurrence import off_schedule_dates, upcoming_sessions
from roombooking.services.timeutils import TimeSlot, as_date, day_name, parse_instant, time_slots

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
http_logger = logging.getLogger("roombooking.http")

app = FastAPI(title="Room Booking Service")

# ── Singletons (created at import time for simplicity) ────────────────
event_bus = EventBus()
hall_repo = HallRepository()
room_repo = RoomRepository()
booking_repo = BookingRepository()
unavailability_repo = UnavailabilityRepository()
history_repo = HistoryRepository()
directory_cache = DirectoryCache(
    hall_repo,
    room_repo,
    ttl=settings.directory_cache_ttl,
    maxsize=settings.directory_cache_size,
)

handler_registry = HandlerRegistry(
    bus=event_bus,
    booking_repo=booking_repo,
    unavailability_repo=unavailability_repo,
    directory_cache=directory_cache,
    history_repo=history_repo,
)

if settings.seed_demo_data:
    seed_directory(hall_repo, room_repo)


@app.middleware("http")
async def request_logger(request: Request, call_next):
    start = perf_counter()
    response = await call_next(request)
    http_logger.info(
        "%s %s | status=%s | duration=%.2fms",
        request.method,
        request.url.path,
        response.status_code,
        (perf_counter() - start) * 1000,
    )
    return response


@app.exception_handler(BookingEngineError)
async def booking_engine_error(request: Request, exc: BookingEngineError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# ── Helpers ───────────────────────────────────────────────────────────


def _get_room(room_id: str) -> Room:
    room = room_repo.get(room_id)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return room


def _get_booking(booking_id: str) -> Booking:
    booking = booking_repo.get(booking_id)
    if booking is None or not booking.is_active:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


def _check(draft: BookingDraft, exclude_booking_id: str | None = None) -> ConflictReport:
    conflicts = find_conflicts(
        draft,
        booking_repo.list_by_room(draft.room_id) if draft.room_id else [],
        unavailability_repo.list_by_room(draft.room_id) if draft.room_id else [],
        exclude_booking_id=exclude_booking_id,
    )
    return ConflictReport(
        has_conflict=bool(conflicts),
        message=first_conflict_reason(conflicts),
        conflicts=conflicts,
    )


def _reject_conflicts(report: ConflictReport) -> None:
    if report.has_conflict:
        raise HTTPException(
            status_code=409,
            detail={
                "message": report.message,
                "conflicts": [c.model_dump(mode="json") for c in report.conflicts],
            },
        )


def _display_names(room: Room) -> dict:
    hall = hall_repo.get(room.hall_id)
    return {
        "hall_id": room.hall_id,
        "room_name": room.number,
        "hall_name": hall.name if hall else None,
    }


# ── Halls & rooms ─────────────────────────────────────────────────────


@app.get("/halls", response_model=list[LectureHall])
def list_halls() -> list[LectureHall]:
    return directory_cache.halls()


@app.post("/halls", response_model=LectureHall, status_code=201)
def create_hall(body: HallCreate) -> LectureHall:
    hall = LectureHall(name=body.name, location=body.location)
    hall_repo.add(hall)
    event_bus.publish(HallChanged(hall_id=hall.id))
    return hall


@app.put("/halls/{hall_id}", response_model=LectureHall)
def update_hall(hall_id: str, body: HallCreate) -> LectureHall:
    hall = hall_repo.get(hall_id)
    if hall is None:
        raise HTTPException(status_code=404, detail="Hall not found")
    updated = hall.model_copy(update=body.model_dump())
    hall_repo.update(updated)
    event_bus.publish(HallChanged(hall_id=hall_id))
    return updated


@app.delete("/halls/{hall_id}")
def delete_hall(hall_id: str) -> dict:
    """Delete a hall; refused while it still has rooms."""
    if hall_repo.get(hall_id) is None:
        raise HTTPException(status_code=404, detail="Hall not found")
    try:
        hall_repo.delete(hall_id, room_repo)
    except HallInUse as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    event_bus.publish(HallChanged(hall_id=hall_id))
    return {"status": "deleted"}


@app.get("/rooms", response_model=list[Room])
def list_rooms(hall_id: str | None = None) -> list[Room]:
    return filter_rooms(directory_cache.rooms(), hall_id=hall_id)


@app.get("/rooms/search", response_model=list[Room])
def search_rooms(
    hall_id: str | None = None,
    min_capacity: int = 0,
    feature: RoomFeature | None = None,
) -> list[Room]:
    """Filter rooms by hall, capacity and a single feature."""
    return filter_rooms(
        directory_cache.rooms(),
        hall_id=hall_id,
        min_capacity=min_capacity,
        feature=feature,
        socket_threshold=settings.socket_feature_threshold,
    )


@app.get("/rooms/free", response_model=FreeRoomsResponse)
def free_rooms(
    at: str | None = None,
    date: dt.date | None = None,
    time: str | None = None,
    limit: int | None = Query(default=None, ge=1),
) -> FreeRoomsResponse:
    """Rooms free at an instant.

    The instant is either free text in *at* ("tomorrow 9am"), or an explicit
    *date* + *time*; missing parts default to now.
    """
    now = dt.datetime.now()
    if at:
        parsed = parse_instant(at, now)
        if parsed is None:
            raise HTTPException(status_code=422, detail=f"Could not understand time {at!r}")
        day, instant = parsed
    else:
        day = date or now.date()
        instant = time or now.strftime("%H:%M")

    rooms = find_free_rooms(
        day,
        instant,
        directory_cache.rooms(),
        booking_repo.list_for_date(day),
        unavailability_repo.list_all(),
    )
    if limit is None:
        limit = settings.free_room_display_limit
    shown, total = cap_results(rooms, limit)
    return FreeRoomsResponse(date=day, time=instant, rooms=shown, total=total)


@app.get("/rooms/alternatives", response_model=list[Room])
def alternative_rooms(
    date: dt.date, start: str, end: str, hall_id: str | None = None
) -> list[Room]:
    """Rooms where a one-off event in this slot would not conflict."""
    return find_alternative_rooms(
        filter_rooms(directory_cache.rooms(), hall_id=hall_id),
        date,
        start,
        end,
        booking_repo.list_all(),
        unavailability_repo.list_all(),
    )


@app.get("/rooms/{room_id}", response_model=Room)
def get_room(room_id: str) -> Room:
    return _get_room(room_id)


@app.post("/rooms", response_model=Room, status_code=201)
def create_room(body: RoomCreate) -> Room:
    if hall_repo.get(body.hall_id) is None:
        raise HTTPException(status_code=404, detail="Hall not found")
    room = Room(**body.model_dump())
    room_repo.add(room)
    event_bus.publish(RoomChanged(room_id=room.id, hall_id=room.hall_id))
    return room


@app.put("/rooms/{room_id}", response_model=Room)
def update_room(room_id: str, body: RoomCreate) -> Room:
    """Edit a room's details. Existing bookings keep their stored display names."""
    room = _get_room(room_id)
    if hall_repo.get(body.hall_id) is None:
        raise HTTPException(status_code=404, detail="Hall not found")
    updated = room.model_copy(update=body.model_dump())
    room_repo.update(updated)
    event_bus.publish(RoomChanged(room_id=room_id, hall_id=updated.hall_id))
    return updated


@app.delete("/rooms/{room_id}")
def delete_room(room_id: str) -> dict:
    """Delete a room, cancelling its bookings and lifting its closures."""
    room = _get_room(room_id)
    room_repo.delete(room_id)
    event_bus.publish(RoomDeleted(room_id=room.id, hall_id=room.hall_id))
    return {"status": "deleted"}


@app.get("/rooms/{room_id}/history", response_model=list[HistoryEntry])
def room_history(room_id: str) -> list[HistoryEntry]:
    """Changes to bookings and closures in a room, oldest first. Survives room deletion."""
    return history_repo.list_for_room(room_id)


# ── Bookings ──────────────────────────────────────────────────────────


@app.get("/bookings", response_model=list[Booking])
def list_bookings(
    room_id: str | None = None,
    staff_id: str | None = None,
    index_prefix: str | None = None,
) -> list[Booking]:
    if room_id:
        return booking_repo.list_by_room(room_id)
    if staff_id:
        return booking_repo.list_by_staff(staff_id)
    if index_prefix:
        return booking_repo.list_by_index_prefix(index_prefix)
    return booking_repo.list_all()


@app.post("/bookings/check", response_model=ConflictReport)
def check_booking(draft: BookingDraft, exclude_booking_id: str | None = None) -> ConflictReport:
    """Run the conflict check without saving anything."""
    return _check(draft, exclude_booking_id)


@app.post("/bookings", response_model=Booking, status_code=201)
def create_booking(draft: BookingDraft) -> Booking:
    """Create a booking after a conflict check; 409 with the conflicts otherwise."""
    report = _check(draft)
    room = _get_room(draft.room_id)
    _reject_conflicts(report)

    booking = draft.to_booking(**_display_names(room))
    booking_repo.add(booking)
    event_bus.publish(BookingCreated(booking_id=booking.id))
    return booking


@app.get("/bookings/{booking_id}", response_model=Booking)
def get_booking(booking_id: str) -> Booking:
    return _get_booking(booking_id)


@app.put("/bookings/{booking_id}", response_model=Booking)
def update_booking(booking_id: str, draft: BookingDraft) -> Booking:
    """Replace a booking, conflict-checked against everything but itself."""
    existing = _get_booking(booking_id)
    report = _check(draft, exclude_booking_id=booking_id)
    room = _get_room(draft.room_id)
    _reject_conflicts(report)

    keep_exceptions = (
        existing.temporary_free_dates if draft.type == BookingType.PERMANENT else []
    )
    updated = draft.to_booking(
        **_display_names(room),
        id=existing.id,
        staff_id=draft.staff_id or existing.staff_id,
        created_at=existing.created_at,
        temporary_free_dates=keep_exceptions,
    )
    booking_repo.replace(updated)
    event_bus.publish(BookingUpdated(booking_id=booking_id))
    return updated


@app.delete("/bookings/{booking_id}")
def cancel_booking(booking_id: str) -> dict:
    """Soft-delete a booking."""
    _get_booking(booking_id)
    booking_repo.soft_delete(booking_id)
    event_bus.publish(BookingCancelled(booking_id=booking_id))
    return {"status": "cancelled"}


@app.post("/bookings/{booking_id}/temporary-free", response_model=Booking)
def mark_temporarily_free(booking_id: str, body: TemporaryFreeRequest) -> Booking:
    """Suspend a permanent class on the given dates only."""
    booking = _get_booking(booking_id)
    if booking.type != BookingType.PERMANENT:
        raise HTTPException(
            status_code=400, detail="Temporary free applies to permanent bookings only"
        )
    off_day = off_schedule_dates(booking, body.dates)
    if off_day:
        raise HTTPException(
            status_code=400,
            detail=f"Not a {day_name(booking.day_of_week)} session: "
            + ", ".join(d.isoformat() for d in off_day),
        )
    booking = booking_repo.mark_temporarily_free(booking_id, body.dates)
    event_bus.publish(BookingTemporarilyFreed(booking_id=booking_id, added=body.dates))
    return booking


@app.post("/bookings/{booking_id}/temporary-free/restore", response_model=Booking)
def restore_temporarily_free(booking_id: str, body: TemporaryFreeRequest) -> Booking:
    """Bring back suspended sessions on the given dates."""
    _get_booking(booking_id)
    booking = booking_repo.restore_dates(booking_id, body.dates)
    event_bus.publish(BookingTemporarilyFreed(booking_id=booking_id, removed=body.dates))
    return booking


@app.get("/bookings/{booking_id}/sessions", response_model=list[Session])
def list_sessions(
    booking_id: str,
    start: dt.date | None = None,
    weeks: int = Query(default=4, ge=1, le=52),
) -> list[Session]:
    """Upcoming dated sessions of a permanent class, flagged when temporarily free."""
    booking = _get_booking(booking_id)
    if booking.type != BookingType.PERMANENT:
        raise HTTPException(status_code=400, detail="Only permanent bookings have sessions")
    return upcoming_sessions(booking, start or dt.date.today(), weeks)


@app.get("/bookings/{booking_id}/history", response_model=list[HistoryEntry])
def booking_history(booking_id: str) -> list[HistoryEntry]:
    """Audit trail of a booking, including cancelled ones."""
    if booking_repo.get(booking_id) is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    return history_repo.list_for_record(booking_id)


# ── Unavailability ────────────────────────────────────────────────────


@app.get("/unavailability", response_model=list[UnavailabilityPeriod])
def list_unavailability(room_id: str | None = None) -> list[UnavailabilityPeriod]:
    if room_id:
        return unavailability_repo.list_by_room(room_id)
    return unavailability_repo.list_all()


@app.post("/unavailability", response_model=UnavailabilityPeriod, status_code=201)
def declare_unavailability(body: UnavailabilityCreate) -> UnavailabilityPeriod:
    room = _get_room(body.room_id)
    period = UnavailabilityPeriod(hall_id=room.hall_id, **body.model_dump())
    unavailability_repo.add(period)
    event_bus.publish(UnavailabilityDeclared(period_id=period.id, room_id=period.room_id))
    return period


@app.delete("/unavailability/{period_id}")
def lift_unavailability(period_id: str) -> dict:
    period = unavailability_repo.get(period_id)
    if period is None:
        raise HTTPException(status_code=404, detail="Unavailability period not found")
    unavailability_repo.delete(period_id)
    event_bus.publish(UnavailabilityLifted(period_id=period_id, room_id=period.room_id))
    return {"status": "deleted"}


# ── Views ─────────────────────────────────────────────────────────────


@app.get("/time-slots", response_model=list[TimeSlot])
def list_time_slots() -> list[TimeSlot]:
    return time_slots(settings.window(), settings.slot_minutes)


@app.get("/halls/{hall_id}/day-grid", response_model=list[RoomDayRow])
def hall_day_grid(
    hall_id: str,
    date: dt.date | None = None,
    min_capacity: int = 0,
    feature: RoomFeature | None = None,
) -> list[RoomDayRow]:
    """Per-room lane-stacked blocks for one hall and one day."""
    if hall_repo.get(hall_id) is None:
        raise HTTPException(status_code=404, detail="Hall not found")
    day = date or dt.date.today()
    rooms = filter_rooms(
        directory_cache.rooms(),
        hall_id=hall_id,
        min_capacity=min_capacity,
        feature=feature,
        socket_threshold=settings.socket_feature_threshold,
    )
    return project_room_day(
        day,
        rooms,
        booking_repo.list_for_date(day),
        unavailability_repo.list_all(),
        hall_id=hall_id,
        window=settings.window(),
    )


@app.get("/timetable/week", response_model=list[WeekDayRow])
def weekly_timetable(
    anchor: dt.date | None = None,
    room_id: str | None = None,
    staff_id: str | None = None,
    index_prefix: str | None = None,
) -> list[WeekDayRow]:
    """Monday..Sunday timetable for the week containing *anchor*."""
    bookings = list_bookings(room_id=room_id, staff_id=staff_id, index_prefix=index_prefix)
    periods = unavailability_repo.list_by_room(room_id) if room_id else []
    return project_week(
        as_date(anchor or dt.date.today()),
        bookings,
        periods,
        window=settings.window(),
    )
