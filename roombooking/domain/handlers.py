"""Domain event handlers, wired up at application startup."""

from __future__ import annotations

import logging

from roombooking.domain.bus import EventBus
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
from roombooking.domain.models import HistoryEntry, HistoryEntryType
from roombooking.repos.memory import (
    BookingRepository,
    DirectoryCache,
    HistoryRepository,
    UnavailabilityRepository,
)

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Wires domain-event handlers to the bus with access to the repositories."""

    def __init__(
        self,
        bus: EventBus,
        booking_repo: BookingRepository,
        unavailability_repo: UnavailabilityRepository,
        directory_cache: DirectoryCache,
        history_repo: HistoryRepository,
    ) -> None:
        self.bus = bus
        self.booking_repo = booking_repo
        self.unavailability_repo = unavailability_repo
        self.directory_cache = directory_cache
        self.history_repo = history_repo
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(HallChanged, self.on_directory_changed)
        self.bus.subscribe(RoomChanged, self.on_directory_changed)
        self.bus.subscribe(RoomDeleted, self.on_room_deleted)
        self.bus.subscribe(BookingCreated, self.on_booking_written)
        self.bus.subscribe(BookingUpdated, self.on_booking_written)
        self.bus.subscribe(BookingCancelled, self.on_booking_written)
        self.bus.subscribe(BookingTemporarilyFreed, self.on_booking_temporarily_freed)
        self.bus.subscribe(UnavailabilityDeclared, self.on_unavailability_declared)
        self.bus.subscribe(UnavailabilityLifted, self.on_unavailability_lifted)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_directory_changed(self, event: HallChanged | RoomChanged) -> None:
        self.directory_cache.invalidate()

    def on_room_deleted(self, event: RoomDeleted) -> None:
        """Cascade: a deleted room takes its bookings and closures with it."""
        self.directory_cache.invalidate()

        cancelled = self.booking_repo.deactivate_for_room(event.room_id)
        lifted = self.unavailability_repo.delete_for_room(event.room_id)
        logger.info(
            "Room %s deleted: cancelled %d booking(s), lifted %d unavailability period(s)",
            event.room_id,
            len(cancelled),
            len(lifted),
        )
        self.bus.publish_all(BookingCancelled(booking_id=booking_id) for booking_id in cancelled)
        self.bus.publish_all(
            UnavailabilityLifted(period_id=period_id, room_id=event.room_id) for period_id in lifted
        )

    def _record(
        self, record_id: str, room_id: str, entry_type: HistoryEntryType, **payload
    ) -> None:
        self.history_repo.add(
            HistoryEntry(record_id=record_id, room_id=room_id, type=entry_type, payload=payload)
        )

    def on_booking_written(
        self, event: BookingCreated | BookingUpdated | BookingCancelled
    ) -> None:
        booking = self.booking_repo.get(event.booking_id)
        if booking is None:
            logger.warning("%s for unknown booking %s", type(event).__name__, event.booking_id)
            return
        if isinstance(event, BookingCreated):
            self._record(
                booking.id, booking.room_id, HistoryEntryType.CREATED,
                type=booking.type.value, label=booking.label,
            )
        elif isinstance(event, BookingUpdated):
            self._record(
                booking.id, booking.room_id, HistoryEntryType.UPDATED,
                start_time=booking.start_time, end_time=booking.end_time,
            )
        else:
            self._record(booking.id, booking.room_id, HistoryEntryType.CANCELLED)

    def on_booking_temporarily_freed(self, event: BookingTemporarilyFreed) -> None:
        booking = self.booking_repo.get(event.booking_id)
        if booking is None:
            return
        if event.added:
            self._record(
                booking.id, booking.room_id, HistoryEntryType.TEMPORARILY_FREED,
                dates=[d.isoformat() for d in event.added],
            )
        if event.removed:
            self._record(
                booking.id, booking.room_id, HistoryEntryType.RESTORED,
                dates=[d.isoformat() for d in event.removed],
            )
        logger.info(
            "Booking %s exceptions now %s",
            event.booking_id,
            [d.isoformat() for d in booking.temporary_free_dates],
        )

    def on_unavailability_declared(self, event: UnavailabilityDeclared) -> None:
        self._record(event.period_id, event.room_id, HistoryEntryType.UNAVAILABILITY_DECLARED)

    def on_unavailability_lifted(self, event: UnavailabilityLifted) -> None:
        self._record(event.period_id, event.room_id, HistoryEntryType.UNAVAILABILITY_LIFTED)
