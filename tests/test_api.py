"""HTTP-level tests for the booking service."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from roombooking.main import (
    app,
    booking_repo as app_booking_repo,
    directory_cache as app_directory_cache,
    hall_repo as app_hall_repo,
    history_repo as app_history_repo,
    room_repo as app_room_repo,
    unavailability_repo as app_unavailability_repo,
)

MONDAY = "2024-06-03"
NEXT_MONDAY = "2024-06-10"


def _clear() -> None:
    app_hall_repo._store.clear()
    app_room_repo._store.clear()
    app_booking_repo._store.clear()
    app_unavailability_repo._store.clear()
    app_history_repo._entries.clear()
    app_directory_cache.invalidate()


@pytest.fixture()
def api_client():
    _clear()
    client = TestClient(app)
    yield client
    _clear()


@pytest.fixture()
def room(api_client: TestClient) -> dict:
    hall = api_client.post("/halls", json={"name": "Science Complex"}).json()
    resp = api_client.post(
        "/rooms",
        json={"hall_id": hall["id"], "number": "SC 101", "capacity": 60, "has_projector": True},
    )
    assert resp.status_code == 201
    return resp.json()


def _permanent(room: dict, **overrides) -> dict:
    body = {
        "type": "permanent",
        "room_id": room["id"],
        "day_of_week": 1,
        "start_time": "08:00",
        "end_time": "10:00",
        "course_name": "Intro to Computing",
        "course_code": "CSC101",
        "staff_id": "staff-1",
    }
    body.update(overrides)
    return body


def _event(room: dict, **overrides) -> dict:
    body = {
        "type": "event",
        "room_id": room["id"],
        "date": MONDAY,
        "start_time": "09:00",
        "end_time": "11:00",
        "title": "Guest lecture",
    }
    body.update(overrides)
    return body


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


def test_halls_and_rooms_listing(api_client: TestClient, room: dict):
    halls = api_client.get("/halls").json()
    assert [h["name"] for h in halls] == ["Science Complex"]
    rooms = api_client.get("/rooms", params={"hall_id": room["hall_id"]}).json()
    assert [r["number"] for r in rooms] == ["SC 101"]


def test_room_in_unknown_hall_404(api_client: TestClient):
    resp = api_client.post("/rooms", json={"hall_id": "nope", "number": "X", "capacity": 10})
    assert resp.status_code == 404


def test_delete_hall_with_rooms_conflicts(api_client: TestClient, room: dict):
    resp = api_client.delete(f"/halls/{room['hall_id']}")
    assert resp.status_code == 409


def test_search_rooms_by_feature(api_client: TestClient, room: dict):
    found = api_client.get("/rooms/search", params={"feature": "projector"}).json()
    assert [r["id"] for r in found] == [room["id"]]
    none = api_client.get("/rooms/search", params={"min_capacity": 100}).json()
    assert none == []


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


def test_create_and_fetch_booking(api_client: TestClient, room: dict):
    resp = api_client.post("/bookings", json=_permanent(room))
    assert resp.status_code == 201
    booking = resp.json()
    assert booking["room_name"] == "SC 101"
    assert booking["hall_name"] == "Science Complex"

    fetched = api_client.get(f"/bookings/{booking['id']}")
    assert fetched.status_code == 200
    assert api_client.get("/bookings", params={"staff_id": "staff-1"}).json()[0]["id"] == booking["id"]


def test_conflicting_booking_rejected(api_client: TestClient, room: dict):
    api_client.post("/bookings", json=_permanent(room))
    resp = api_client.post("/bookings", json=_event(room))
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert "permanent class" in detail["message"]
    assert len(detail["conflicts"]) == 1


def test_check_endpoint_reports_without_saving(api_client: TestClient, room: dict):
    api_client.post("/bookings", json=_permanent(room))
    report = api_client.post("/bookings/check", json=_event(room)).json()
    assert report["has_conflict"] is True
    assert len(api_client.get("/bookings").json()) == 1


def test_malformed_draft_is_422(api_client: TestClient, room: dict):
    resp = api_client.post("/bookings", json=_event(room, start_time="9am"))
    assert resp.status_code == 422
    resp = api_client.post("/bookings", json=_event(room, date=None))
    assert resp.status_code == 422


def test_update_excludes_itself(api_client: TestClient, room: dict):
    booking = api_client.post("/bookings", json=_permanent(room)).json()
    resp = api_client.put(f"/bookings/{booking['id']}", json=_permanent(room, end_time="11:00"))
    assert resp.status_code == 200
    assert resp.json()["end_time"] == "11:00"
    assert resp.json()["created_at"] == booking["created_at"]


def test_cancel_booking(api_client: TestClient, room: dict):
    booking = api_client.post("/bookings", json=_permanent(room)).json()
    assert api_client.delete(f"/bookings/{booking['id']}").json() == {"status": "cancelled"}
    assert api_client.get(f"/bookings/{booking['id']}").status_code == 404
    assert api_client.post("/bookings", json=_event(room)).status_code == 201


def test_booking_history_outlives_cancellation(api_client: TestClient, room: dict):
    booking = api_client.post("/bookings", json=_permanent(room)).json()
    api_client.post(f"/bookings/{booking['id']}/temporary-free", json={"dates": [MONDAY]})
    api_client.delete(f"/bookings/{booking['id']}")

    resp = api_client.get(f"/bookings/{booking['id']}/history")
    assert resp.status_code == 200
    assert [h["type"] for h in resp.json()] == ["created", "temporarily_freed", "cancelled"]
    assert api_client.get("/bookings/missing/history").status_code == 404


def test_room_history_survives_room_delete(api_client: TestClient, room: dict):
    booking = api_client.post("/bookings", json=_permanent(room)).json()
    api_client.delete(f"/rooms/{room['id']}")

    history = api_client.get(f"/rooms/{room['id']}/history").json()
    assert [(h["record_id"], h["type"]) for h in history] == [
        (booking["id"], "created"),
        (booking["id"], "cancelled"),
    ]


# ---------------------------------------------------------------------------
# Temporary free
# ---------------------------------------------------------------------------


def test_temporary_free_end_to_end(api_client: TestClient, room: dict):
    booking = api_client.post("/bookings", json=_permanent(room)).json()

    free = api_client.get("/rooms/free", params={"date": MONDAY, "time": "09:00"}).json()
    assert free["total"] == 0

    resp = api_client.post(
        f"/bookings/{booking['id']}/temporary-free", json={"dates": [MONDAY]}
    )
    assert resp.status_code == 200
    assert resp.json()["temporary_free_dates"] == [MONDAY]

    free = api_client.get("/rooms/free", params={"date": MONDAY, "time": "09:00"}).json()
    assert [r["id"] for r in free["rooms"]] == [room["id"]]
    later = api_client.get("/rooms/free", params={"date": NEXT_MONDAY, "time": "09:00"}).json()
    assert later["total"] == 0

    grid = api_client.get(f"/halls/{room['hall_id']}/day-grid", params={"date": MONDAY}).json()
    (block,) = grid[0]["blocks"]
    assert block["kind"] == "tempfree"
    assert block["label"] == "Temporarily Free"

    assert api_client.post("/bookings", json=_event(room)).status_code == 201


def test_restore_temporary_free(api_client: TestClient, room: dict):
    booking = api_client.post("/bookings", json=_permanent(room)).json()
    api_client.post(f"/bookings/{booking['id']}/temporary-free", json={"dates": [MONDAY]})
    resp = api_client.post(
        f"/bookings/{booking['id']}/temporary-free/restore", json={"dates": [MONDAY]}
    )
    assert resp.json()["temporary_free_dates"] == []


def test_temporary_free_rejected_for_events(api_client: TestClient, room: dict):
    event = api_client.post("/bookings", json=_event(room)).json()
    resp = api_client.post(f"/bookings/{event['id']}/temporary-free", json={"dates": [MONDAY]})
    assert resp.status_code == 400


def test_temporary_free_rejected_off_the_class_weekday(api_client: TestClient, room: dict):
    booking = api_client.post("/bookings", json=_permanent(room)).json()
    resp = api_client.post(
        f"/bookings/{booking['id']}/temporary-free", json={"dates": [MONDAY, "2024-06-04"]}
    )
    assert resp.status_code == 400
    assert "2024-06-04" in resp.json()["detail"]
    assert api_client.get(f"/bookings/{booking['id']}").json()["temporary_free_dates"] == []


def test_sessions_flag_temporarily_free_dates(api_client: TestClient, room: dict):
    booking = api_client.post("/bookings", json=_permanent(room)).json()
    api_client.post(f"/bookings/{booking['id']}/temporary-free", json={"dates": [NEXT_MONDAY]})

    resp = api_client.get(
        f"/bookings/{booking['id']}/sessions", params={"start": "2024-06-01", "weeks": 2}
    )
    assert resp.status_code == 200
    sessions = resp.json()
    assert [s["date"] for s in sessions] == [MONDAY, NEXT_MONDAY]
    assert [s["temporarily_free"] for s in sessions] == [False, True]
    assert sessions[0]["duration_label"] == "2 hours"


def test_sessions_rejected_for_events(api_client: TestClient, room: dict):
    event = api_client.post("/bookings", json=_event(room)).json()
    assert api_client.get(f"/bookings/{event['id']}/sessions").status_code == 400


# ---------------------------------------------------------------------------
# Unavailability and cascade
# ---------------------------------------------------------------------------


def test_recurring_unavailability_blocks_booking(api_client: TestClient, room: dict):
    resp = api_client.post(
        "/unavailability",
        json={
            "room_id": room["id"],
            "type": "recurring",
            "day_of_week": 1,
            "start_time": "08:00",
            "end_time": "12:00",
            "reason": "maintenance",
        },
    )
    assert resp.status_code == 201
    assert resp.json()["hall_id"] == room["hall_id"]

    conflict = api_client.post("/bookings", json=_permanent(room))
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["message"] == "Room is unavailable every Monday (maintenance)."

    api_client.delete(f"/unavailability/{resp.json()['id']}")
    assert api_client.post("/bookings", json=_permanent(room)).status_code == 201


def test_invalid_unavailability_shape_is_422(api_client: TestClient, room: dict):
    resp = api_client.post(
        "/unavailability",
        json={
            "room_id": room["id"],
            "type": "date",
            "day_of_week": 1,
            "start_time": "08:00",
            "end_time": "12:00",
            "reason": "closed",
        },
    )
    assert resp.status_code == 422


def test_delete_room_cascades(api_client: TestClient, room: dict):
    booking = api_client.post("/bookings", json=_permanent(room)).json()
    assert api_client.delete(f"/rooms/{room['id']}").status_code == 200
    assert api_client.get(f"/bookings/{booking['id']}").status_code == 404
    assert api_client.get("/rooms").json() == []
    assert api_client.delete(f"/halls/{room['hall_id']}").status_code == 200


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def test_time_slots(api_client: TestClient):
    slots = api_client.get("/time-slots").json()
    assert slots[0]["time"] == "06:00"
    assert len(slots) == 29


def test_weekly_timetable(api_client: TestClient, room: dict):
    api_client.post("/bookings", json=_permanent(room))
    api_client.post("/bookings", json=_event(room, date="2024-06-05", start_time="14:00", end_time="15:00"))
    week = api_client.get(
        "/timetable/week", params={"anchor": "2024-06-06", "room_id": room["id"]}
    ).json()
    assert [d["date"] for d in week][0] == MONDAY
    assert len(week) == 7
    assert len(week[0]["blocks"]) == 1
    assert week[2]["blocks"][0]["kind"] == "event"


def test_alternative_rooms(api_client: TestClient, room: dict):
    other = api_client.post(
        "/rooms", json={"hall_id": room["hall_id"], "number": "SC 102", "capacity": 40}
    ).json()
    api_client.post("/bookings", json=_permanent(room))
    found = api_client.get(
        "/rooms/alternatives", params={"date": MONDAY, "start": "09:00", "end": "10:00"}
    ).json()
    assert [r["id"] for r in found] == [other["id"]]


def test_room_update_refreshes_listing(api_client: TestClient, room: dict):
    body = {"hall_id": room["hall_id"], "number": "SC 101A", "capacity": 80}
    resp = api_client.put(f"/rooms/{room['id']}", json=body)
    assert resp.status_code == 200
    assert [r["number"] for r in api_client.get("/rooms").json()] == ["SC 101A"]
    assert api_client.get("/rooms/search", params={"feature": "projector"}).json() == []


@pytest.mark.parametrize("limit", [0, -1])
def test_free_rooms_limit_must_be_positive(api_client: TestClient, room: dict, limit: int):
    resp = api_client.get("/rooms/free", params={"date": MONDAY, "time": "09:00", "limit": limit})
    assert resp.status_code == 422


def test_free_rooms_limit_caps_but_counts_all(api_client: TestClient, room: dict):
    for number in ("SC 102", "SC 103"):
        api_client.post("/rooms", json={"hall_id": room["hall_id"], "number": number, "capacity": 30})
    free = api_client.get("/rooms/free", params={"date": MONDAY, "time": "09:00", "limit": 2}).json()
    assert free["total"] == 3
    assert len(free["rooms"]) == 2
