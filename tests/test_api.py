from fastapi.testclient import TestClient

import main
from config import Settings


def publish(client, start="2024-07-29T10:00", end="2024-07-29T11:00"):
    return client.post("/api/availability", json={"startTime": start, "endTime": end})


def test_publish_availability(client):
    response = publish(client)

    assert response.status_code == 201
    body = response.json()
    assert body["slotsProcessed"] == 2
    assert body["slotsCreated"] == 2
    assert body["slotsIgnored"] == 0
    assert "2 potential 30-minute slots processed" in body["message"]


def test_publish_availability_errors(client):
    missing = client.post("/api/availability", json={"startTime": "2024-07-29T10:00"})
    assert missing.status_code == 400
    assert missing.json() == {"error": "Start and end times required."}

    unparseable = publish(client, start="soon")
    assert unparseable.status_code == 400
    assert unparseable.json() == {"error": "Invalid date format provided."}

    backwards = publish(client, start="2024-07-29T11:00", end="2024-07-29T10:00")
    assert backwards.status_code == 400
    assert backwards.json() == {"error": "End time must be after start time."}

    too_short = publish(client, end="2024-07-29T10:15")
    assert too_short.status_code == 400
    assert "No full 30-minute slots" in too_short.json()["error"]


def test_list_availability(client):
    publish(client, start="2024-07-29T14:00", end="2024-07-29T15:00")
    publish(client)

    response = client.get("/api/availability")

    assert response.status_code == 200
    assert [slot["start_time"] for slot in response.json()] == [
        "2024-07-29T10:00:00Z",
        "2024-07-29T10:30:00Z",
        "2024-07-29T14:00:00Z",
        "2024-07-29T14:30:00Z",
    ]
    assert set(response.json()[0]) == {"id", "start_time", "end_time"}


def test_book_by_slot_then_conflict(client):
    publish(client)
    slot_id = client.get("/api/availability").json()[0]["id"]

    first = client.post("/api/bookings/by-slot", json={"slotId": slot_id, "friendCode": "SW-1234"})
    assert first.status_code == 201
    assert len(first.json()["visitorBookingCode"]) == 6

    second = client.post("/api/bookings/by-slot", json={"slotId": str(slot_id), "friendCode": "SW-5678"})
    assert second.status_code == 409
    assert "no longer available" in second.json()["error"]

    remaining = client.get("/api/availability").json()
    assert slot_id not in [slot["id"] for slot in remaining]


def test_book_by_slot_errors(client):
    publish(client)

    bad_id = client.post("/api/bookings/by-slot", json={"slotId": -1, "friendCode": "SW-1234"})
    assert bad_id.status_code == 400

    unknown = client.post("/api/bookings/by-slot", json={"slotId": 404, "friendCode": "SW-1234"})
    assert unknown.status_code == 404

    no_friend = client.post("/api/bookings/by-slot", json={"slotId": 1})
    assert no_friend.status_code == 400

    malformed = client.post("/api/bookings/by-slot", json={"slotId": [1], "friendCode": "SW-1234"})
    assert malformed.status_code == 400
    assert malformed.json() == {"error": "Invalid input"}


def test_book_range_and_read_it_back(client):
    publish(client)

    response = client.post(
        "/api/bookings",
        json={
            "bookingStartTime": "2024-07-29T10:00",
            "bookingEndTime": "2024-07-29T11:00",
            "friendCode": "SW-1234",
            "message": "Salmon run?",
        },
    )
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Booking successful!"

    detail = client.get(f"/api/bookings/{body['bookingId']}")
    assert detail.status_code == 200
    booking = detail.json()
    assert booking["visitorBookingCode"] == body["visitorBookingCode"]
    assert booking["friendCode"] == "SW-1234"
    assert booking["message"] == "Salmon run?"
    assert booking["bookingStartTime"] == "2024-07-29T10:00:00Z"
    assert booking["bookingEndTime"] == "2024-07-29T11:00:00Z"
    assert [slot["start_time"] for slot in booking["slots"]] == [
        "2024-07-29T10:00:00Z",
        "2024-07-29T10:30:00Z",
    ]
    assert client.get("/api/availability").json() == []


def test_book_range_partially_booked_conflicts(client):
    publish(client)
    client.post("/api/bookings/by-slot", json={"slotId": 2, "friendCode": "SW-0001"})

    response = client.post(
        "/api/bookings",
        json={
            "bookingStartTime": "2024-07-29T10:00",
            "bookingEndTime": "2024-07-29T11:00",
            "friendCode": "SW-1234",
        },
    )

    assert response.status_code == 409
    assert [slot["id"] for slot in client.get("/api/availability").json()] == [1]


def test_book_range_unavailable_and_misaligned(client):
    publish(client)

    missing = client.post(
        "/api/bookings",
        json={
            "bookingStartTime": "2024-07-29T10:30",
            "bookingEndTime": "2024-07-29T11:30",
            "friendCode": "SW-1234",
        },
    )
    assert missing.status_code == 404

    misaligned = client.post(
        "/api/bookings",
        json={
            "bookingStartTime": "2024-07-29T10:00",
            "bookingEndTime": "2024-07-29T10:40",
            "friendCode": "SW-1234",
        },
    )
    assert misaligned.status_code == 400
    assert len(client.get("/api/availability").json()) == 2


def test_returning_visitor_reuses_code(client):
    publish(client)

    first = client.post("/api/bookings/by-slot", json={"slotId": 1, "friendCode": "SW-1234"})
    second = client.post(
        "/api/bookings",
        json={
            "bookingStartTime": "2024-07-29T10:30",
            "bookingEndTime": "2024-07-29T11:00",
            "friendCode": "SW-1234",
        },
    )

    assert first.json()["visitorBookingCode"] == second.json()["visitorBookingCode"]


def test_unknown_booking(client):
    response = client.get("/api/bookings/99")
    assert response.status_code == 404
    assert "not found" in response.json()["error"]


def test_unexpected_error_is_logged_with_traceback(database_url, monkeypatch, caplog):

    async def broken(db):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(main, "list_available_slots", broken)
    app = main.create_app(Settings(database_url=database_url, log_level="WARNING"))

    with TestClient(app, raise_server_exceptions=False) as client:
        with caplog.at_level("ERROR", logger="main"):
            response = client.get("/api/availability")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error, try again"}
    record = next(r for r in caplog.records if r.name == "main")
    assert record.exc_info is not None
    assert "disk on fire" in caplog.text
