from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from main import create_app
from push_client import PushClient

from tests.factories import NOW, OTHER_RENTER, OWNER, RENTER, FakeClock, vehicle_request


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(tmp_path, clock):
    app = create_app(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        push_client=PushClient(),
    )
    for name in ("booking_service", "trip_service", "payment_service"):
        getattr(app.state, name).clock = clock
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def as_user(user_id):
    return {"X-User-Id": user_id}


def drain_events(client, app):
    client.portal.call(app.state.event_bus.join)


def create_vehicle(client, **overrides):
    body = vehicle_request(**overrides).model_dump(mode="json", by_alias=True)
    response = client.post("/vehicles", json=body, headers=as_user(OWNER))
    assert response.status_code == 201, response.text
    return response.json()


def create_booking(client, vehicle_id, user_id=RENTER, start_offset_hours=2, hours=3):
    start = NOW + timedelta(hours=start_offset_hours)
    body = {
        "vehicleId": vehicle_id,
        "startTime": start.isoformat(),
        "endTime": (start + timedelta(hours=hours)).isoformat(),
    }
    return client.post("/bookings", json=body, headers=as_user(user_id))


def test_requests_without_identity_are_rejected(client):
    response = client.get("/bookings")
    assert response.status_code == 401


def test_health(client):
    assert client.get("/").json()["status"] == "ok"


def test_booking_created_with_camel_case_payload(client):
    vehicle = create_vehicle(client)

    response = create_booking(client, vehicle["id"])

    assert response.status_code == 201
    booking = response.json()
    assert booking["status"] == "PENDING"
    assert booking["totalPrice"] == 150.0
    assert booking["ownerId"] == OWNER
    assert booking["vehicleId"] == vehicle["id"]


def test_overlapping_booking_returns_409(client):
    vehicle = create_vehicle(client)
    assert create_booking(client, vehicle["id"]).status_code == 201

    response = create_booking(client, vehicle["id"], user_id=OTHER_RENTER, start_offset_hours=3)

    assert response.status_code == 409
    assert response.json() == {
        "success": False,
        "error": "ConflictError",
        "detail": "Vehicle is already booked for the selected time period",
    }


def test_invalid_body_returns_422(client):
    vehicle = create_vehicle(client)
    response = client.post(
        "/bookings",
        json={"vehicleId": vehicle["id"], "startTime": "tomorrow"},
        headers=as_user(RENTER),
    )
    assert response.status_code == 422


def test_unknown_booking_returns_404(client):
    response = client.get("/bookings/missing", headers=as_user(RENTER))
    assert response.status_code == 404
    assert response.json()["error"] == "NotFoundError"


def test_vehicle_schedule_is_public(client):
    vehicle = create_vehicle(client)
    booking = create_booking(client, vehicle["id"]).json()

    schedule = client.get(f"/bookings/vehicle/{vehicle['id']}/schedule").json()

    assert [slot["id"] for slot in schedule] == [booking["id"]]
    assert "renterId" not in schedule[0]


def test_rental_lifecycle(client, app, clock):
    vehicle = create_vehicle(client)
    booking = create_booking(client, vehicle["id"]).json()

    pending = client.get("/owner/bookings/pending", headers=as_user(OWNER)).json()
    assert [b["id"] for b in pending] == [booking["id"]]

    response = client.patch(f"/owner/bookings/{booking['id']}/approve", headers=as_user(OWNER))
    assert response.status_code == 200
    assert response.json()["status"] == "CONFIRMED"

    response = client.post(
        "/payments", json={"bookingId": booking["id"], "method": "MOMO"}, headers=as_user(RENTER)
    )
    assert response.status_code == 201
    payment = response.json()
    assert payment["amount"] == 250.0
    assert payment["platformFee"] == pytest.approx(37.5)

    paid = client.post(f"/payments/{payment['id']}/simulate-success", headers=as_user(RENTER)).json()
    assert paid["status"] == "COMPLETED"
    assert paid["transactionId"].startswith("SIM_")

    clock.advance(hours=2)
    response = client.post(
        "/trips/start",
        json={"bookingId": booking["id"], "startLatitude": 10.7769, "startLongitude": 106.7009, "startBattery": 90},
        headers=as_user(RENTER),
    )
    assert response.status_code == 201
    trip = response.json()
    assert client.get("/trips/active", headers=as_user(RENTER)).json()["id"] == trip["id"]

    clock.advance(minutes=90)
    response = client.patch(
        f"/trips/{trip['id']}/end",
        json={"endLatitude": 10.8231, "endLongitude": 106.6297, "endBattery": 40},
        headers=as_user(RENTER),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "COMPLETED"
    assert response.json()["duration"] == 90

    assert client.get(f"/bookings/{booking['id']}", headers=as_user(RENTER)).json()["status"] == "COMPLETED"

    response = client.post(
        "/reviews", json={"vehicleId": vehicle["id"], "rating": 5, "comment": "Great"}, headers=as_user(RENTER)
    )
    assert response.status_code == 201

    refreshed = client.get(f"/vehicles/{vehicle['id']}").json()
    assert refreshed["totalTrips"] == 1
    assert refreshed["rating"] == 5.0
    assert refreshed["reviewCount"] == 1

    drain_events(client, app)
    renter_feed = client.get("/notifications", headers=as_user(RENTER)).json()
    assert [n["type"] for n in renter_feed["notifications"]] == ["BOOKING_CONFIRMED"]
    assert renter_feed["unreadCount"] == 1


def test_review_rating_out_of_range_returns_422(client):
    vehicle = create_vehicle(client)
    response = client.post("/reviews", json={"vehicleId": vehicle["id"], "rating": 6}, headers=as_user(RENTER))
    assert response.status_code == 422


def test_reject_requires_reason(client):
    vehicle = create_vehicle(client)
    booking = create_booking(client, vehicle["id"]).json()

    response = client.patch(
        f"/owner/bookings/{booking['id']}/reject", json={"reason": "   "}, headers=as_user(OWNER)
    )
    assert response.status_code == 422

    response = client.patch(
        f"/owner/bookings/{booking['id']}/reject", json={"reason": "In service"}, headers=as_user(OWNER)
    )
    assert response.status_code == 200
    assert response.json()["cancellationReason"] == "In service"


def test_notification_read_tracking(client, app):
    vehicle = create_vehicle(client)
    create_booking(client, vehicle["id"], start_offset_hours=2)
    create_booking(client, vehicle["id"], start_offset_hours=10)
    drain_events(client, app)

    assert client.get("/notifications/unread-count", headers=as_user(OWNER)).json() == {"count": 2}

    feed = client.get("/notifications", headers=as_user(OWNER)).json()
    first_id = feed["notifications"][0]["id"]
    assert client.patch(
        "/notifications/read", json={"notificationIds": [first_id]}, headers=as_user(OWNER)
    ).status_code == 204
    assert client.get("/notifications/unread-count", headers=as_user(OWNER)).json() == {"count": 1}

    for _ in range(2):
        assert client.patch("/notifications/read-all", headers=as_user(OWNER)).status_code == 204
    assert client.get("/notifications/unread-count", headers=as_user(OWNER)).json() == {"count": 0}

    assert client.delete(f"/notifications/{first_id}", headers=as_user(OWNER)).status_code == 204
    assert len(client.get("/notifications", headers=as_user(OWNER)).json()["notifications"]) == 1


def test_device_token_registration(client):
    response = client.post(
        "/notifications/fcm-token", json={"token": "abc", "platform": "android"}, headers=as_user(OWNER)
    )
    assert response.status_code == 204

    response = client.post(
        "/notifications/fcm-token", json={"token": "abc", "platform": "windows"}, headers=as_user(OWNER)
    )
    assert response.status_code == 422

    response = client.request("DELETE", "/notifications/fcm-token", json={"token": "abc"}, headers=as_user(OWNER))
    assert response.status_code == 204


def test_websocket_requires_identity(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/notifications") as ws:
            ws.receive_json()
    assert exc_info.value.code == 1008


def test_websocket_receives_booking_events(client):
    vehicle = create_vehicle(client)

    with client.websocket_connect(f"/ws/notifications?user_id={OWNER}") as ws:
        assert ws.receive_json()["event"] == "connected"

        booking = create_booking(client, vehicle["id"]).json()

        frame = ws.receive_json()
        assert frame["event"] == "booking_request"
        assert frame["data"]["bookingId"] == booking["id"]
        assert frame["data"]["notification"]["type"] == "BOOKING_REQUEST"

        ws.send_json({"event": "subscribe_booking", "data": {"bookingId": booking["id"]}})
        assert ws.receive_json() == {"event": "subscribed", "data": {"bookingId": booking["id"]}}

        client.patch(f"/bookings/{booking['id']}/cancel", json={"reason": "Plans changed"}, headers=as_user(RENTER))

        events = {ws.receive_json()["event"] for _ in range(2)}
        assert events == {"booking_cancelled", "booking_status_changed"}


def test_websocket_survives_malformed_frame(client):
    vehicle = create_vehicle(client)
    booking = create_booking(client, vehicle["id"]).json()

    with client.websocket_connect(f"/ws/notifications?user_id={RENTER}") as ws:
        assert ws.receive_json()["event"] == "connected"

        ws.send_text("not json{")
        assert ws.receive_json() == {"event": "error", "data": {"message": "Unsupported message"}}

        ws.send_json({"event": "subscribe_booking", "data": {"bookingId": booking["id"]}})
        assert ws.receive_json() == {"event": "subscribed", "data": {"bookingId": booking["id"]}}


def test_websocket_refuses_booking_room_of_non_party(client, app):
    vehicle = create_vehicle(client)
    booking = create_booking(client, vehicle["id"]).json()
    drain_events(client, app)

    with client.websocket_connect(f"/ws/notifications?user_id={OTHER_RENTER}") as ws:
        assert ws.receive_json()["event"] == "connected"

        ws.send_json({"event": "subscribe_booking", "data": {"bookingId": booking["id"]}})
        assert ws.receive_json() == {
            "event": "error",
            "data": {"message": "Booking not found", "bookingId": booking["id"]},
        }

        ws.send_json({"event": "subscribe_booking", "data": {"bookingId": "missing"}})
        assert ws.receive_json()["event"] == "error"
