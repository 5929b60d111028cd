import pytest

from gateway import NotificationGateway, PresenceRegistry

from tests.factories import FakeWebSocket

pytestmark = pytest.mark.anyio


async def test_connect_registers_presence_and_greets():
    gateway = NotificationGateway()
    ws = FakeWebSocket()

    connection_id = await gateway.connect(ws, "u1")

    assert ws.accepted
    assert gateway.is_user_online("u1")
    assert gateway.online_users_count() == 1
    assert ws.sent[0] == {
        "event": "connected",
        "data": {"message": "Connected to notification service", "userId": "u1"},
    }

    gateway.disconnect(connection_id)
    assert not gateway.is_user_online("u1")
    assert gateway.online_users_count() == 0


async def test_user_stays_online_until_last_connection_closes():
    gateway = NotificationGateway()
    phone, laptop = FakeWebSocket(), FakeWebSocket()
    first = await gateway.connect(phone, "u1")
    second = await gateway.connect(laptop, "u1")

    assert await gateway.send_to_user("u1", "ping", {"n": 1}) == 2

    gateway.disconnect(first)
    assert gateway.is_user_online("u1")
    gateway.disconnect(second)
    assert not gateway.is_user_online("u1")


async def test_booking_room_subscription():
    gateway = NotificationGateway()
    ws, other = FakeWebSocket(), FakeWebSocket()
    connection_id = await gateway.connect(ws, "u1")
    await gateway.connect(other, "u2")

    await gateway.handle_message(connection_id, {"event": "subscribe_booking", "data": {"bookingId": "b1"}})
    assert ws.sent[-1] == {"event": "subscribed", "data": {"bookingId": "b1"}}

    delivered = await gateway.broadcast_booking_update("b1", "booking_status_changed", {"status": "CONFIRMED"})
    assert delivered == 1
    assert ws.sent[-1]["event"] == "booking_status_changed"
    assert "booking_status_changed" not in other.events()

    await gateway.handle_message(connection_id, {"event": "unsubscribe_booking", "data": {"bookingId": "b1"}})
    assert ws.sent[-1] == {"event": "unsubscribed", "data": {"bookingId": "b1"}}
    assert await gateway.broadcast_booking_update("b1", "booking_status_changed", {}) == 0


async def test_unknown_message_gets_error_frame():
    gateway = NotificationGateway()
    ws = FakeWebSocket()
    connection_id = await gateway.connect(ws, "u1")

    await gateway.handle_message(connection_id, {"event": "dance", "data": {}})
    await gateway.handle_message(connection_id, "not a dict")

    assert ws.events()[-2:] == ["error", "error"]


async def test_failed_send_drops_connection():
    gateway = NotificationGateway()
    ws = FakeWebSocket()
    connection_id = await gateway.connect(ws, "u1")
    await gateway.handle_message(connection_id, {"event": "subscribe_booking", "data": {"bookingId": "b1"}})

    ws.fail_on_send = True
    assert await gateway.send_to_user("u1", "ping", {}) == 0
    assert not gateway.is_user_online("u1")
    assert await gateway.broadcast_booking_update("b1", "booking_status_changed", {}) == 0


def test_presence_registry_counts():
    presence = PresenceRegistry()
    assert presence.add("u1", "c1") == 1
    assert presence.add("u1", "c2") == 2
    presence.add("u2", "c3")
    assert presence.online_count() == 2

    presence.remove("u1", "c1")
    presence.remove("u1", "c2")
    presence.remove("u1", "missing")
    assert not presence.is_online("u1")
    assert presence.connections_for("u2") == ["c3"]


async def test_subscribe_requires_booking_access():
    async def booking_access(booking_id, user_id):
        return (booking_id, user_id) == ("b1", "renter")

    gateway = NotificationGateway(booking_access=booking_access)
    renter, stranger = FakeWebSocket(), FakeWebSocket()
    renter_id = await gateway.connect(renter, "renter")
    stranger_id = await gateway.connect(stranger, "stranger")

    await gateway.handle_message(stranger_id, {"event": "subscribe_booking", "data": {"bookingId": "b1"}})
    assert stranger.sent[-1] == {"event": "error", "data": {"message": "Booking not found", "bookingId": "b1"}}

    await gateway.handle_message(renter_id, {"event": "subscribe_booking", "data": {"bookingId": "b1"}})
    assert renter.sent[-1] == {"event": "subscribed", "data": {"bookingId": "b1"}}

    assert await gateway.broadcast_booking_update("b1", "booking_status_changed", {}) == 1
    assert "booking_status_changed" not in stranger.events()
