"""
Real-time notification gateway.

Each connection joins its user's room on connect and can subscribe to the
rooms of bookings its user is a party to. Presence lives in this process only.
"""
import logging
import uuid
from collections import defaultdict
from threading import Lock
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

# (booking_id, user_id) -> may this user follow the booking room
BookingAccess = Callable[[str, str], Awaitable[bool]]


class PresenceRegistry:
    """Thread-safe map of user id -> active connection ids."""

    def __init__(self):
        self._lock = Lock()
        self._connections: Dict[str, Set[str]] = {}

    def add(self, user_id: str, connection_id: str) -> int:
        with self._lock:
            connections = self._connections.setdefault(user_id, set())
            connections.add(connection_id)
            return len(connections)

    def remove(self, user_id: str, connection_id: str) -> None:
        with self._lock:
            connections = self._connections.get(user_id)
            if connections is None:
                return
            connections.discard(connection_id)
            if not connections:
                del self._connections[user_id]

    def is_online(self, user_id: str) -> bool:
        with self._lock:
            return bool(self._connections.get(user_id))

    def connections_for(self, user_id: str) -> List[str]:
        with self._lock:
            return list(self._connections.get(user_id, ()))

    def online_count(self) -> int:
        with self._lock:
            return len(self._connections)


class NotificationGateway:
    """
    Owns the live WebSocket connections and the booking rooms.

    Sockets only need async `accept()` and `send_json()`; FastAPI's WebSocket
    satisfies both.
    """

    def __init__(
        self,
        presence: Optional[PresenceRegistry] = None,
        booking_access: Optional[BookingAccess] = None,
    ):
        self.presence = presence or PresenceRegistry()
        self.booking_access = booking_access
        self._lock = Lock()
        self._sockets: Dict[str, Any] = {}
        self._users: Dict[str, str] = {}
        self._booking_rooms: Dict[str, Set[str]] = defaultdict(set)

    async def connect(self, websocket, user_id: str) -> str:
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        with self._lock:
            self._sockets[connection_id] = websocket
            self._users[connection_id] = user_id
        active = self.presence.add(user_id, connection_id)

        logger.info(f"User {user_id} connected via socket {connection_id}")
        logger.debug(f"Active connections for user {user_id}: {active}")

        await self._send(connection_id, "connected", {
            "message": "Connected to notification service",
            "userId": user_id,
        })
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        with self._lock:
            self._sockets.pop(connection_id, None)
            user_id = self._users.pop(connection_id, None)
            for booking_id in [b for b, members in self._booking_rooms.items() if connection_id in members]:
                self._booking_rooms[booking_id].discard(connection_id)
                if not self._booking_rooms[booking_id]:
                    del self._booking_rooms[booking_id]

        if user_id:
            self.presence.remove(user_id, connection_id)
            logger.info(f"User {user_id} disconnected from socket {connection_id}")

    async def handle_message(self, connection_id: str, message: Any) -> None:
        """Answer subscribe_booking / unsubscribe_booking frames."""
        event = message.get("event") if isinstance(message, dict) else None
        data = message.get("data") if isinstance(message, dict) else None
        booking_id = data.get("bookingId") if isinstance(data, dict) else None

        if event not in ("subscribe_booking", "unsubscribe_booking") or not booking_id:
            await self._send(connection_id, "error", {"message": "Unsupported message"})
            return

        if event == "subscribe_booking" and not await self._may_follow(connection_id, booking_id):
            logger.warning(f"Socket {connection_id} refused booking_{booking_id}")
            await self._send(connection_id, "error", {"message": "Booking not found", "bookingId": booking_id})
            return

        with self._lock:
            if event == "subscribe_booking":
                self._booking_rooms[booking_id].add(connection_id)
            else:
                members = self._booking_rooms.get(booking_id)
                if members is not None:
                    members.discard(connection_id)
                    if not members:
                        del self._booking_rooms[booking_id]

        reply = "subscribed" if event == "subscribe_booking" else "unsubscribed"
        logger.debug(f"Socket {connection_id} {reply} booking_{booking_id}")
        await self._send(connection_id, reply, {"bookingId": booking_id})

    async def _may_follow(self, connection_id: str, booking_id: str) -> bool:
        if self.booking_access is None:
            return True
        with self._lock:
            user_id = self._users.get(connection_id)
        return bool(user_id) and await self.booking_access(booking_id, user_id)

    def is_user_online(self, user_id: str) -> bool:
        return self.presence.is_online(user_id)

    def online_users_count(self) -> int:
        return self.presence.online_count()

    async def send_to_user(self, user_id: str, event: str, data: dict) -> int:
        """Send to every connection of a user; returns how many were reached."""
        delivered = 0
        for connection_id in self.presence.connections_for(user_id):
            if await self._send(connection_id, event, data):
                delivered += 1
        logger.debug(f"Sent {event} to user {user_id} ({delivered} connections)")
        return delivered

    async def broadcast_booking_update(self, booking_id: str, event: str, data: dict) -> int:
        with self._lock:
            members = list(self._booking_rooms.get(booking_id, ()))
        delivered = 0
        for connection_id in members:
            if await self._send(connection_id, event, data):
                delivered += 1
        logger.debug(f"Broadcast {event} to booking_{booking_id} ({delivered} connections)")
        return delivered

    async def _send(self, connection_id: str, event: str, data: dict) -> bool:
        with self._lock:
            websocket = self._sockets.get(connection_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json({"event": event, "data": data})
            return True
        except Exception as e:
            logger.warning(f"Dropping socket {connection_id} after send failure: {e}")
            self.disconnect(connection_id)
            return False
