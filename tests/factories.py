from datetime import datetime, timedelta, timezone

from events import EventBus
from models import VehicleType
from schemas import CreateBookingRequest, CreateVehicleRequest

NOW = datetime(2030, 11, 1, 8, 0, tzinfo=timezone.utc)

OWNER = "owner-1"
RENTER = "renter-1"
OTHER_RENTER = "renter-2"


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class RecordingBus(EventBus):
    """EventBus that also keeps every published event for assertions."""

    def __init__(self, max_attempts=1, retry_delay=0):
        super().__init__(max_attempts=max_attempts, retry_delay=retry_delay)
        self.published = []

    def publish(self, event):
        self.published.append(event)
        super().publish(event)


class FakeWebSocket:
    def __init__(self, fail_on_send=False):
        self.accepted = False
        self.sent = []
        self.fail_on_send = fail_on_send

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.fail_on_send:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def events(self):
        return [frame["event"] for frame in self.sent]


def vehicle_request(**overrides):
    data = {
        "name": "VinFast Klara",
        "type": VehicleType.ELECTRIC_SCOOTER,
        "brand": "VinFast",
        "model": "Klara S",
        "year": 2024,
        "license_plate": "59A-123.45",
        "price_per_hour": 50.0,
        "price_per_day": 300.0,
        "deposit": 100.0,
        "latitude": 10.7769,
        "longitude": 106.7009,
        "address": "District 1, Ho Chi Minh City",
    }
    data.update(overrides)
    return CreateVehicleRequest(**data)


def booking_request(vehicle_id, start_offset_hours=2, hours=3, notes=None):
    start = NOW + timedelta(hours=start_offset_hours)
    return CreateBookingRequest(
        vehicle_id=vehicle_id,
        start_time=start,
        end_time=start + timedelta(hours=hours),
        notes=notes,
    )
