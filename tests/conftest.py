import pytest

from booking_service import BookingService
from database import build_engine, build_session_maker, close_db, init_db
from vehicle_service import VehicleDirectory

from tests.factories import OWNER, FakeClock, RecordingBus, vehicle_request


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'rental.db'}")
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bus():
    return RecordingBus()


@pytest.fixture
def vehicles(session_maker):
    return VehicleDirectory(session_maker)


@pytest.fixture
def bookings(session_maker, bus, clock):
    return BookingService(session_maker, bus, clock=clock)


@pytest.fixture
async def vehicle(vehicles):
    return await vehicles.create_vehicle(OWNER, vehicle_request())
