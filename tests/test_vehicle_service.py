import pytest

from errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from models import VehicleStatus

from tests.factories import OWNER, RENTER, vehicle_request

pytestmark = pytest.mark.anyio


async def test_create_vehicle_defaults(vehicle):
    assert vehicle.owner_id == OWNER
    assert vehicle.status == VehicleStatus.AVAILABLE
    assert vehicle.is_available is True
    assert vehicle.total_trips == 0
    assert vehicle.rating == 0.0


async def test_duplicate_plate_conflicts(vehicles, vehicle):
    with pytest.raises(ConflictError):
        await vehicles.create_vehicle("owner-2", vehicle_request())


async def test_get_unknown_vehicle(vehicles):
    with pytest.raises(NotFoundError):
        await vehicles.get_vehicle("missing")


async def test_owner_toggles_maintenance(vehicles, vehicle):
    updated = await vehicles.update_status(OWNER, vehicle.id, VehicleStatus.MAINTENANCE)
    assert updated.status == VehicleStatus.MAINTENANCE

    updated = await vehicles.update_status(OWNER, vehicle.id, VehicleStatus.AVAILABLE)
    assert updated.status == VehicleStatus.AVAILABLE


async def test_owner_cannot_set_admin_statuses(vehicles, vehicle):
    with pytest.raises(BadRequestError):
        await vehicles.update_status(OWNER, vehicle.id, VehicleStatus.LOCKED)


async def test_only_owner_manages_vehicle(vehicles, vehicle):
    with pytest.raises(ForbiddenError):
        await vehicles.update_status(RENTER, vehicle.id, VehicleStatus.MAINTENANCE)
    with pytest.raises(ForbiddenError):
        await vehicles.set_availability(RENTER, vehicle.id, False)


async def test_set_availability(vehicles, vehicle):
    updated = await vehicles.set_availability(OWNER, vehicle.id, False)
    assert updated.is_available is False
    assert (await vehicles.get_vehicle(vehicle.id)).is_available is False
