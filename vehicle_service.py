"""
Vehicle directory: the narrow slice of the catalog the booking engine reads.
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

import db_operations
from errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from models import Vehicle, VehicleStatus
from schemas import CreateVehicleRequest

logger = logging.getLogger(__name__)

# Statuses an owner may set on their own; everything else is admin-gated
OWNER_SETTABLE_STATUSES = (VehicleStatus.AVAILABLE, VehicleStatus.MAINTENANCE)


class VehicleDirectory:
    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def create_vehicle(self, owner_id: str, request: CreateVehicleRequest) -> Vehicle:
        async with self.session_maker() as session:
            try:
                async with session.begin():
                    if await db_operations.get_vehicle_by_plate(session, request.license_plate):
                        raise ConflictError("License plate already registered")
                    vehicle = Vehicle(
                        owner_id=owner_id,
                        status=VehicleStatus.AVAILABLE,
                        is_available=True,
                        **request.model_dump(),
                    )
                    session.add(vehicle)
            except IntegrityError:
                raise ConflictError("License plate already registered")

        logger.info(f"Vehicle {vehicle.id} registered by owner {owner_id}")
        return vehicle

    async def get_vehicle(self, vehicle_id: str) -> Vehicle:
        async with self.session_maker() as session:
            vehicle = await db_operations.get_vehicle(session, vehicle_id)
        if not vehicle:
            raise NotFoundError("Vehicle not found")
        return vehicle

    async def update_status(self, owner_id: str, vehicle_id: str, status: VehicleStatus) -> Vehicle:
        """Owners may only toggle between AVAILABLE and MAINTENANCE."""
        async with self.session_maker() as session:
            async with session.begin():
                vehicle = await db_operations.get_vehicle(session, vehicle_id, for_update=True)
                if not vehicle:
                    raise NotFoundError("Vehicle not found")
                if vehicle.owner_id != owner_id:
                    raise ForbiddenError("You can only manage your own vehicles")
                if status not in OWNER_SETTABLE_STATUSES:
                    raise BadRequestError("Owners can only set status to AVAILABLE or MAINTENANCE")
                if vehicle.status not in OWNER_SETTABLE_STATUSES:
                    raise BadRequestError(f"Vehicle status {vehicle.status.value} cannot be changed by the owner")
                vehicle.status = status

        logger.info(f"Vehicle {vehicle_id} status set to {status.value} by owner {owner_id}")
        return vehicle

    async def set_availability(self, owner_id: str, vehicle_id: str, is_available: bool) -> Vehicle:
        async with self.session_maker() as session:
            async with session.begin():
                vehicle = await db_operations.get_vehicle(session, vehicle_id, for_update=True)
                if not vehicle:
                    raise NotFoundError("Vehicle not found")
                if vehicle.owner_id != owner_id:
                    raise ForbiddenError("You can only manage your own vehicles")
                vehicle.is_available = is_available

        logger.info(f"Vehicle {vehicle_id} availability set to {is_available} by owner {owner_id}")
        return vehicle
