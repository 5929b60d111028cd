"""
Booking engine: conflict detection, pricing and the booking state machine.

State machine:
    PENDING --approve--> CONFIRMED --trip.start--> ONGOING --trip.end--> COMPLETED
    PENDING --reject--> REJECTED
    PENDING|CONFIRMED --cancel--> CANCELLED
COMPLETED, CANCELLED and REJECTED are terminal.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

import db_operations
from calculations import calculate_total_price
from config import HISTORY_LIMIT, SCHEDULE_LIMIT
from errors import BadRequestError, ConflictError, NotFoundError
from events import (
    BookingApproved,
    BookingCancelled,
    BookingCreated,
    BookingRejected,
    EventBus,
)
from locking import VehicleLocks
from models import (
    ACTIVE_BOOKING_STATUSES,
    COMMITTED_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    VehicleStatus,
    utc_now,
)
from schemas import CreateBookingRequest

logger = logging.getLogger(__name__)


class BookingService:
    def __init__(
        self,
        session_maker: async_sessionmaker,
        events: EventBus,
        vehicle_locks: Optional[VehicleLocks] = None,
        clock: Callable[[], datetime] = utc_now,
        schedule_limit: int = SCHEDULE_LIMIT,
        history_limit: int = HISTORY_LIMIT,
    ):
        self.session_maker = session_maker
        self.events = events
        self.vehicle_locks = vehicle_locks or VehicleLocks()
        self.clock = clock
        self.schedule_limit = schedule_limit
        self.history_limit = history_limit

    # ---------- Renter side ----------
    async def create_booking(self, renter_id: str, request: CreateBookingRequest) -> Booking:
        """
        Create a PENDING booking.

        The conflict scan runs against PENDING, CONFIRMED and ONGOING bookings
        but is not locked against concurrent creates; competing requests are
        settled by the re-check in approve_booking.
        """
        logger.info(f"User {renter_id} creating booking for vehicle {request.vehicle_id}")

        start_time = request.start_time
        end_time = request.end_time

        if start_time >= end_time:
            raise BadRequestError("End time must be after start time")

        if start_time < self.clock():
            raise BadRequestError("Start time must be in the future")

        async with self.session_maker() as session:
            async with session.begin():
                vehicle = await db_operations.get_vehicle(session, request.vehicle_id)
                if not vehicle:
                    raise NotFoundError("Vehicle not found")

                if vehicle.owner_id == renter_id:
                    raise BadRequestError("You cannot book your own vehicle")

                if not vehicle.is_available or vehicle.status != VehicleStatus.AVAILABLE:
                    raise ConflictError("Vehicle is not available for booking")

                conflicts = await db_operations.find_conflicting_bookings(
                    session,
                    vehicle.id,
                    start_time,
                    end_time,
                    statuses=ACTIVE_BOOKING_STATUSES,
                )
                if conflicts:
                    raise ConflictError("Vehicle is already booked for the selected time period")

                booking = Booking(
                    renter_id=renter_id,
                    owner_id=vehicle.owner_id,
                    vehicle_id=vehicle.id,
                    start_time=start_time,
                    end_time=end_time,
                    total_price=calculate_total_price(
                        start_time, end_time, vehicle.price_per_hour, vehicle.price_per_day
                    ),
                    deposit=vehicle.deposit or 0.0,
                    notes=request.notes,
                    status=BookingStatus.PENDING,
                )
                session.add(booking)

        logger.info(f"Booking {booking.id} created successfully (total: {booking.total_price})")

        self.events.publish(
            BookingCreated(
                booking_id=booking.id,
                renter_id=renter_id,
                owner_id=booking.owner_id,
                vehicle_id=booking.vehicle_id,
            )
        )
        return booking

    async def cancel_booking(self, booking_id: str, renter_id: str, reason: str) -> Booking:
        async with self.session_maker() as session:
            async with session.begin():
                booking = await db_operations.get_booking(session, booking_id, for_update=True)
                if not booking:
                    raise NotFoundError("Booking not found")

                if booking.renter_id != renter_id:
                    raise BadRequestError("You can only cancel your own bookings")

                if booking.status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
                    raise BadRequestError("Only pending or confirmed bookings can be cancelled")

                booking.status = BookingStatus.CANCELLED
                booking.cancellation_reason = reason
                booking.cancelled_at = self.clock()

        logger.info(f"Booking {booking_id} cancelled by renter {renter_id}")

        self.events.publish(
            BookingCancelled(
                booking_id=booking.id,
                renter_id=renter_id,
                owner_id=booking.owner_id,
                reason=reason,
                cancelled_by="renter",
            )
        )
        return booking

    async def get_booking_by_id(self, booking_id: str, user_id: str) -> Booking:
        async with self.session_maker() as session:
            booking = await db_operations.get_booking(session, booking_id)

        # Non-parties get the same answer as for a missing booking
        if not booking or user_id not in (booking.renter_id, booking.owner_id):
            raise NotFoundError("Booking not found")
        return booking

    async def is_party(self, booking_id: str, user_id: str) -> bool:
        """True when the user is the booking's renter or owner."""
        async with self.session_maker() as session:
            booking = await db_operations.get_booking(session, booking_id)
        return bool(booking) and user_id in (booking.renter_id, booking.owner_id)

    async def get_renter_bookings(self, renter_id: str, status: Optional[BookingStatus] = None) -> List[Booking]:
        criteria = [Booking.renter_id == renter_id]
        if status:
            criteria.append(Booking.status == status)
        async with self.session_maker() as session:
            return await db_operations.list_bookings(session, *criteria, order_by=Booking.created_at.desc())

    async def get_upcoming_bookings(self, renter_id: str) -> List[Booking]:
        async with self.session_maker() as session:
            return await db_operations.list_bookings(
                session,
                Booking.renter_id == renter_id,
                Booking.status.in_(COMMITTED_BOOKING_STATUSES),
                Booking.start_time >= self.clock(),
                order_by=Booking.start_time.asc(),
            )

    async def get_booking_history(self, renter_id: str) -> List[Booking]:
        async with self.session_maker() as session:
            return await db_operations.list_bookings(
                session,
                Booking.renter_id == renter_id,
                Booking.status.in_((BookingStatus.COMPLETED, BookingStatus.CANCELLED)),
                order_by=Booking.created_at.desc(),
                limit=self.history_limit,
            )

    async def get_vehicle_schedule(self, vehicle_id: str) -> List[Booking]:
        """Occupied windows that have not ended yet, earliest first."""
        async with self.session_maker() as session:
            return await db_operations.list_bookings(
                session,
                Booking.vehicle_id == vehicle_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                Booking.end_time >= self.clock(),
                order_by=Booking.start_time.asc(),
                limit=self.schedule_limit,
            )

    # ---------- Owner side ----------
    async def get_owner_bookings(self, owner_id: str, status: Optional[BookingStatus] = None) -> List[Booking]:
        criteria = [Booking.owner_id == owner_id]
        if status:
            criteria.append(Booking.status == status)
        async with self.session_maker() as session:
            return await db_operations.list_bookings(session, *criteria, order_by=Booking.created_at.desc())

    async def get_pending_bookings(self, owner_id: str) -> List[Booking]:
        async with self.session_maker() as session:
            return await db_operations.list_bookings(
                session,
                Booking.owner_id == owner_id,
                Booking.status == BookingStatus.PENDING,
                order_by=Booking.created_at.asc(),
            )

    async def get_owner_booking_by_id(self, booking_id: str, owner_id: str) -> Booking:
        async with self.session_maker() as session:
            booking = await db_operations.get_booking(session, booking_id)
        if not booking or booking.owner_id != owner_id:
            raise NotFoundError("Booking not found")
        return booking

    async def approve_booking(self, booking_id: str, owner_id: str) -> Booking:
        """
        Confirm a PENDING booking.

        The overlap re-check against CONFIRMED/ONGOING bookings and the status
        write share one transaction, taken under the vehicle's lock and with
        the booking and vehicle rows locked, so of two conflicting approvals
        at most one sees a free slot. A failed re-check leaves the booking
        PENDING.
        """
        async with self.session_maker() as session:
            booking = await db_operations.get_booking(session, booking_id)
        if not booking:
            raise NotFoundError("Booking not found")

        async with self.vehicle_locks.hold(booking.vehicle_id):
            async with self.session_maker() as session:
                async with session.begin():
                    await db_operations.get_vehicle(session, booking.vehicle_id, for_update=True)
                    booking = await db_operations.get_booking(session, booking_id, for_update=True)
                    if not booking:
                        raise NotFoundError("Booking not found")

                    if booking.owner_id != owner_id:
                        raise BadRequestError("You can only approve your own bookings")

                    if booking.status != BookingStatus.PENDING:
                        raise BadRequestError("Only pending bookings can be approved")

                    conflicts = await db_operations.find_conflicting_bookings(
                        session,
                        booking.vehicle_id,
                        booking.start_time,
                        booking.end_time,
                        statuses=COMMITTED_BOOKING_STATUSES,
                        exclude_booking_id=booking.id,
                    )
                    if conflicts:
                        raise BadRequestError("Vehicle is no longer available for this time slot")

                    booking.status = BookingStatus.CONFIRMED
                    booking.confirmed_at = self.clock()

        logger.info(f"Booking {booking_id} approved by owner {owner_id}")

        self.events.publish(
            BookingApproved(
                booking_id=booking.id,
                renter_id=booking.renter_id,
                owner_id=owner_id,
                vehicle_id=booking.vehicle_id,
            )
        )
        return booking

    async def reject_booking(self, booking_id: str, owner_id: str, reason: str) -> Booking:
        async with self.session_maker() as session:
            async with session.begin():
                booking = await db_operations.get_booking(session, booking_id, for_update=True)
                if not booking:
                    raise NotFoundError("Booking not found")

                if booking.owner_id != owner_id:
                    raise BadRequestError("You can only reject your own bookings")

                if booking.status != BookingStatus.PENDING:
                    raise BadRequestError("Only pending bookings can be rejected")

                booking.status = BookingStatus.REJECTED
                booking.cancellation_reason = reason
                booking.cancelled_at = self.clock()

        logger.info(f"Booking {booking_id} rejected by owner {owner_id}")

        self.events.publish(
            BookingRejected(
                booking_id=booking.id,
                renter_id=booking.renter_id,
                owner_id=owner_id,
                reason=reason,
            )
        )
        return booking
