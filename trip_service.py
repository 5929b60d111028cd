"""
Trip engine: the physical rental bound 1:1 to a confirmed booking.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

import db_operations
from calculations import calculate_distance, trip_duration_minutes
from config import HISTORY_LIMIT
from errors import BadRequestError, ConflictError, NotFoundError
from models import BookingStatus, Trip, TripStatus, utc_now
from schemas import EndTripRequest, StartTripRequest

logger = logging.getLogger(__name__)


class TripService:
    def __init__(
        self,
        session_maker: async_sessionmaker,
        clock: Callable[[], datetime] = utc_now,
        history_limit: int = HISTORY_LIMIT,
    ):
        self.session_maker = session_maker
        self.clock = clock
        self.history_limit = history_limit

    async def start_trip(self, renter_id: str, request: StartTripRequest) -> Trip:
        """Create the ONGOING trip and move the booking to ONGOING in one transaction."""
        logger.info(f"User {renter_id} starting trip for booking {request.booking_id}")

        now = self.clock()
        async with self.session_maker() as session:
            try:
                async with session.begin():
                    booking = await db_operations.get_booking(session, request.booking_id, for_update=True)
                    if not booking:
                        raise NotFoundError("Booking not found")

                    if booking.renter_id != renter_id:
                        raise BadRequestError("You can only start your own trips")

                    if booking.status != BookingStatus.CONFIRMED:
                        raise BadRequestError("Can only start trip for confirmed bookings")

                    if await db_operations.get_trip_for_booking(session, booking.id):
                        raise BadRequestError("Trip has already been started")

                    if now < booking.start_time:
                        raise BadRequestError("Cannot start trip before booking start time")

                    trip = Trip(
                        booking_id=booking.id,
                        renter_id=renter_id,
                        vehicle_id=booking.vehicle_id,
                        status=TripStatus.ONGOING,
                        start_latitude=request.start_latitude,
                        start_longitude=request.start_longitude,
                        start_address=request.start_address,
                        start_battery=request.start_battery,
                        started_at=now,
                    )
                    session.add(trip)
                    booking.status = BookingStatus.ONGOING
            except IntegrityError:
                # Lost the race on the unique booking_id
                raise ConflictError("Trip has already been started")

        logger.info(f"Trip {trip.id} started successfully")
        return trip

    async def end_trip(self, trip_id: str, renter_id: str, request: EndTripRequest) -> Trip:
        """
        Complete an ONGOING trip.

        Trip, booking and the vehicle's trip counter are written in one
        transaction.
        """
        logger.info(f"User {renter_id} ending trip {trip_id}")

        async with self.session_maker() as session:
            async with session.begin():
                trip = await db_operations.get_trip(session, trip_id, for_update=True)
                if not trip:
                    raise NotFoundError("Trip not found")

                if trip.renter_id != renter_id:
                    raise BadRequestError("You can only end your own trips")

                if trip.status != TripStatus.ONGOING:
                    raise BadRequestError("Can only end ongoing trips")

                if trip.started_at is None or trip.start_latitude is None or trip.start_longitude is None:
                    raise BadRequestError("Trip start data is missing")

                booking = await db_operations.get_booking(session, trip.booking_id, for_update=True)
                if not booking:
                    raise NotFoundError("Booking not found")

                end_time = self.clock()
                duration_minutes = trip_duration_minutes(trip.started_at, end_time)
                distance_traveled = calculate_distance(
                    trip.start_latitude,
                    trip.start_longitude,
                    request.end_latitude,
                    request.end_longitude,
                )

                trip.status = TripStatus.COMPLETED
                trip.end_latitude = request.end_latitude
                trip.end_longitude = request.end_longitude
                trip.end_address = request.end_address
                trip.end_battery = request.end_battery
                trip.distance_traveled = distance_traveled
                trip.duration = duration_minutes
                # Keep an issue filed during the trip unless the end request replaces it
                trip.has_issues = bool(trip.has_issues or request.has_issues)
                if request.issue_description is not None:
                    trip.issue_description = request.issue_description
                trip.completed_at = end_time

                booking.status = BookingStatus.COMPLETED

                await db_operations.increment_vehicle_trips(session, trip.vehicle_id)

        logger.info(
            f"Trip {trip_id} completed. Distance: {distance_traveled:.2f}km, Duration: {duration_minutes}min"
        )
        return trip

    async def report_issue(self, trip_id: str, renter_id: str, issue_description: str) -> Trip:
        async with self.session_maker() as session:
            async with session.begin():
                trip = await db_operations.get_trip(session, trip_id, for_update=True)
                if not trip:
                    raise NotFoundError("Trip not found")

                if trip.renter_id != renter_id:
                    raise BadRequestError("You can only report issues for your own trips")

                if trip.status != TripStatus.ONGOING:
                    raise BadRequestError("Can only report issues for ongoing trips")

                trip.has_issues = True
                trip.issue_description = issue_description

        logger.info(f"Issue reported for trip {trip_id}: {issue_description}")
        return trip

    async def get_trip_by_id(self, trip_id: str, user_id: str) -> Trip:
        async with self.session_maker() as session:
            trip = await db_operations.get_trip(session, trip_id)
            if not trip:
                raise NotFoundError("Trip not found")
            booking = await db_operations.get_booking(session, trip.booking_id)

        owner_id = booking.owner_id if booking else None
        if user_id not in (trip.renter_id, owner_id):
            raise NotFoundError("Trip not found")
        return trip

    async def get_active_trip(self, renter_id: str) -> Optional[Trip]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Trip)
                .where(Trip.renter_id == renter_id, Trip.status == TripStatus.ONGOING)
                .order_by(Trip.started_at.asc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_trip_history(self, renter_id: str) -> List[Trip]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Trip)
                .where(Trip.renter_id == renter_id, Trip.status == TripStatus.COMPLETED)
                .order_by(Trip.completed_at.desc())
                .limit(self.history_limit)
            )
            return list(result.scalars().all())
