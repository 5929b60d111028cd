"""
Database operations for vehicles, bookings, trips and payments.

None of these helpers commit - the caller owns the transaction.
"""
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models import (
    Booking,
    BookingStatus,
    Notification,
    Payment,
    Review,
    Trip,
    TripStatus,
    Vehicle,
)


def overlap_clause(start_time: datetime, end_time: datetime):
    """SQL form of calculations.windows_overlap against Booking rows."""
    return or_(
        # Existing booking starts inside the new window
        and_(Booking.start_time >= start_time, Booking.start_time < end_time),
        # Existing booking ends inside the new window
        and_(Booking.end_time > start_time, Booking.end_time <= end_time),
        # Existing booking covers the whole new window
        and_(Booking.start_time <= start_time, Booking.end_time >= end_time),
    )


async def get_vehicle(session: AsyncSession, vehicle_id: str, for_update: bool = False) -> Optional[Vehicle]:
    stmt = select(Vehicle).where(Vehicle.id == vehicle_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_vehicle_by_plate(session: AsyncSession, license_plate: str) -> Optional[Vehicle]:
    result = await session.execute(select(Vehicle).where(Vehicle.license_plate == license_plate))
    return result.scalar_one_or_none()


async def increment_vehicle_trips(session: AsyncSession, vehicle_id: str) -> None:
    await session.execute(
        update(Vehicle)
        .where(Vehicle.id == vehicle_id)
        .values(total_trips=Vehicle.total_trips + 1)
    )


async def get_booking(session: AsyncSession, booking_id: str, for_update: bool = False) -> Optional[Booking]:
    stmt = select(Booking).where(Booking.id == booking_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def find_conflicting_bookings(
    session: AsyncSession,
    vehicle_id: str,
    start_time: datetime,
    end_time: datetime,
    statuses: Iterable[BookingStatus],
    exclude_booking_id: Optional[str] = None,
) -> List[Booking]:
    """
    Bookings of a vehicle in one of `statuses` whose window overlaps
    [start_time, end_time).
    """
    stmt = select(Booking).where(
        Booking.vehicle_id == vehicle_id,
        Booking.status.in_(list(statuses)),
        overlap_clause(start_time, end_time),
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_bookings(
    session: AsyncSession,
    *criteria,
    order_by=None,
    limit: Optional[int] = None,
) -> List[Booking]:
    stmt = select(Booking).where(*criteria)
    if order_by is not None:
        stmt = stmt.order_by(order_by)
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_trip(session: AsyncSession, trip_id: str, for_update: bool = False) -> Optional[Trip]:
    stmt = select(Trip).where(Trip.id == trip_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_trip_for_booking(session: AsyncSession, booking_id: str) -> Optional[Trip]:
    result = await session.execute(select(Trip).where(Trip.booking_id == booking_id))
    return result.scalar_one_or_none()


async def has_completed_trip(session: AsyncSession, renter_id: str, vehicle_id: str) -> bool:
    result = await session.execute(
        select(Trip.id)
        .where(
            Trip.renter_id == renter_id,
            Trip.vehicle_id == vehicle_id,
            Trip.status == TripStatus.COMPLETED,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def get_payment(session: AsyncSession, payment_id: str) -> Optional[Payment]:
    result = await session.execute(select(Payment).where(Payment.id == payment_id))
    return result.scalar_one_or_none()


async def get_payment_for_booking(session: AsyncSession, booking_id: str) -> Optional[Payment]:
    result = await session.execute(select(Payment).where(Payment.booking_id == booking_id))
    return result.scalar_one_or_none()


async def get_review(session: AsyncSession, user_id: str, vehicle_id: str) -> Optional[Review]:
    result = await session.execute(
        select(Review).where(Review.user_id == user_id, Review.vehicle_id == vehicle_id)
    )
    return result.scalar_one_or_none()


async def list_review_ratings(session: AsyncSession, vehicle_id: str) -> List[int]:
    result = await session.execute(select(Review.rating).where(Review.vehicle_id == vehicle_id))
    return list(result.scalars().all())


async def count_unread_notifications(session: AsyncSession, user_id: str) -> int:
    result = await session.execute(
        select(func.count(Notification.id)).where(
            Notification.receiver_id == user_id,
            Notification.is_read.is_(False),
        )
    )
    return result.scalar_one()
