"""
Database models for the application.
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


def utc_now():
    """Get current UTC datetime with timezone awareness."""
    return datetime.now(timezone.utc)


def new_id():
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC datetime column.

    SQLite drops tzinfo on storage, so values are normalised to UTC before
    binding and re-tagged as UTC when loaded.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class VehicleType(str, enum.Enum):
    ELECTRIC_SCOOTER = "ELECTRIC_SCOOTER"
    ELECTRIC_MOTORCYCLE = "ELECTRIC_MOTORCYCLE"
    ELECTRIC_BIKE = "ELECTRIC_BIKE"


class VehicleStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    RENTED = "RENTED"
    MAINTENANCE = "MAINTENANCE"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    REJECTED = "REJECTED"
    LOCKED = "LOCKED"
    UNAVAILABLE = "UNAVAILABLE"


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


# Bookings that still hold their window on the vehicle
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.ONGOING)
# Bookings that block an approval
COMMITTED_BOOKING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.ONGOING)


class TripStatus(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, enum.Enum):
    VNPAY = "VNPAY"
    MOMO = "MOMO"
    CREDIT_CARD = "CREDIT_CARD"
    CASH = "CASH"


class NotificationType(str, enum.Enum):
    BOOKING_REQUEST = "BOOKING_REQUEST"
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    BOOKING_REJECTED = "BOOKING_REJECTED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    TRIP_STARTED = "TRIP_STARTED"
    TRIP_COMPLETED = "TRIP_COMPLETED"
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    SYSTEM_ALERT = "SYSTEM_ALERT"


class Vehicle(Base):
    """Vehicle listing, owned by the catalog and read by the booking engine."""
    __tablename__ = "vehicles"

    id = Column(String, primary_key=True, default=new_id)
    owner_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(Enum(VehicleType, native_enum=False), nullable=False)
    brand = Column(String, nullable=False)
    model = Column(String, nullable=False)
    year = Column(Integer, nullable=False)
    license_plate = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    price_per_hour = Column(Float, nullable=False)
    price_per_day = Column(Float, nullable=False)
    deposit = Column(Float, nullable=False, default=0.0)
    status = Column(Enum(VehicleStatus, native_enum=False), nullable=False, default=VehicleStatus.AVAILABLE, index=True)
    is_available = Column(Boolean, nullable=False, default=True, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(String, nullable=False)
    total_trips = Column(Integer, nullable=False, default=0)
    rating = Column(Float, nullable=False, default=0.0)
    review_count = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, default=utc_now)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now)


class Booking(Base):
    """A renter's request for the half-open window [start_time, end_time)."""
    __tablename__ = "bookings"

    id = Column(String, primary_key=True, default=new_id)
    renter_id = Column(String, nullable=False, index=True)
    owner_id = Column(String, nullable=False, index=True)
    vehicle_id = Column(String, ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum(BookingStatus, native_enum=False), nullable=False, default=BookingStatus.PENDING, index=True)
    start_time = Column(UTCDateTime, nullable=False, index=True)
    end_time = Column(UTCDateTime, nullable=False)
    total_price = Column(Float, nullable=False)
    deposit = Column(Float, nullable=False, default=0.0)
    notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utc_now)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now)
    confirmed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)


class Trip(Base):
    """Physical execution of a confirmed booking."""
    __tablename__ = "trips"

    id = Column(String, primary_key=True, default=new_id)
    booking_id = Column(String, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)
    renter_id = Column(String, nullable=False, index=True)
    vehicle_id = Column(String, nullable=False, index=True)
    status = Column(Enum(TripStatus, native_enum=False), nullable=False, default=TripStatus.NOT_STARTED, index=True)
    start_latitude = Column(Float, nullable=True)
    start_longitude = Column(Float, nullable=True)
    start_address = Column(String, nullable=True)
    end_latitude = Column(Float, nullable=True)
    end_longitude = Column(Float, nullable=True)
    end_address = Column(String, nullable=True)
    distance_traveled = Column(Float, nullable=True)
    duration = Column(Integer, nullable=True)
    start_battery = Column(Float, nullable=True)
    end_battery = Column(Float, nullable=True)
    has_issues = Column(Boolean, nullable=False, default=False)
    issue_description = Column(Text, nullable=True)
    started_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utc_now)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=new_id)
    booking_id = Column(String, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)
    payer_id = Column(String, nullable=False, index=True)
    receiver_id = Column(String, nullable=False, index=True)
    amount = Column(Float, nullable=False)
    platform_fee = Column(Float, nullable=False)
    owner_amount = Column(Float, nullable=False)
    method = Column(Enum(PaymentMethod, native_enum=False), nullable=False)
    status = Column(Enum(PaymentStatus, native_enum=False), nullable=False, default=PaymentStatus.PENDING, index=True)
    transaction_id = Column(String, nullable=True)
    created_at = Column(UTCDateTime, default=utc_now)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now)
    paid_at = Column(UTCDateTime, nullable=True)


class Review(Base):
    __tablename__ = "reviews"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    vehicle_id = Column(String, ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utc_now)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=new_id)
    receiver_id = Column(String, nullable=False, index=True)
    sender_id = Column(String, nullable=True)
    type = Column(Enum(NotificationType, native_enum=False), nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    booking_id = Column(String, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(UTCDateTime, default=utc_now)
    read_at = Column(UTCDateTime, nullable=True)


class DeviceToken(Base):
    """Mobile push token, one active row per user and platform."""
    __tablename__ = "fcm_tokens"
    __table_args__ = (UniqueConstraint("user_id", "platform", name="fcm_tokens_user_platform_key"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    token = Column(String, nullable=False)
    platform = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, default=utc_now)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now)
