"""
Request and response schemas.

JSON bodies use camelCase; attributes stay snake_case so the same models
validate from ORM rows.
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models import (
    BookingStatus,
    NotificationType,
    PaymentMethod,
    PaymentStatus,
    TripStatus,
    VehicleStatus,
    VehicleType,
)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------- Vehicles ----------
class CreateVehicleRequest(ApiModel):
    name: str = Field(..., min_length=1)
    type: VehicleType
    brand: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    year: int = Field(..., ge=1990, le=2100)
    license_plate: str = Field(..., min_length=1)
    description: Optional[str] = None
    price_per_hour: float = Field(..., gt=0)
    price_per_day: float = Field(..., gt=0)
    deposit: float = Field(0.0, ge=0)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str = Field(..., min_length=1)


class UpdateVehicleStatusRequest(ApiModel):
    status: VehicleStatus


class UpdateAvailabilityRequest(ApiModel):
    is_available: bool


class VehicleResponse(ApiModel):
    id: str
    owner_id: str
    name: str
    type: VehicleType
    brand: str
    model: str
    year: int
    license_plate: str
    description: Optional[str] = None
    price_per_hour: float
    price_per_day: float
    deposit: float
    status: VehicleStatus
    is_available: bool
    latitude: float
    longitude: float
    address: str
    total_trips: int
    rating: float
    review_count: int


# ---------- Bookings ----------
class CreateBookingRequest(ApiModel):
    vehicle_id: str = Field(..., min_length=1)
    start_time: datetime
    end_time: datetime
    notes: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def normalise_timezone(cls, value: datetime) -> datetime:
        return _as_utc(value)


class ReasonRequest(ApiModel):
    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("reason must not be blank")
        return value.strip()


class BookingResponse(ApiModel):
    id: str
    renter_id: str
    owner_id: str
    vehicle_id: str
    status: BookingStatus
    start_time: datetime
    end_time: datetime
    total_price: float
    deposit: float
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class ScheduleSlot(ApiModel):
    """Occupied window on a vehicle, without the parties' identities."""
    id: str
    vehicle_id: str
    status: BookingStatus
    start_time: datetime
    end_time: datetime


# ---------- Trips ----------
class StartTripRequest(ApiModel):
    booking_id: str = Field(..., min_length=1)
    start_latitude: float = Field(..., ge=-90, le=90)
    start_longitude: float = Field(..., ge=-180, le=180)
    start_battery: float = Field(..., ge=0, le=100)
    start_address: Optional[str] = None


class EndTripRequest(ApiModel):
    end_latitude: float = Field(..., ge=-90, le=90)
    end_longitude: float = Field(..., ge=-180, le=180)
    end_battery: float = Field(..., ge=0, le=100)
    end_address: Optional[str] = None
    has_issues: bool = False
    issue_description: Optional[str] = None


class ReportIssueRequest(ApiModel):
    issue_description: str = Field(..., min_length=1, max_length=2000)


class TripResponse(ApiModel):
    id: str
    booking_id: str
    renter_id: str
    vehicle_id: str
    status: TripStatus
    start_latitude: Optional[float] = None
    start_longitude: Optional[float] = None
    start_address: Optional[str] = None
    end_latitude: Optional[float] = None
    end_longitude: Optional[float] = None
    end_address: Optional[str] = None
    distance_traveled: Optional[float] = None
    duration: Optional[int] = None
    start_battery: Optional[float] = None
    end_battery: Optional[float] = None
    has_issues: bool
    issue_description: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


# ---------- Payments ----------
class CreatePaymentRequest(ApiModel):
    booking_id: str = Field(..., min_length=1)
    method: PaymentMethod


class PaymentResponse(ApiModel):
    id: str
    booking_id: str
    payer_id: str
    receiver_id: str
    amount: float
    platform_fee: float
    owner_amount: float
    method: PaymentMethod
    status: PaymentStatus
    transaction_id: Optional[str] = None
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None


# ---------- Reviews ----------
class CreateReviewRequest(ApiModel):
    vehicle_id: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)


class ReviewResponse(ApiModel):
    id: str
    user_id: str
    vehicle_id: str
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None


# ---------- Notifications ----------
class NotificationResponse(ApiModel):
    id: str
    receiver_id: str
    sender_id: Optional[str] = None
    type: NotificationType
    title: str
    message: str
    booking_id: Optional[str] = None
    is_read: bool
    created_at: Optional[datetime] = None
    read_at: Optional[datetime] = None


class NotificationListResponse(ApiModel):
    notifications: List[NotificationResponse]
    unread_count: int


class UnreadCountResponse(ApiModel):
    count: int


class MarkAsReadRequest(ApiModel):
    notification_ids: List[str] = Field(..., min_length=1)


class RegisterDeviceTokenRequest(ApiModel):
    token: str = Field(..., min_length=1)
    platform: Literal["android", "ios"]


class UnregisterDeviceTokenRequest(ApiModel):
    token: str = Field(..., min_length=1)


def to_payload(model: ApiModel) -> dict:
    """JSON-ready camelCase dict, used for WebSocket frames and push data."""
    return model.model_dump(mode="json", by_alias=True)
