"""
API routes/endpoints for the application.
"""
import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, WebSocket, WebSocketDisconnect

from auth import get_current_user_id, get_websocket_user_id
from booking_service import BookingService
from gateway import NotificationGateway
from models import BookingStatus
from notification_service import NotificationService
from payment_service import PaymentService
from review_service import ReviewService
from schemas import (
    BookingResponse,
    CreateBookingRequest,
    CreatePaymentRequest,
    CreateReviewRequest,
    CreateVehicleRequest,
    EndTripRequest,
    MarkAsReadRequest,
    NotificationListResponse,
    NotificationResponse,
    PaymentResponse,
    ReasonRequest,
    RegisterDeviceTokenRequest,
    ReportIssueRequest,
    ReviewResponse,
    ScheduleSlot,
    StartTripRequest,
    TripResponse,
    UnreadCountResponse,
    UnregisterDeviceTokenRequest,
    UpdateAvailabilityRequest,
    UpdateVehicleStatusRequest,
    VehicleResponse,
)
from trip_service import TripService
from vehicle_service import VehicleDirectory

logger = logging.getLogger(__name__)

router = APIRouter()


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.booking_service


def get_trip_service(request: Request) -> TripService:
    return request.app.state.trip_service


def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payment_service


def get_review_service(request: Request) -> ReviewService:
    return request.app.state.review_service


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.notification_service


def get_vehicle_directory(request: Request) -> VehicleDirectory:
    return request.app.state.vehicle_directory


@router.get("/")
async def root():
    return {"message": "E-Motorbike Rental API", "status": "ok"}


# ---------- Vehicles ----------
@router.post("/vehicles", response_model=VehicleResponse, status_code=201, tags=["vehicles"])
async def create_vehicle(
    payload: CreateVehicleRequest,
    user_id: str = Depends(get_current_user_id),
    vehicles: VehicleDirectory = Depends(get_vehicle_directory),
):
    return await vehicles.create_vehicle(user_id, payload)


@router.get("/vehicles/{vehicle_id}", response_model=VehicleResponse, tags=["vehicles"])
async def get_vehicle(vehicle_id: str, vehicles: VehicleDirectory = Depends(get_vehicle_directory)):
    return await vehicles.get_vehicle(vehicle_id)


@router.patch("/vehicles/{vehicle_id}/status", response_model=VehicleResponse, tags=["vehicles"])
async def update_vehicle_status(
    vehicle_id: str,
    payload: UpdateVehicleStatusRequest,
    user_id: str = Depends(get_current_user_id),
    vehicles: VehicleDirectory = Depends(get_vehicle_directory),
):
    return await vehicles.update_status(user_id, vehicle_id, payload.status)


@router.patch("/vehicles/{vehicle_id}/availability", response_model=VehicleResponse, tags=["vehicles"])
async def update_vehicle_availability(
    vehicle_id: str,
    payload: UpdateAvailabilityRequest,
    user_id: str = Depends(get_current_user_id),
    vehicles: VehicleDirectory = Depends(get_vehicle_directory),
):
    return await vehicles.set_availability(user_id, vehicle_id, payload.is_available)


# ---------- Bookings (renter) ----------
@router.post("/bookings", response_model=BookingResponse, status_code=201, tags=["bookings"])
async def create_booking(
    payload: CreateBookingRequest,
    user_id: str = Depends(get_current_user_id),
    bookings: BookingService = Depends(get_booking_service),
):
    return await bookings.create_booking(user_id, payload)


@router.get("/bookings", response_model=List[BookingResponse], tags=["bookings"])
async def list_my_bookings(
    status: Optional[BookingStatus] = Query(None, description="Filter by booking status"),
    user_id: str = Depends(get_current_user_id),
    bookings: BookingService = Depends(get_booking_service),
):
    return await bookings.get_renter_bookings(user_id, status)


@router.get("/bookings/upcoming", response_model=List[BookingResponse], tags=["bookings"])
async def list_upcoming_bookings(
    user_id: str = Depends(get_current_user_id),
    bookings: BookingService = Depends(get_booking_service),
):
    return await bookings.get_upcoming_bookings(user_id)


@router.get("/bookings/history", response_model=List[BookingResponse], tags=["bookings"])
async def list_booking_history(
    user_id: str = Depends(get_current_user_id),
    bookings: BookingService = Depends(get_booking_service),
):
    return await bookings.get_booking_history(user_id)


@router.get("/bookings/vehicle/{vehicle_id}/schedule", response_model=List[ScheduleSlot], tags=["bookings"])
async def get_vehicle_schedule(vehicle_id: str, bookings: BookingService = Depends(get_booking_service)):
    return await bookings.get_vehicle_schedule(vehicle_id)


@router.get("/bookings/{booking_id}", response_model=BookingResponse, tags=["bookings"])
async def get_booking(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    bookings: BookingService = Depends(get_booking_service),
):
    return await bookings.get_booking_by_id(booking_id, user_id)


@router.patch("/bookings/{booking_id}/cancel", response_model=BookingResponse, tags=["bookings"])
async def cancel_booking(
    booking_id: str,
    payload: ReasonRequest,
    user_id: str = Depends(get_current_user_id),
    bookings: BookingService = Depends(get_booking_service),
):
    return await bookings.cancel_booking(booking_id, user_id, payload.reason)


# ---------- Bookings (owner) ----------
@router.get("/owner/bookings", response_model=List[BookingResponse], tags=["owner"])
async def list_owner_bookings(
    status: Optional[BookingStatus] = Query(None, description="Filter by booking status"),
    user_id: str = Depends(get_current_user_id),
    bookings: BookingService = Depends(get_booking_service),
):
    return await bookings.get_owner_bookings(user_id, status)


@router.get("/owner/bookings/pending", response_model=List[BookingResponse], tags=["owner"])
async def list_pending_bookings(
    user_id: str = Depends(get_current_user_id),
    bookings: BookingService = Depends(get_booking_service),
):
    return await bookings.get_pending_bookings(user_id)


@router.get("/owner/bookings/{booking_id}", response_model=BookingResponse, tags=["owner"])
async def get_owner_booking(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    bookings: BookingService = Depends(get_booking_service),
):
    return await bookings.get_owner_booking_by_id(booking_id, user_id)


@router.patch("/owner/bookings/{booking_id}/approve", response_model=BookingResponse, tags=["owner"])
async def approve_booking(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    bookings: BookingService = Depends(get_booking_service),
):
    return await bookings.approve_booking(booking_id, user_id)


@router.patch("/owner/bookings/{booking_id}/reject", response_model=BookingResponse, tags=["owner"])
async def reject_booking(
    booking_id: str,
    payload: ReasonRequest,
    user_id: str = Depends(get_current_user_id),
    bookings: BookingService = Depends(get_booking_service),
):
    return await bookings.reject_booking(booking_id, user_id, payload.reason)


# ---------- Trips ----------
@router.post("/trips/start", response_model=TripResponse, status_code=201, tags=["trips"])
async def start_trip(
    payload: StartTripRequest,
    user_id: str = Depends(get_current_user_id),
    trips: TripService = Depends(get_trip_service),
):
    return await trips.start_trip(user_id, payload)


@router.get("/trips/active", response_model=Optional[TripResponse], tags=["trips"])
async def get_active_trip(
    user_id: str = Depends(get_current_user_id),
    trips: TripService = Depends(get_trip_service),
):
    return await trips.get_active_trip(user_id)


@router.get("/trips/history", response_model=List[TripResponse], tags=["trips"])
async def get_trip_history(
    user_id: str = Depends(get_current_user_id),
    trips: TripService = Depends(get_trip_service),
):
    return await trips.get_trip_history(user_id)


@router.get("/trips/{trip_id}", response_model=TripResponse, tags=["trips"])
async def get_trip(
    trip_id: str,
    user_id: str = Depends(get_current_user_id),
    trips: TripService = Depends(get_trip_service),
):
    return await trips.get_trip_by_id(trip_id, user_id)


@router.patch("/trips/{trip_id}/end", response_model=TripResponse, tags=["trips"])
async def end_trip(
    trip_id: str,
    payload: EndTripRequest,
    user_id: str = Depends(get_current_user_id),
    trips: TripService = Depends(get_trip_service),
):
    return await trips.end_trip(trip_id, user_id, payload)


@router.patch("/trips/{trip_id}/report-issue", response_model=TripResponse, tags=["trips"])
async def report_trip_issue(
    trip_id: str,
    payload: ReportIssueRequest,
    user_id: str = Depends(get_current_user_id),
    trips: TripService = Depends(get_trip_service),
):
    return await trips.report_issue(trip_id, user_id, payload.issue_description)


# ---------- Payments ----------
@router.post("/payments", response_model=PaymentResponse, status_code=201, tags=["payments"])
async def create_payment(
    payload: CreatePaymentRequest,
    user_id: str = Depends(get_current_user_id),
    payments: PaymentService = Depends(get_payment_service),
):
    return await payments.create_payment(user_id, payload.booking_id, payload.method)


@router.get("/payments/booking/{booking_id}", response_model=Optional[PaymentResponse], tags=["payments"])
async def get_payment_for_booking(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    payments: PaymentService = Depends(get_payment_service),
):
    return await payments.get_payment_by_booking_id(booking_id, user_id)


@router.get("/payments/{payment_id}", response_model=PaymentResponse, tags=["payments"])
async def get_payment(
    payment_id: str,
    user_id: str = Depends(get_current_user_id),
    payments: PaymentService = Depends(get_payment_service),
):
    return await payments.get_payment_by_id(payment_id, user_id)


@router.post("/payments/{payment_id}/simulate-success", response_model=PaymentResponse, tags=["payments"])
async def simulate_payment_success(
    payment_id: str,
    user_id: str = Depends(get_current_user_id),
    payments: PaymentService = Depends(get_payment_service),
):
    await payments.get_payment_by_id(payment_id, user_id)
    return await payments.simulate_payment_success(payment_id)


# ---------- Reviews ----------
@router.post("/reviews", response_model=ReviewResponse, status_code=201, tags=["reviews"])
async def create_review(
    payload: CreateReviewRequest,
    user_id: str = Depends(get_current_user_id),
    reviews: ReviewService = Depends(get_review_service),
):
    return await reviews.create_review(user_id, payload.vehicle_id, payload.rating, payload.comment)


@router.get("/reviews/vehicle/{vehicle_id}", response_model=List[ReviewResponse], tags=["reviews"])
async def list_vehicle_reviews(vehicle_id: str, reviews: ReviewService = Depends(get_review_service)):
    return await reviews.get_vehicle_reviews(vehicle_id)


# ---------- Notifications ----------
@router.get("/notifications", response_model=NotificationListResponse, tags=["notifications"])
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
):
    items, unread_count = await notifications.get_user_notifications(user_id, limit, offset)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in items],
        unread_count=unread_count,
    )


@router.get("/notifications/unread-count", response_model=UnreadCountResponse, tags=["notifications"])
async def get_unread_count(
    user_id: str = Depends(get_current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
):
    return UnreadCountResponse(count=await notifications.get_unread_count(user_id))


@router.patch("/notifications/read", status_code=204, tags=["notifications"])
async def mark_notifications_read(
    payload: MarkAsReadRequest,
    user_id: str = Depends(get_current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
):
    await notifications.mark_as_read(user_id, payload.notification_ids)
    return Response(status_code=204)


@router.patch("/notifications/read-all", status_code=204, tags=["notifications"])
async def mark_all_notifications_read(
    user_id: str = Depends(get_current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
):
    await notifications.mark_all_as_read(user_id)
    return Response(status_code=204)


@router.post("/notifications/fcm-token", status_code=204, tags=["notifications"])
async def register_device_token(
    payload: RegisterDeviceTokenRequest,
    user_id: str = Depends(get_current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
):
    await notifications.register_device_token(user_id, payload.token, payload.platform)
    return Response(status_code=204)


@router.delete("/notifications/fcm-token", status_code=204, tags=["notifications"])
async def unregister_device_token(
    payload: UnregisterDeviceTokenRequest,
    user_id: str = Depends(get_current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
):
    await notifications.unregister_device_token(user_id, payload.token)
    return Response(status_code=204)


@router.delete("/notifications/{notification_id}", status_code=204, tags=["notifications"])
async def delete_notification(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
):
    await notifications.delete_notification(user_id, notification_id)
    return Response(status_code=204)


# ---------- Real-time channel ----------
@router.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket):
    gateway: NotificationGateway = websocket.app.state.gateway
    user_id = get_websocket_user_id(websocket)
    if not user_id:
        logger.warning("WebSocket rejected: no user id provided")
        await websocket.close(code=1008)
        return

    connection_id = await gateway.connect(websocket, user_id)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                # Answered with an error frame; the session stays open
                message = None
            await gateway.handle_message(connection_id, message)
    except WebSocketDisconnect:
        pass
    finally:
        gateway.disconnect(connection_id)
