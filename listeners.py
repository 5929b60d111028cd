"""
Booking event fan-out: notification rows, WebSocket push and booking-room
broadcasts.
"""
import logging

from events import BookingApproved, BookingCancelled, BookingCreated, BookingRejected, EventBus
from gateway import NotificationGateway
from models import BookingStatus, NotificationType
from notification_service import NotificationPayload, NotificationService
from schemas import NotificationResponse, to_payload

logger = logging.getLogger(__name__)


class BookingEventListener:
    def __init__(self, notification_service: NotificationService, gateway: NotificationGateway):
        self.notification_service = notification_service
        self.gateway = gateway

    def register(self, bus: EventBus) -> None:
        bus.subscribe(BookingCreated, self.handle_booking_created)
        bus.subscribe(BookingApproved, self.handle_booking_approved)
        bus.subscribe(BookingRejected, self.handle_booking_rejected)
        bus.subscribe(BookingCancelled, self.handle_booking_cancelled)

    async def _notify(self, payload: NotificationPayload, socket_event: str, extra: dict) -> None:
        """Persist, then push to the receiver's open sessions if any."""
        notification = await self.notification_service.create_notification(payload)

        if self.gateway.is_user_online(payload.receiver_id):
            await self.gateway.send_to_user(payload.receiver_id, socket_event, {
                "notification": to_payload(NotificationResponse.model_validate(notification)),
                "bookingId": payload.booking_id,
                **extra,
            })

    async def handle_booking_created(self, event: BookingCreated) -> None:
        logger.info(f"Handling booking.created event: {event.booking_id}")

        await self._notify(
            NotificationPayload(
                receiver_id=event.owner_id,
                sender_id=event.renter_id,
                type=NotificationType.BOOKING_REQUEST,
                title="New Booking Request",
                message="You have a new booking request for your vehicle",
                booking_id=event.booking_id,
                data={"vehicleId": event.vehicle_id},
            ),
            "booking_request",
            {},
        )

    async def handle_booking_approved(self, event: BookingApproved) -> None:
        logger.info(f"Handling booking.approved event: {event.booking_id}")

        await self._notify(
            NotificationPayload(
                receiver_id=event.renter_id,
                sender_id=event.owner_id,
                type=NotificationType.BOOKING_CONFIRMED,
                title="Booking Confirmed",
                message="Your booking request has been approved!",
                booking_id=event.booking_id,
                data={"vehicleId": event.vehicle_id},
            ),
            "booking_confirmed",
            {},
        )

        await self.gateway.broadcast_booking_update(event.booking_id, "booking_status_changed", {
            "bookingId": event.booking_id,
            "status": BookingStatus.CONFIRMED.value,
        })

    async def handle_booking_rejected(self, event: BookingRejected) -> None:
        logger.info(f"Handling booking.rejected event: {event.booking_id}")

        await self._notify(
            NotificationPayload(
                receiver_id=event.renter_id,
                sender_id=event.owner_id,
                type=NotificationType.BOOKING_REJECTED,
                title="Booking Rejected",
                message=f"Your booking request was rejected. Reason: {event.reason}",
                booking_id=event.booking_id,
            ),
            "booking_rejected",
            {"reason": event.reason},
        )

        await self.gateway.broadcast_booking_update(event.booking_id, "booking_status_changed", {
            "bookingId": event.booking_id,
            "status": BookingStatus.REJECTED.value,
            "reason": event.reason,
        })

    async def handle_booking_cancelled(self, event: BookingCancelled) -> None:
        logger.info(f"Handling booking.cancelled event: {event.booking_id}")

        # Notify whoever did not cancel
        if event.cancelled_by == "renter":
            receiver_id, sender_id = event.owner_id, event.renter_id
        else:
            receiver_id, sender_id = event.renter_id, event.owner_id

        await self._notify(
            NotificationPayload(
                receiver_id=receiver_id,
                sender_id=sender_id,
                type=NotificationType.BOOKING_CANCELLED,
                title="Booking Cancelled",
                message=f"Booking has been cancelled. Reason: {event.reason}",
                booking_id=event.booking_id,
            ),
            "booking_cancelled",
            {"reason": event.reason, "cancelledBy": event.cancelled_by},
        )

        await self.gateway.broadcast_booking_update(event.booking_id, "booking_status_changed", {
            "bookingId": event.booking_id,
            "status": BookingStatus.CANCELLED.value,
            "reason": event.reason,
            "cancelledBy": event.cancelled_by,
        })
