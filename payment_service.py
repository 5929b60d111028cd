"""
Payment engine: platform fee split for confirmed bookings.

Gateway settlement is external; simulate_payment_success stands in for the
gateway callback during development.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

import db_operations
from calculations import calculate_fee_split
from config import PLATFORM_FEE_RATE
from errors import BadRequestError, ConflictError, NotFoundError
from models import BookingStatus, Payment, PaymentMethod, PaymentStatus, utc_now

logger = logging.getLogger(__name__)


class PaymentService:
    def __init__(
        self,
        session_maker: async_sessionmaker,
        fee_rate: float = PLATFORM_FEE_RATE,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_maker = session_maker
        self.fee_rate = fee_rate
        self.clock = clock

    async def create_payment(self, renter_id: str, booking_id: str, method: PaymentMethod) -> Payment:
        logger.info(f"User {renter_id} creating payment for booking {booking_id}")

        async with self.session_maker() as session:
            try:
                async with session.begin():
                    booking = await db_operations.get_booking(session, booking_id, for_update=True)
                    if not booking:
                        raise NotFoundError("Booking not found")

                    if booking.renter_id != renter_id:
                        raise BadRequestError("You can only pay for your own bookings")

                    if await db_operations.get_payment_for_booking(session, booking_id):
                        raise ConflictError("Payment already exists for this booking")

                    if booking.status != BookingStatus.CONFIRMED:
                        raise BadRequestError("Can only pay for confirmed bookings")

                    amount, platform_fee, owner_amount = calculate_fee_split(
                        booking.total_price, booking.deposit, self.fee_rate
                    )

                    payment = Payment(
                        booking_id=booking_id,
                        payer_id=renter_id,
                        receiver_id=booking.owner_id,
                        amount=amount,
                        platform_fee=platform_fee,
                        owner_amount=owner_amount,
                        method=method,
                        status=PaymentStatus.PENDING,
                    )
                    session.add(payment)
            except IntegrityError:
                raise ConflictError("Payment already exists for this booking")

        logger.info(f"Payment {payment.id} created. Amount: {amount} (platform fee: {platform_fee})")
        return payment

    async def get_payment_by_id(self, payment_id: str, user_id: str) -> Payment:
        async with self.session_maker() as session:
            payment = await db_operations.get_payment(session, payment_id)
        if not payment or user_id not in (payment.payer_id, payment.receiver_id):
            raise NotFoundError("Payment not found")
        return payment

    async def get_payment_by_booking_id(self, booking_id: str, user_id: str) -> Optional[Payment]:
        async with self.session_maker() as session:
            booking = await db_operations.get_booking(session, booking_id)
            if not booking or user_id not in (booking.renter_id, booking.owner_id):
                raise NotFoundError("Booking not found")
            return await db_operations.get_payment_for_booking(session, booking_id)

    async def simulate_payment_success(self, payment_id: str) -> Payment:
        async with self.session_maker() as session:
            async with session.begin():
                payment = await db_operations.get_payment(session, payment_id)
                if not payment:
                    raise NotFoundError("Payment not found")

                now = self.clock()
                payment.status = PaymentStatus.COMPLETED
                payment.paid_at = now
                payment.transaction_id = f"SIM_{int(now.timestamp() * 1000)}"

        logger.info(f"Payment {payment_id} completed (simulated)")
        return payment
