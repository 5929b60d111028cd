import pytest

from errors import BadRequestError, ConflictError, NotFoundError
from models import PaymentMethod, PaymentStatus
from payment_service import PaymentService

from tests.factories import OTHER_RENTER, OWNER, RENTER, booking_request

pytestmark = pytest.mark.anyio


@pytest.fixture
def payments(session_maker, clock):
    return PaymentService(session_maker, fee_rate=0.15, clock=clock)


async def test_payment_splits_platform_fee(payments, bookings, vehicle):
    booking = await bookings.create_booking(RENTER, booking_request(vehicle.id, hours=25))
    await bookings.approve_booking(booking.id, OWNER)

    payment = await payments.create_payment(RENTER, booking.id, PaymentMethod.MOMO)

    # 2 days at 300 plus the 100 deposit
    assert payment.amount == 700.0
    assert payment.platform_fee == pytest.approx(105.0)
    assert payment.owner_amount == pytest.approx(595.0)
    assert payment.payer_id == RENTER
    assert payment.receiver_id == OWNER
    assert payment.status == PaymentStatus.PENDING


async def test_payment_requires_confirmed_booking(payments, bookings, vehicle):
    booking = await bookings.create_booking(RENTER, booking_request(vehicle.id))

    with pytest.raises(BadRequestError, match="confirmed"):
        await payments.create_payment(RENTER, booking.id, PaymentMethod.CASH)


async def test_payment_by_non_renter_or_missing_booking(payments, bookings, vehicle):
    booking = await bookings.create_booking(RENTER, booking_request(vehicle.id))
    await bookings.approve_booking(booking.id, OWNER)

    with pytest.raises(BadRequestError):
        await payments.create_payment(OTHER_RENTER, booking.id, PaymentMethod.CASH)
    with pytest.raises(NotFoundError):
        await payments.create_payment(RENTER, "missing", PaymentMethod.CASH)


async def test_second_payment_conflicts(payments, bookings, vehicle):
    booking = await bookings.create_booking(RENTER, booking_request(vehicle.id))
    await bookings.approve_booking(booking.id, OWNER)
    await payments.create_payment(RENTER, booking.id, PaymentMethod.VNPAY)

    with pytest.raises(ConflictError):
        await payments.create_payment(RENTER, booking.id, PaymentMethod.VNPAY)


async def test_simulated_success_and_reads(payments, bookings, vehicle, clock):
    booking = await bookings.create_booking(RENTER, booking_request(vehicle.id))
    await bookings.approve_booking(booking.id, OWNER)
    payment = await payments.create_payment(RENTER, booking.id, PaymentMethod.CREDIT_CARD)

    completed = await payments.simulate_payment_success(payment.id)

    assert completed.status == PaymentStatus.COMPLETED
    assert completed.paid_at == clock()
    assert completed.transaction_id == f"SIM_{int(clock().timestamp() * 1000)}"

    assert (await payments.get_payment_by_id(payment.id, OWNER)).id == payment.id
    assert (await payments.get_payment_by_booking_id(booking.id, RENTER)).id == payment.id
    with pytest.raises(NotFoundError):
        await payments.get_payment_by_id(payment.id, OTHER_RENTER)
    with pytest.raises(NotFoundError):
        await payments.simulate_payment_success("missing")
