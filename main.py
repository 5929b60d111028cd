from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from booking_service import BookingService
from config import CORS_ORIGINS, DATABASE_URL, LOG_DATE_FORMAT, LOG_FORMAT, LOG_LEVEL
from database import build_engine, build_session_maker, close_db, init_db
from errors import RentalError
from events import EventBus
from gateway import NotificationGateway
from listeners import BookingEventListener
from locking import VehicleLocks
from notification_service import NotificationService
from payment_service import PaymentService
from push_client import PushClient
from review_service import ReviewService
from routes import router
from trip_service import TripService
from vehicle_service import VehicleDirectory

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format=LOG_FORMAT,
    datefmt=LOG_DATE_FORMAT
)
logger = logging.getLogger(__name__)


def create_app(database_url: Optional[str] = None, push_client: Optional[PushClient] = None) -> FastAPI:
    engine = build_engine(database_url or DATABASE_URL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db(engine)
        await app.state.event_bus.start()
        logger.info("Rental API started")
        yield
        await app.state.event_bus.stop()
        await close_db(engine)
        logger.info("Rental API stopped")

    app = FastAPI(
        title="E-Motorbike Rental API",
        description="Bookings, trips, payments and real-time notifications for peer-to-peer vehicle rental",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RentalError)
    async def rental_error_handler(request: Request, exc: RentalError):
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": type(exc).__name__, "detail": exc.message},
        )

    session_maker = build_session_maker(engine)
    event_bus = EventBus()
    booking_service = BookingService(session_maker, event_bus, VehicleLocks())
    gateway = NotificationGateway(booking_access=booking_service.is_party)
    notification_service = NotificationService(session_maker, push_client=push_client)

    app.state.engine = engine
    app.state.session_maker = session_maker
    app.state.event_bus = event_bus
    app.state.gateway = gateway
    app.state.notification_service = notification_service
    app.state.vehicle_directory = VehicleDirectory(session_maker)
    app.state.booking_service = booking_service
    app.state.trip_service = TripService(session_maker)
    app.state.payment_service = PaymentService(session_maker)
    app.state.review_service = ReviewService(session_maker)

    BookingEventListener(notification_service, gateway).register(event_bus)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
