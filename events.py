"""
Booking lifecycle events and the in-process bus that carries them to the
notification fan-out.
"""
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Type

from config import EVENT_MAX_ATTEMPTS, EVENT_RETRY_DELAY

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingCreated:
    booking_id: str
    renter_id: str
    owner_id: str
    vehicle_id: str


@dataclass(frozen=True)
class BookingApproved:
    booking_id: str
    renter_id: str
    owner_id: str
    vehicle_id: str


@dataclass(frozen=True)
class BookingRejected:
    booking_id: str
    renter_id: str
    owner_id: str
    reason: str


@dataclass(frozen=True)
class BookingCancelled:
    booking_id: str
    renter_id: str
    owner_id: str
    reason: str
    cancelled_by: str = "renter"


Handler = Callable[[object], Awaitable[None]]


class EventBus:
    """
    Fire-and-forget message channel between the engines and their listeners.

    publish() only enqueues, so a slow or failing listener never affects the
    transaction that produced the event. A worker task delivers each event to
    every handler subscribed to its type, retrying a failing handler up to
    `max_attempts` times (at-least-once) before logging the event as dropped.
    """

    def __init__(self, max_attempts: int = EVENT_MAX_ATTEMPTS, retry_delay: float = EVENT_RETRY_DELAY):
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._handlers: Dict[Type, List[Handler]] = defaultdict(list)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    def subscribe(self, event_type: Type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event) -> None:
        self._queue.put_nowait(event)
        logger.debug(f"Published {type(event).__name__} (queue size: {self._queue.qsize()})")

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name="event-bus")
        logger.info("Event bus started")

    async def join(self) -> None:
        """Wait until every event published so far has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        if self._worker is None:
            return
        await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Event bus stopped")

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                for handler in list(self._handlers.get(type(event), [])):
                    await self._deliver(handler, event)
            finally:
                self._queue.task_done()

    async def _deliver(self, handler: Handler, event) -> None:
        name = type(event).__name__
        for attempt in range(1, self.max_attempts + 1):
            try:
                await handler(event)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    f"Handler {getattr(handler, '__name__', handler)} failed for {name} "
                    f"(attempt {attempt}/{self.max_attempts}): {e}"
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay * attempt)
        logger.error(f"Dropping {name} after {self.max_attempts} failed attempts: {event}")
