"""
Notification persistence, read tracking and device-token management.

The notifications table is the durable record; mobile push is attempted
after the row is written and its failures are only logged.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

import db_operations
from models import DeviceToken, Notification, NotificationType, utc_now
from push_client import PushClient, create_push_client

logger = logging.getLogger(__name__)


@dataclass
class NotificationPayload:
    receiver_id: str
    type: NotificationType
    title: str
    message: str
    sender_id: Optional[str] = None
    booking_id: Optional[str] = None
    data: Dict[str, str] = field(default_factory=dict)


class NotificationService:
    def __init__(
        self,
        session_maker: async_sessionmaker,
        push_client: Optional[PushClient] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_maker = session_maker
        self.push_client = push_client or create_push_client()
        self.clock = clock

    async def create_notification(self, payload: NotificationPayload) -> Notification:
        """Persist the notification, then try mobile push without failing on it."""
        async with self.session_maker() as session:
            async with session.begin():
                notification = Notification(
                    receiver_id=payload.receiver_id,
                    sender_id=payload.sender_id,
                    type=payload.type,
                    title=payload.title,
                    message=payload.message,
                    booking_id=payload.booking_id,
                    is_read=False,
                )
                session.add(notification)

        logger.info(f"Notification created: {notification.id} for user {payload.receiver_id}")

        try:
            await self.send_push_notification(payload)
        except Exception as e:
            logger.warning(f"Failed to send push notification to user {payload.receiver_id}: {e}")

        return notification

    async def send_push_notification(self, payload: NotificationPayload) -> None:
        if not self.push_client.enabled:
            logger.debug("Push not configured, skipping push notification")
            return

        async with self.session_maker() as session:
            result = await session.execute(
                select(DeviceToken.token).where(
                    DeviceToken.user_id == payload.receiver_id,
                    DeviceToken.is_active.is_(True),
                )
            )
            tokens = list(result.scalars().all())

        if not tokens:
            logger.debug(f"No device tokens found for user {payload.receiver_id}")
            return

        data = {"type": payload.type.value, "bookingId": payload.booking_id or "", **payload.data}
        failed_tokens = await self.push_client.send_multicast(tokens, payload.title, payload.message, data)

        if failed_tokens:
            await self.deactivate_tokens(failed_tokens)

    async def deactivate_tokens(self, tokens: List[str]) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                await session.execute(
                    update(DeviceToken)
                    .where(DeviceToken.token.in_(tokens))
                    .values(is_active=False, updated_at=self.clock())
                )
        logger.info(f"Deactivated {len(tokens)} invalid device tokens")

    async def register_device_token(self, user_id: str, token: str, platform: str) -> DeviceToken:
        """One token per user and platform; re-registering replaces and reactivates it."""
        async with self.session_maker() as session:
            async with session.begin():
                result = await session.execute(
                    select(DeviceToken).where(DeviceToken.user_id == user_id, DeviceToken.platform == platform)
                )
                device_token = result.scalar_one_or_none()
                if device_token:
                    device_token.token = token
                    device_token.is_active = True
                else:
                    device_token = DeviceToken(user_id=user_id, token=token, platform=platform, is_active=True)
                    session.add(device_token)

        logger.info(f"Device token registered for user {user_id} on {platform}")
        return device_token

    async def unregister_device_token(self, user_id: str, token: str) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                await session.execute(
                    update(DeviceToken)
                    .where(DeviceToken.user_id == user_id, DeviceToken.token == token)
                    .values(is_active=False, updated_at=self.clock())
                )

        logger.info(f"Device token unregistered for user {user_id}")

    async def get_user_notifications(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Notification], int]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Notification)
                .where(Notification.receiver_id == user_id)
                .order_by(Notification.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            notifications = list(result.scalars().all())
            unread_count = await db_operations.count_unread_notifications(session, user_id)

        return notifications, unread_count

    async def get_unread_count(self, user_id: str) -> int:
        async with self.session_maker() as session:
            return await db_operations.count_unread_notifications(session, user_id)

    async def mark_as_read(self, user_id: str, notification_ids: List[str]) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                await session.execute(
                    update(Notification)
                    .where(
                        Notification.id.in_(notification_ids),
                        Notification.receiver_id == user_id,
                    )
                    .values(is_read=True, read_at=self.clock())
                )

        logger.info(f"Marked {len(notification_ids)} notifications as read for user {user_id}")

    async def mark_all_as_read(self, user_id: str) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                await session.execute(
                    update(Notification)
                    .where(
                        Notification.receiver_id == user_id,
                        Notification.is_read.is_(False),
                    )
                    .values(is_read=True, read_at=self.clock())
                )

        logger.info(f"Marked all notifications as read for user {user_id}")

    async def delete_notification(self, user_id: str, notification_id: str) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                await session.execute(
                    delete(Notification).where(
                        Notification.id == notification_id,
                        Notification.receiver_id == user_id,
                    )
                )

        logger.info(f"Notification {notification_id} deleted")
