"""
Vehicle reviews, limited to renters who completed a trip on the vehicle.
"""
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

import db_operations
from calculations import average_rating
from errors import BadRequestError, NotFoundError
from models import Review

logger = logging.getLogger(__name__)


class ReviewService:
    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def create_review(self, user_id: str, vehicle_id: str, rating: int, comment: Optional[str] = None) -> Review:
        logger.info(f"User {user_id} creating review for vehicle {vehicle_id}")

        async with self.session_maker() as session:
            async with session.begin():
                vehicle = await db_operations.get_vehicle(session, vehicle_id, for_update=True)
                if not vehicle:
                    raise NotFoundError("Vehicle not found")

                if not await db_operations.has_completed_trip(session, user_id, vehicle_id):
                    raise BadRequestError("You can only review vehicles you have rented")

                if await db_operations.get_review(session, user_id, vehicle_id):
                    raise BadRequestError("You have already reviewed this vehicle")

                review = Review(user_id=user_id, vehicle_id=vehicle_id, rating=rating, comment=comment)
                session.add(review)
                await session.flush()

                ratings = await db_operations.list_review_ratings(session, vehicle_id)
                vehicle.rating, vehicle.review_count = average_rating(ratings)

        logger.info(f"Review {review.id} created successfully")
        return review

    async def get_vehicle_reviews(self, vehicle_id: str) -> List[Review]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Review).where(Review.vehicle_id == vehicle_id).order_by(Review.created_at.desc())
            )
            return list(result.scalars().all())
