"""
Review resource and the tour rating aggregates it maintains.
"""

from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from natours.core.errors import BadRequestError, NotFoundError
from natours.core.logging import get_logger
from natours.core.metrics import rating_recomputations
from natours.models.review import Review
from natours.models.tour import DEFAULT_RATINGS_AVERAGE, Tour
from natours.schemas.review import ReviewCreate, ReviewResponse, ReviewUpdate
from natours.services.handler_factory import Resource

logger = get_logger(__name__)


async def require_tour(db: AsyncSession, values: dict[str, Any], record: Optional[Review]) -> dict[str, Any]:
    tour_id = values.get("tour_id")
    if tour_id is None:
        raise BadRequestError("Review must belong to a tour.")
    if await db.get(Tour, tour_id) is None:
        raise NotFoundError("No tour found with that ID")
    return values


async def require_author(db: AsyncSession, values: dict[str, Any], record: Optional[Review]) -> dict[str, Any]:
    if values.get("user_id") is None:
        raise BadRequestError("Review must belong to a user.")
    return values


async def calc_average_ratings(db: AsyncSession, tour_id: int) -> None:
    """Recompute ratings_quantity and ratings_average of one tour from its reviews."""
    result = await db.execute(
        select(func.count(Review.id), func.avg(Review.rating)).where(Review.tour_id == tour_id)
    )
    quantity, average = result.one()

    tour = await db.get(Tour, tour_id)
    if tour is None:
        return

    if quantity:
        tour.ratings_quantity = quantity
        tour.ratings_average = min(5.0, max(1.0, round(float(average), 1)))
    else:
        tour.ratings_quantity = 0
        tour.ratings_average = DEFAULT_RATINGS_AVERAGE
    await db.flush()

    rating_recomputations.inc()
    logger.info(
        "tour_ratings_recomputed",
        tour_id=tour_id,
        ratings_quantity=tour.ratings_quantity,
        ratings_average=tour.ratings_average,
    )


async def recompute_tour_ratings(db: AsyncSession, review: Review) -> None:
    await calc_average_ratings(db, review.tour_id)


reviews = Resource(
    model=Review,
    name="review",
    schema=ReviewResponse,
    create_schema=ReviewCreate,
    update_schema=ReviewUpdate,
    before_create=(require_tour, require_author),
    after_write=(recompute_tour_ratings,),
    after_delete=(recompute_tour_ratings,),
)


async def remove_reviews_by_author(db: AsyncSession, user: Any) -> None:
    """Delete a user's reviews ahead of the user and recompute every tour they rated."""
    result = await db.execute(select(Review).where(Review.user_id == user.id))
    authored = list(result.scalars().all())
    if not authored:
        return

    for review in authored:
        await db.delete(review)
    await db.flush()

    for tour_id in sorted({review.tour_id for review in authored}):
        await calc_average_ratings(db, tour_id)
    logger.info("author_reviews_removed", user_id=user.id, count=len(authored))
