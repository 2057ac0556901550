"""
Tour resource: processing pipeline, aggregate reports and geospatial lookups.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any, Optional

from slugify import slugify
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from natours.core.errors import BadRequestError
from natours.core.logging import get_logger
from natours.models.tour import Tour
from natours.models.user import User
from natours.schemas.tour import TourCreate, TourResponse, TourUpdate
from natours.services import geo
from natours.services.handler_factory import Resource

logger = get_logger(__name__)

TOP_TOURS_QUERY = {
    "limit": "5",
    "sort": "-ratings_average,price",
    "fields": "name,price,ratings_average,summary,difficulty",
}
STATS_MIN_RATING = 4.5


async def derive_slug(db: AsyncSession, values: dict[str, Any], record: Optional[Tour]) -> dict[str, Any]:
    if values.get("name"):
        values["slug"] = slugify(values["name"])
    return values


async def resolve_guides(db: AsyncSession, values: dict[str, Any], record: Optional[Tour]) -> dict[str, Any]:
    if "guides" not in values:
        return values
    guide_ids = list(dict.fromkeys(values["guides"] or []))
    guides: list[User] = []
    if guide_ids:
        result = await db.execute(select(User).where(User.id.in_(guide_ids)))
        guides = list(result.scalars().all())
        missing = set(guide_ids) - {guide.id for guide in guides}
        if missing:
            raise BadRequestError(f"No user found with id {sorted(missing)[0]}.")
    values["guides"] = guides
    return values


async def check_price_discount(db: AsyncSession, values: dict[str, Any], record: Optional[Tour]) -> dict[str, Any]:
    """Validate the discount against the price the tour will have after the update."""
    price = values.get("price", record.price if record is not None else None)
    discount = values.get("price_discount", record.price_discount if record is not None else None)
    if discount is not None and price is not None and discount >= price:
        raise BadRequestError(
            f"Invalid input data. Discount price ({discount}) should be below regular price"
        )
    return values


tours = Resource(
    model=Tour,
    name="tour",
    schema=TourResponse,
    create_schema=TourCreate,
    update_schema=TourUpdate,
    scope=(Tour.secret_tour.is_(False),),
    relations={"reviews": Tour.reviews},
    before_create=(derive_slug, resolve_guides),
    before_update=(check_price_discount, derive_slug, resolve_guides),
)


async def get_tour_by_slug(db: AsyncSession, slug: str) -> Optional[Tour]:
    result = await db.execute(
        tours.select()
        .where(Tour.slug == slug)
        .options(selectinload(Tour.reviews))
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_tour_stats(db: AsyncSession) -> list[dict[str, Any]]:
    """Per-difficulty figures over well-rated public tours, cheapest group first."""
    difficulty = func.upper(Tour.difficulty)
    avg_price = func.avg(Tour.price)
    statement = (
        select(
            difficulty.label("difficulty"),
            func.count(Tour.id).label("num_tours"),
            func.sum(Tour.ratings_quantity).label("num_ratings"),
            func.avg(Tour.ratings_average).label("avg_rating"),
            avg_price.label("avg_price"),
            func.min(Tour.price).label("min_price"),
            func.max(Tour.price).label("max_price"),
        )
        .where(Tour.ratings_average >= STATS_MIN_RATING, Tour.secret_tour.is_(False))
        .group_by(difficulty)
        .order_by(avg_price.asc())
    )
    result = await db.execute(statement)
    return [dict(row._mapping) for row in result]


async def get_monthly_plan(db: AsyncSession, year: int) -> list[dict[str, Any]]:
    """Count tour starts per month of `year`, busiest month first."""
    result = await db.execute(
        select(Tour.name, Tour.start_dates).where(Tour.secret_tour.is_(False)).order_by(Tour.id)
    )
    by_month: dict[int, list[str]] = defaultdict(list)
    for name, start_dates in result:
        for raw in start_dates or []:
            start = datetime.fromisoformat(raw.replace("Z", "+00:00")) if isinstance(raw, str) else raw
            if start.year == year:
                by_month[start.month].append(name)

    plan = [
        {"month": month, "num_tour_starts": len(names), "tours": names}
        for month, names in by_month.items()
    ]
    plan.sort(key=lambda entry: (-entry["num_tour_starts"], entry["month"]))
    return plan


async def _public_tours_with_location(db: AsyncSession) -> list[tuple[Tour, tuple[float, float]]]:
    result = await db.execute(tours.select().where(Tour.start_location.is_not(None)))
    located = []
    for tour in result.scalars().all():
        latlng = geo.point_latlng(tour.start_location)
        if latlng is not None:
            located.append((tour, latlng))
    return located


async def get_tours_within(db: AsyncSession, distance: float, latlng: str, unit: str) -> list[Tour]:
    lat, lng = geo.parse_latlng(latlng)
    radius = geo.radius_in_radians(distance, unit)
    return [
        tour
        for tour, (tour_lat, tour_lng) in await _public_tours_with_location(db)
        if geo.central_angle(lat, lng, tour_lat, tour_lng) <= radius
    ]


async def get_distances(db: AsyncSession, latlng: str, unit: str) -> list[dict[str, Any]]:
    """Distance from the given point to every public tour's start, nearest first."""
    lat, lng = geo.parse_latlng(latlng)
    multiplier = geo.distance_multiplier(unit)
    distances = [
        {
            "id": tour.id,
            "name": tour.name,
            "distance": geo.central_angle(lat, lng, tour_lat, tour_lng) * geo.EARTH_RADIUS_M * multiplier,
        }
        for tour, (tour_lat, tour_lng) in await _public_tours_with_location(db)
    ]
    distances.sort(key=lambda entry: entry["distance"])
    return distances
