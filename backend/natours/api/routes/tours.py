"""
Tour endpoints: CRUD, canned listings, reports and geospatial search.
"""

from typing import Any

from fastapi import APIRouter, Depends, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from natours.api import factory
from natours.api.deps import restrict_to
from natours.api.routes import reviews
from natours.api.uploads import read_upload
from natours.db.session import get_db
from natours.models.tour import Tour
from natours.models.user import Role
from natours.schemas.tour import MonthlyPlanEntry, TourDistance, TourStats
from natours.services import image_service, tour_service
from natours.services.handler_factory import serialize
from natours.services.tour_service import tours

router = APIRouter(prefix="/tours", tags=["Tours"])
router.include_router(reviews.nested_router, prefix="/{tour_id}/reviews")

editors = [Depends(restrict_to(Role.ADMIN, Role.LEAD_GUIDE))]


async def store_tour_images(
    request: Request,
    db: AsyncSession,
    tour: Tour,
    files: dict[str, list[UploadFile]],
) -> dict[str, Any]:
    """Resize uploaded `image_cover` and `images` files and return the fields to store."""
    covers = files.get("image_cover", [])
    gallery = files.get("images", [])
    if not covers and not gallery:
        return {}

    for upload in covers[:1] + gallery:
        image_service.check_image_type(upload.content_type)

    settings = request.app.state.settings
    cover = await read_upload(covers[0]) if covers else None
    gallery_data = [await read_upload(upload) for upload in gallery]
    return await image_service.save_tour_images(settings.IMAGE_ROOT, tour.id, cover, gallery_data)


def discard_tour_images(request: Request, fields: dict[str, Any]) -> None:
    image_service.remove_tour_images(request.app.state.settings.IMAGE_ROOT, fields)


router.add_api_route(
    "/top-5-cheap",
    factory.get_all(tours, overrides=tour_service.TOP_TOURS_QUERY),
    methods=["GET"],
    name="top_tours",
)


@router.get("/tour-stats")
async def tour_stats(db: AsyncSession = Depends(get_db)):
    stats = await tour_service.get_tour_stats(db)
    return {
        "status": "success",
        "data": {"stats": [TourStats.model_validate(row).model_dump() for row in stats]},
    }


@router.get(
    "/monthly-plan/{year}",
    dependencies=[Depends(restrict_to(Role.ADMIN, Role.LEAD_GUIDE, Role.GUIDE))],
)
async def monthly_plan(year: int, db: AsyncSession = Depends(get_db)):
    plan = await tour_service.get_monthly_plan(db, year)
    return {
        "status": "success",
        "data": {"plan": [MonthlyPlanEntry.model_validate(entry).model_dump() for entry in plan]},
    }


@router.get("/tours-within/{distance}/center/{latlng}/unit/{unit}")
async def tours_within(distance: float, latlng: str, unit: str, db: AsyncSession = Depends(get_db)):
    """Public tours starting within `distance` (mi or km) of lat,lng."""
    found = await tour_service.get_tours_within(db, distance, latlng, unit)
    data = [serialize(tour, tours.schema) for tour in found]
    return factory.envelope(data, results=len(data))


@router.get("/distances/{latlng}/unit/{unit}")
async def distances(latlng: str, unit: str, db: AsyncSession = Depends(get_db)):
    rows = await tour_service.get_distances(db, latlng, unit)
    return factory.envelope([TourDistance.model_validate(row).model_dump() for row in rows])


router.add_api_route("", factory.get_all(tours), methods=["GET"], name="list_tours")
router.add_api_route(
    "",
    factory.create_one(tours),
    methods=["POST"],
    status_code=status.HTTP_201_CREATED,
    dependencies=editors,
    name="create_tour",
)
router.add_api_route(
    "/{record_id}",
    factory.get_one(tours, populate=("reviews",)),
    methods=["GET"],
    name="get_tour",
)
router.add_api_route(
    "/{record_id}",
    factory.update_one(tours, attach=store_tour_images, discard=discard_tour_images),
    methods=["PATCH"],
    dependencies=editors,
    name="update_tour",
)
router.add_api_route(
    "/{record_id}",
    factory.delete_one(tours),
    methods=["DELETE"],
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=editors,
    name="delete_tour",
)
