"""
Review endpoints. Every route requires a session.

Mounted twice: at /reviews, and under /tours/{tour_id}/reviews where the
list is scoped to the tour and new reviews default to it.
"""

from typing import Any

from fastapi import APIRouter, Depends, Request, status

from natours.api import factory
from natours.api.deps import protect, restrict_to
from natours.models.review import Review
from natours.models.user import Role
from natours.services.review_service import reviews

router = APIRouter(prefix="/reviews", tags=["Reviews"], dependencies=[Depends(protect)])
nested_router = APIRouter(tags=["Reviews"], dependencies=[Depends(protect)])

authors = [Depends(restrict_to(Role.USER))]
owners = [Depends(restrict_to(Role.USER, Role.ADMIN))]


def assign_tour_and_author(request: Request, values: dict[str, Any]) -> dict[str, Any]:
    """The author is always the caller; the tour comes from the body or the path."""
    if values.get("tour_id") is None and "tour_id" in request.path_params:
        values["tour_id"] = factory.path_int(request, "tour_id")
    values["user_id"] = request.state.user.id
    return values


for collection in (router, nested_router):
    collection.add_api_route(
        "",
        factory.get_all(reviews, parent=("tour_id", Review.tour_id)),
        methods=["GET"],
        name="list_reviews",
    )
    collection.add_api_route(
        "",
        factory.create_one(reviews, prepare=assign_tour_and_author),
        methods=["POST"],
        status_code=status.HTTP_201_CREATED,
        dependencies=authors,
        name="create_review",
    )

router.add_api_route("/{record_id}", factory.get_one(reviews), methods=["GET"], name="get_review")
router.add_api_route(
    "/{record_id}",
    factory.update_one(reviews),
    methods=["PATCH"],
    dependencies=owners,
    name="update_review",
)
router.add_api_route(
    "/{record_id}",
    factory.delete_one(reviews),
    methods=["DELETE"],
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=owners,
    name="delete_review",
)
