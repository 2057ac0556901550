"""
Server-rendered pages. The session is resolved softly from the cookie so
pages render for anonymous visitors too; /me requires a valid session.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from natours.api.deps import protect, soft_protect
from natours.core.errors import NotFoundError
from natours.db.session import get_db
from natours.models.tour import Tour
from natours.models.user import User
from natours.services import tour_service

router = APIRouter(tags=["Views"], include_in_schema=False)


def render(request: Request, template: str, context: dict, user: Optional[User]) -> HTMLResponse:
    return request.app.state.templates.TemplateResponse(request, template, {**context, "user": user})


@router.get("/", response_class=HTMLResponse)
async def overview(
    request: Request,
    user: Optional[User] = Depends(soft_protect),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(tour_service.tours.select().order_by(Tour.id))
    return render(request, "overview.html", {"title": "All Tours", "tours": result.scalars().all()}, user)


@router.get("/tour/{slug}", response_class=HTMLResponse)
async def tour_page(
    slug: str,
    request: Request,
    user: Optional[User] = Depends(soft_protect),
    db: AsyncSession = Depends(get_db),
):
    tour = await tour_service.get_tour_by_slug(db, slug)
    if tour is None:
        raise NotFoundError("There is no tour with that name.")
    return render(request, "tour.html", {"title": f"{tour.name} Tour", "tour": tour}, user)


@router.get("/login", response_class=HTMLResponse)
async def login_page(request: Request, user: Optional[User] = Depends(soft_protect)):
    return render(request, "login.html", {"title": "Log into your account"}, user)


@router.get("/me", response_class=HTMLResponse)
async def account(request: Request, user: User = Depends(protect)):
    return render(request, "account.html", {"title": "Your account"}, user)
