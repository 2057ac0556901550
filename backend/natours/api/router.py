"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from natours.api.routes import tours, users, reviews

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(tours.router)
api_router.include_router(users.router)
api_router.include_router(reviews.router)
