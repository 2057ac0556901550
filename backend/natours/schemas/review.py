"""
Pydantic schemas for review-related request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from natours.schemas.user import UserSummary


class ReviewCreate(BaseModel):
    review: str = Field(..., min_length=1, max_length=5000)
    rating: int = Field(..., ge=1, le=5)
    # Taken from the nested route when omitted
    tour_id: Optional[int] = None


class ReviewUpdate(BaseModel):
    review: Optional[str] = Field(None, min_length=1, max_length=5000)
    rating: Optional[int] = Field(None, ge=1, le=5)


class ReviewResponse(BaseModel):
    id: int
    review: str
    rating: int
    tour_id: int
    user_id: int
    user: Optional[UserSummary] = None
    created_at: datetime
    version: int

    model_config = {"from_attributes": True}
