"""
Pydantic schemas for tour-related request/response validation.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, computed_field, model_validator

from natours.schemas.review import ReviewResponse
from natours.schemas.user import UserSummary

Difficulty = Literal["easy", "medium", "difficult"]


class GeoPoint(BaseModel):
    type: Literal["Point"] = "Point"
    # GeoJSON order: [longitude, latitude]
    coordinates: list[float] = Field(..., min_length=2, max_length=2)
    address: Optional[str] = None
    description: Optional[str] = None


class Waypoint(GeoPoint):
    day: Optional[int] = Field(None, ge=0)


class TourCreate(BaseModel):
    name: str = Field(..., min_length=10, max_length=40)
    duration: int = Field(..., gt=0)
    max_group_size: int = Field(..., gt=0)
    difficulty: Difficulty
    price: float = Field(..., gt=0)
    price_discount: Optional[float] = Field(None, ge=0)
    summary: str = Field(..., min_length=1)
    description: Optional[str] = None
    image_cover: str = Field(..., min_length=1)
    images: list[str] = []
    start_dates: list[datetime] = []
    secret_tour: bool = False
    start_location: Optional[GeoPoint] = None
    locations: list[Waypoint] = []
    guides: list[int] = []

    model_config = {"str_strip_whitespace": True}

    @model_validator(mode="after")
    def discount_below_price(self):
        if self.price_discount is not None and self.price_discount >= self.price:
            raise ValueError(f"Discount price ({self.price_discount}) should be below regular price")
        return self


class TourUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=10, max_length=40)
    duration: Optional[int] = Field(None, gt=0)
    max_group_size: Optional[int] = Field(None, gt=0)
    difficulty: Optional[Difficulty] = None
    price: Optional[float] = Field(None, gt=0)
    price_discount: Optional[float] = Field(None, ge=0)
    summary: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    image_cover: Optional[str] = Field(None, min_length=1)
    images: Optional[list[str]] = None
    start_dates: Optional[list[datetime]] = None
    secret_tour: Optional[bool] = None
    start_location: Optional[GeoPoint] = None
    locations: Optional[list[Waypoint]] = None
    guides: Optional[list[int]] = None

    model_config = {"str_strip_whitespace": True}


class TourResponse(BaseModel):
    id: int
    name: str
    slug: str
    duration: int
    max_group_size: int
    difficulty: str
    ratings_average: float
    ratings_quantity: int
    price: float
    price_discount: Optional[float]
    summary: str
    description: Optional[str]
    image_cover: str
    images: list[str]
    start_dates: list[datetime]
    secret_tour: bool
    start_location: Optional[GeoPoint]
    locations: list[Waypoint]
    guides: list[UserSummary] = []
    # Only present when the reviews relation was populated
    reviews: Optional[list[ReviewResponse]] = None
    created_at: datetime
    version: int

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def duration_weeks(self) -> float:
        return self.duration / 7


class TourStats(BaseModel):
    difficulty: str
    num_tours: int
    num_ratings: int
    avg_rating: float
    avg_price: float
    min_price: float
    max_price: float


class MonthlyPlanEntry(BaseModel):
    month: int
    num_tour_starts: int
    tours: list[str]


class TourDistance(BaseModel):
    id: int
    name: str
    distance: float
