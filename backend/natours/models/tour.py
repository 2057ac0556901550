"""
Tour model.

Key design decisions:
- Geo points, waypoints, images and start dates are JSON documents on the row;
  they are always read and written with the tour and never joined on
- Guides are a many-to-many reference to users, loaded with every tour
- Rating aggregates are denormalized from reviews and only written by the
  review recomputation step
- Index on (price, ratings_average) serves the common "cheap and good" sort
"""

from sqlalchemy import (
    Boolean, CheckConstraint, Column, Float, ForeignKey, Index, Integer, JSON, String, Table, Text,
)
from sqlalchemy.orm import relationship

from natours.db.base import Base, TimestampMixin, VersionMixin

DIFFICULTIES = ("easy", "medium", "difficult")
DEFAULT_RATINGS_AVERAGE = 4.5

tour_guides = Table(
    "tour_guides",
    Base.metadata,
    Column("tour_id", Integer, ForeignKey("tours.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Tour(Base, TimestampMixin, VersionMixin):
    __tablename__ = "tours"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(40), unique=True, nullable=False)
    slug = Column(String(60), nullable=False, index=True)
    duration = Column(Integer, nullable=False)
    max_group_size = Column(Integer, nullable=False)
    difficulty = Column(String(20), nullable=False)
    ratings_average = Column(Float, nullable=False, default=DEFAULT_RATINGS_AVERAGE)
    ratings_quantity = Column(Integer, nullable=False, default=0)
    price = Column(Float, nullable=False)
    price_discount = Column(Float, nullable=True)
    summary = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    image_cover = Column(String(255), nullable=False)
    images = Column(JSON, nullable=False, default=list)
    start_dates = Column(JSON, nullable=False, default=list)
    secret_tour = Column(Boolean, nullable=False, default=False)
    start_location = Column(JSON, nullable=True)
    locations = Column(JSON, nullable=False, default=list)

    # Relationships
    guides = relationship("User", secondary=tour_guides, lazy="selectin")
    reviews = relationship("Review", back_populates="tour", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("ratings_average >= 1 AND ratings_average <= 5", name="check_ratings_average_range"),
        CheckConstraint("difficulty IN ('easy', 'medium', 'difficult')", name="check_tour_difficulty"),
        Index("ix_tours_price_ratings", "price", "ratings_average"),
    )

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, name={self.name}, price={self.price})>"
