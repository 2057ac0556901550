"""
Review model: one rating event by a user for a tour.

Key design decisions:
- Unique constraint on (tour_id, user_id): one review per user per tour
- The author is loaded with every review (name and photo are always shown)
"""

from sqlalchemy import Column, Integer, Text, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship

from natours.db.base import Base, TimestampMixin, VersionMixin


class Review(Base, TimestampMixin, VersionMixin):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    review = Column(Text, nullable=False)
    rating = Column(Integer, nullable=False)
    tour_id = Column(Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Relationships
    tour = relationship("Tour", back_populates="reviews")
    user = relationship("User", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("tour_id", "user_id", name="uq_review_tour_user"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="check_review_rating_range"),
    )

    def __repr__(self) -> str:
        return f"<Review(id={self.id}, tour={self.tour_id}, user={self.user_id}, rating={self.rating})>"
