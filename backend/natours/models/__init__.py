from natours.models.user import User, Role
from natours.models.tour import Tour, tour_guides
from natours.models.review import Review

__all__ = ["User", "Role", "Tour", "tour_guides", "Review"]
