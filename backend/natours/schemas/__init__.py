from natours.schemas.user import (
    UserSignup, UserCreate, UserLogin, UserSelfUpdate, UserAdminUpdate,
    ForgotPasswordRequest, ResetPasswordRequest, UpdatePasswordRequest,
    UserSummary, UserResponse,
)
from natours.schemas.tour import (
    GeoPoint, Waypoint, TourCreate, TourUpdate, TourResponse,
    TourStats, MonthlyPlanEntry, TourDistance,
)
from natours.schemas.review import ReviewCreate, ReviewUpdate, ReviewResponse

__all__ = [
    "UserSignup", "UserCreate", "UserLogin", "UserSelfUpdate", "UserAdminUpdate",
    "ForgotPasswordRequest", "ResetPasswordRequest", "UpdatePasswordRequest",
    "UserSummary", "UserResponse",
    "GeoPoint", "Waypoint", "TourCreate", "TourUpdate", "TourResponse",
    "TourStats", "MonthlyPlanEntry", "TourDistance",
    "ReviewCreate", "ReviewUpdate", "ReviewResponse",
]
