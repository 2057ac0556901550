"""
Pydantic schemas for user-related request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from natours.core.config import get_settings
from natours.models.user import Role

settings = get_settings()


class PasswordConfirmation(BaseModel):
    password: str = Field(..., min_length=settings.PASSWORD_MIN_LENGTH, max_length=128)
    password_confirm: str

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.password_confirm:
            raise ValueError("Passwords are not the same!")
        return self


class UserSignup(PasswordConfirmation):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class UserCreate(UserSignup):
    """Admin-side creation; the only path that may set a role."""
    role: Role = Role.USER


class UserLogin(BaseModel):
    # Optional so a missing field is reported as a 400, not a schema error
    email: Optional[str] = None
    password: Optional[str] = None


class UserSelfUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else value


class UserAdminUpdate(UserSelfUpdate):
    role: Optional[Role] = None
    photo: Optional[str] = Field(None, max_length=255)
    active: Optional[bool] = None


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(PasswordConfirmation):
    pass


class UpdatePasswordRequest(PasswordConfirmation):
    password_current: str


class UserSummary(BaseModel):
    """Inline view of a user embedded in tours (guides) and reviews (author)."""
    id: int
    name: str
    photo: str
    role: str

    model_config = {"from_attributes": True}


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    photo: str
    role: str
    created_at: datetime
    version: int

    model_config = {"from_attributes": True}
