"""
User model with secure password storage.

Key design decisions:
- `password` only ever holds a bcrypt hash
- `password_reset_token` stores the SHA-256 of the emailed token, never the token
- Accounts are soft-deleted through `active` so reviews keep their author
"""

import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime

from natours.core.security import as_utc
from natours.db.base import Base, TimestampMixin, VersionMixin


class Role(str, enum.Enum):
    USER = "user"
    GUIDE = "guide"
    LEAD_GUIDE = "lead-guide"
    ADMIN = "admin"


class User(Base, TimestampMixin, VersionMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    photo = Column(String(255), nullable=False, default="default.jpg")
    role = Column(String(20), nullable=False, default=Role.USER.value)
    password = Column(String(255), nullable=False)
    password_changed_at = Column(DateTime(timezone=True), nullable=True)
    password_reset_token = Column(String(64), nullable=True, index=True)
    password_reset_expires = Column(DateTime(timezone=True), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    def changed_password_after(self, issued_at: int) -> bool:
        """True if the password changed after a token issued at `issued_at` (epoch seconds)."""
        if self.password_changed_at is None:
            return False
        changed_at = int(as_utc(self.password_changed_at).timestamp())
        return issued_at < changed_at

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
