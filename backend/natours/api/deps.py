"""
Request dependencies: settings, session verification and role checks.
"""

from typing import Optional

import jwt
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from natours.core.config import Settings
from natours.core.errors import AppError, ForbiddenError
from natours.core.metrics import record_auth_event
from natours.db.session import get_db
from natours.models.user import Role, User
from natours.services.auth_service import resolve_session_user


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def extract_token(request: Request, cookie_name: str) -> Optional[str]:
    """Bearer header first, then the session cookie."""
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(cookie_name) or None


async def protect(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> User:
    """Require a valid session; the user is kept on request.state.user."""
    token = extract_token(request, settings.JWT_COOKIE_NAME)
    try:
        user = await resolve_session_user(db, token)
    except (AppError, jwt.InvalidTokenError):
        record_auth_event("protect", success=False)
        raise
    request.state.user = user
    return user


async def soft_protect(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> Optional[User]:
    """Resolve the cookie session if there is a valid one; never fails."""
    request.state.user = None
    token = request.cookies.get(settings.JWT_COOKIE_NAME)
    if not token:
        return None
    try:
        user = await resolve_session_user(db, token)
    except (AppError, jwt.InvalidTokenError):
        return None
    request.state.user = user
    return user


def restrict_to(*roles: Role):
    """Dependency allowing only the given roles; runs after protect."""
    allowed = frozenset(role.value for role in roles)

    async def check_role(user: User = Depends(protect)) -> User:
        if user.role not in allowed:
            raise ForbiddenError()
        return user

    return check_role
