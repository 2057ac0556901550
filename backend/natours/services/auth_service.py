"""
Authentication service: signup, login, session verification and the
password lifecycle (forgot, reset, update).
"""

from typing import Optional

import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from natours.core.errors import AppError, BadRequestError, NotFoundError, UnauthorizedError
from natours.core.logging import get_logger
from natours.core.metrics import record_auth_event, record_notification
from natours.core.security import (
    as_utc,
    create_access_token,
    create_password_reset_token,
    decode_access_token,
    hash_password_async,
    hash_reset_token,
    utcnow,
    verify_password_async,
)
from natours.models.user import Role, User
from natours.schemas.user import ResetPasswordRequest, UpdatePasswordRequest, UserLogin, UserSignup
from natours.services.interfaces import NotificationError, Notifier

logger = get_logger(__name__)


def issue_token(user: User) -> str:
    return create_access_token(data={"sub": str(user.id)})


async def _set_password(user: User, password: str) -> None:
    user.password = await hash_password_async(password)
    # Whole seconds, like `iat`: tokens issued before this second are cut off,
    # the one issued right after it is not
    user.password_changed_at = utcnow().replace(microsecond=0)
    user.version = (user.version or 0) + 1


async def signup(db: AsyncSession, data: UserSignup, notifier: Notifier, account_url: str) -> User:
    """
    Register a new user with the `user` role.
    A duplicate email surfaces as an integrity error from the flush.
    """
    user = User(
        name=data.name,
        email=data.email,
        password=await hash_password_async(data.password),
        role=Role.USER.value,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)

    record_auth_event("signup", success=True)
    logger.info("user_signed_up", user_id=user.id, email=user.email)

    try:
        await notifier.send_welcome(user, account_url)
        record_notification("welcome", sent=True)
    except NotificationError as exc:
        record_notification("welcome", sent=False)
        logger.warning("welcome_notification_failed", user_id=user.id, error=str(exc))
    return user


async def login(db: AsyncSession, data: UserLogin) -> tuple[User, str]:
    """Check credentials and return the user with a fresh token."""
    if not data.email or not data.password:
        raise BadRequestError("Please provide email and password!")

    result = await db.execute(
        select(User).where(User.email == data.email.lower(), User.active.is_(True))
    )
    user = result.scalar_one_or_none()

    if user is None or not await verify_password_async(data.password, user.password):
        record_auth_event("login", success=False)
        logger.warning("login_failed", email=data.email)
        raise UnauthorizedError("Incorrect email or password")

    record_auth_event("login", success=True)
    logger.info("user_logged_in", user_id=user.id)
    return user, issue_token(user)


async def resolve_session_user(db: AsyncSession, token: Optional[str]) -> User:
    """
    Resolve the user a session token belongs to.

    Raises UnauthorizedError for a missing token, a deleted or deactivated
    user, or a password changed after the token was issued. Signature and
    expiry failures propagate as PyJWT errors.
    """
    if not token:
        raise UnauthorizedError("You are not logged in! Please log in to get access.")

    payload = decode_access_token(token)
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError) as exc:
        raise jwt.InvalidTokenError("Malformed subject") from exc

    user = await db.get(User, user_id)
    if user is None or not user.active:
        raise UnauthorizedError("The user belonging to this token does no longer exist.")

    if user.changed_password_after(int(payload["iat"])):
        raise UnauthorizedError("User recently changed password! Please log in again.")

    return user


async def forgot_password(db: AsyncSession, email: str, notifier: Notifier, base_url: str) -> None:
    result = await db.execute(
        select(User).where(User.email == email.lower(), User.active.is_(True))
    )
    user = result.scalar_one_or_none()
    if user is None:
        record_auth_event("forgot_password", success=False)
        raise NotFoundError("There is no user with email address.")

    raw_token, token_hash, expires = create_password_reset_token()
    user.password_reset_token = token_hash
    user.password_reset_expires = expires
    await db.flush()

    reset_url = f"{base_url.rstrip('/')}/api/v1/users/resetPassword/{raw_token}"
    try:
        await notifier.send_password_reset(user, reset_url)
    except NotificationError as exc:
        user.password_reset_token = None
        user.password_reset_expires = None
        await db.flush()
        record_notification("passwordReset", sent=False)
        logger.error("password_reset_dispatch_failed", user_id=user.id, error=str(exc))
        # Raised errors roll the request back, so commit the cleared fields first
        await db.commit()
        raise AppError("There was an error sending the email. Try again later!", 500) from exc

    record_notification("passwordReset", sent=True)
    record_auth_event("forgot_password", success=True)
    logger.info("password_reset_requested", user_id=user.id)


async def reset_password(db: AsyncSession, raw_token: str, data: ResetPasswordRequest) -> tuple[User, str]:
    result = await db.execute(
        select(User).where(User.password_reset_token == hash_reset_token(raw_token))
    )
    user = result.scalar_one_or_none()

    expires = user.password_reset_expires if user is not None else None
    if user is None or expires is None or as_utc(expires) <= utcnow():
        record_auth_event("reset_password", success=False)
        raise BadRequestError("Token is invalid or has expired")

    await _set_password(user, data.password)
    user.password_reset_token = None
    user.password_reset_expires = None
    await db.flush()

    record_auth_event("reset_password", success=True)
    logger.info("password_reset", user_id=user.id)
    return user, issue_token(user)


async def update_password(db: AsyncSession, user: User, data: UpdatePasswordRequest) -> tuple[User, str]:
    if not await verify_password_async(data.password_current, user.password):
        record_auth_event("update_password", success=False)
        raise UnauthorizedError("Your current password is wrong.")

    await _set_password(user, data.password)
    await db.flush()

    record_auth_event("update_password", success=True)
    logger.info("password_updated", user_id=user.id)
    return user, issue_token(user)
