"""
User resource and the self-service account operations.
"""

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from natours.core.errors import BadRequestError
from natours.core.logging import get_logger
from natours.core.security import hash_password_async
from natours.models.user import User
from natours.schemas.user import UserAdminUpdate, UserCreate, UserResponse
from natours.services.handler_factory import Resource, fetch, reject_nulls
from natours.services.review_service import remove_reviews_by_author

logger = get_logger(__name__)

PASSWORD_FIELDS = frozenset({"password", "password_confirm"})


async def hash_new_password(db: AsyncSession, values: dict[str, Any], record: Optional[User]) -> dict[str, Any]:
    values.pop("password_confirm", None)
    if values.get("password"):
        values["password"] = await hash_password_async(values["password"])
    return values


users = Resource(
    model=User,
    name="user",
    schema=UserResponse,
    create_schema=UserCreate,
    update_schema=UserAdminUpdate,
    scope=(User.active.is_(True),),
    before_create=(hash_new_password,),
    before_delete=(remove_reviews_by_author,),
)


def reject_password_fields(raw: dict[str, Any]) -> None:
    if PASSWORD_FIELDS & raw.keys():
        raise BadRequestError("This route is not for password updates. Please use /updateMyPassword.")


async def update_me(
    db: AsyncSession,
    user: User,
    values: dict[str, Any],
    photo: Optional[str] = None,
) -> User:
    """Update the caller's own name, email and photo; nothing else is writable here."""
    reject_nulls(User, values)
    if photo is not None:
        values["photo"] = photo
    for key, value in values.items():
        setattr(user, key, value)
    user.version = (user.version or 0) + 1
    await db.flush()

    logger.info("user_updated_self", user_id=user.id, fields=sorted(values))
    return await fetch(db, users, user.id)


async def delete_me(db: AsyncSession, user: User) -> None:
    """Deactivate the caller's account; reviews keep their author."""
    user.active = False
    await db.flush()
    logger.info("user_deactivated", user_id=user.id)
