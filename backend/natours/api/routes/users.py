"""
User endpoints: authentication, self-service account management and
admin-only user administration.
"""

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from natours.api import factory
from natours.api.deps import get_app_settings, protect, restrict_to
from natours.api.uploads import read_body, read_upload, validate_payload
from natours.core.config import Settings
from natours.db.session import get_db
from natours.models.user import Role, User
from natours.schemas.user import (
    ForgotPasswordRequest,
    ResetPasswordRequest,
    UpdatePasswordRequest,
    UserLogin,
    UserResponse,
    UserSelfUpdate,
    UserSignup,
)
from natours.services import auth_service, handler_factory, image_service, user_service
from natours.services.handler_factory import serialize
from natours.services.interfaces import Notifier
from natours.services.notifier_factory import get_notifier
from natours.services.user_service import users

router = APIRouter(prefix="/users", tags=["Users"])


def _is_https(request: Request) -> bool:
    return request.url.scheme == "https" or request.headers.get("x-forwarded-proto") == "https"


def send_token(user: User, token: str, request: Request, response: Response, settings: Settings) -> dict:
    """Set the session cookie and return the token with the user."""
    response.set_cookie(
        settings.JWT_COOKIE_NAME,
        token,
        max_age=int(timedelta(days=settings.JWT_COOKIE_EXPIRES_IN_DAYS).total_seconds()),
        httponly=True,
        secure=_is_https(request),
        samesite="lax",
    )
    return {"status": "success", "token": token, "data": {"user": serialize(user, UserResponse)}}


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    data: UserSignup,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
):
    """Register a new account with the `user` role and log it in."""
    user = await auth_service.signup(db, data, notifier, f"{request.base_url}me")
    return send_token(user, auth_service.issue_token(user), request, response, settings)


@router.post("/login")
async def login(
    request: Request,
    response: Response,
    data: Optional[UserLogin] = None,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    user, token = await auth_service.login(db, data or UserLogin())
    return send_token(user, token, request, response, settings)


@router.get("/logout")
async def logout(response: Response, settings: Settings = Depends(get_app_settings)):
    """Overwrite the session cookie with one that expires at once."""
    response.set_cookie(settings.JWT_COOKIE_NAME, "loggedout", max_age=1, httponly=True)
    return {"status": "success"}


@router.post("/forgotPassword")
async def forgot_password(
    data: ForgotPasswordRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    await auth_service.forgot_password(db, data.email, notifier, str(request.base_url))
    return {"status": "success", "message": "Token sent to email!"}


@router.patch("/resetPassword/{token}")
async def reset_password(
    token: str,
    data: ResetPasswordRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    user, session_token = await auth_service.reset_password(db, token, data)
    return send_token(user, session_token, request, response, settings)


@router.patch("/updateMyPassword")
async def update_my_password(
    data: UpdatePasswordRequest,
    request: Request,
    response: Response,
    user: User = Depends(protect),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    user, token = await auth_service.update_password(db, user, data)
    return send_token(user, token, request, response, settings)


@router.get("/me")
async def get_me(user: User = Depends(protect), db: AsyncSession = Depends(get_db)):
    record = await handler_factory.get_one(db, users, user.id)
    return factory.envelope(serialize(record, UserResponse))


@router.patch("/updateMe")
async def update_me(
    request: Request,
    user: User = Depends(protect),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """Update name and email, optionally uploading a new photo (multipart `photo`)."""
    fields, files = await read_body(request)
    user_service.reject_password_fields(fields)
    values = validate_payload(UserSelfUpdate, fields).model_dump(mode="json", exclude_unset=True)

    photo = None
    uploads = files.get("photo")
    if uploads:
        image_service.check_image_type(uploads[0].content_type)
        data = await read_upload(uploads[0])
        photo = await image_service.save_user_photo(settings.IMAGE_ROOT, user.id, data)

    try:
        record = await user_service.update_me(db, user, values, photo)
    except Exception:
        if photo is not None:
            image_service.remove_user_photo(settings.IMAGE_ROOT, photo)
        raise
    return factory.envelope(serialize(record, UserResponse))


@router.delete("/deleteMe", status_code=status.HTTP_204_NO_CONTENT)
async def delete_me(user: User = Depends(protect), db: AsyncSession = Depends(get_db)):
    await user_service.delete_me(db, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Administration; registered after /me so the literal paths win
admin_only = [Depends(restrict_to(Role.ADMIN))]

router.add_api_route("", factory.get_all(users), methods=["GET"], dependencies=admin_only, name="list_users")
router.add_api_route(
    "",
    factory.create_one(users),
    methods=["POST"],
    status_code=status.HTTP_201_CREATED,
    dependencies=admin_only,
    name="create_user",
)
router.add_api_route(
    "/{record_id}", factory.get_one(users), methods=["GET"], dependencies=admin_only, name="get_user"
)
router.add_api_route(
    "/{record_id}", factory.update_one(users), methods=["PATCH"], dependencies=admin_only, name="update_user"
)
router.add_api_route(
    "/{record_id}",
    factory.delete_one(users),
    methods=["DELETE"],
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=admin_only,
    name="delete_user",
)
