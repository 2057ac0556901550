"""
Application error types.

AppError and its subclasses are operational: expected, client-facing
conditions whose message is safe to send verbatim. Anything else reaching
the error handlers is treated as a programming or infrastructure failure.
"""

from typing import Any


class AppError(Exception):
    """An operational error carrying an HTTP status code."""

    is_operational = True

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class BadRequestError(AppError):
    def __init__(self, message: str):
        super().__init__(message, 400)


class UnauthorizedError(AppError):
    def __init__(self, message: str):
        super().__init__(message, 401)


class ForbiddenError(AppError):
    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(message, 403)


class NotFoundError(AppError):
    def __init__(self, message: str):
        super().__init__(message, 404)


class CastError(ValueError):
    """
    A raw value could not be converted to the type of the field it targets.

    Raised by the query layer, not by handlers, so it is not operational:
    only the restrained error handler turns it into a 400.
    """

    def __init__(self, path: str, value: Any):
        super().__init__(f"Cast failed for value {value!r} at path {path!r}")
        self.path = path
        self.value = value
