"""
Error normalization: every failure leaves as one response shape.

API paths get JSON `{"status", "message"}`; rendered pages get error.html.
In verbose mode the response also carries the error type, repr and stack.
In restrained mode known failure shapes are first reclassified into
operational errors and anything still unrecognised is hidden behind a
generic 500.
"""

import re
import traceback
from typing import Any, Optional

import jwt
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from natours.core.errors import AppError, BadRequestError, CastError, UnauthorizedError
from natours.core.logging import get_logger

logger = get_logger(__name__)

GENERIC_MESSAGE = "Something went very wrong!"

# Postgres: Key (email)=(a@b.c) already exists.  SQLite: UNIQUE constraint failed: users.email
_PG_DUPLICATE = re.compile(r"Key \((?P<field>.+?)\)=\((?P<value>.+?)\)")
_SQLITE_DUPLICATE = re.compile(r"UNIQUE constraint failed: (?P<columns>[\w., ]+)")
_INSERT_COLUMNS = re.compile(r"INSERT INTO \S+ \((?P<columns>[^)]*)\)")
_UPDATE_SET = re.compile(r"UPDATE \S+ SET (?P<assignments>.*?) WHERE", re.DOTALL)
_SET_COLUMN = re.compile(r"(\"?\w+\"?)=\?")
# Postgres: null value in column "email" ...  SQLite: NOT NULL constraint failed: users.email
_NOT_NULL = re.compile(
    r"null value in column \"(?P<pg>\w+)\"|NOT NULL constraint failed: (?:\w+\.)?(?P<sqlite>\w+)"
)
# Postgres: violates check constraint "name"  SQLite: CHECK constraint failed: name
_CHECK = re.compile(r"violates check constraint \"(?P<pg>\w+)\"|CHECK constraint failed: (?P<sqlite>\w+)")


def _clean_message(message: str) -> str:
    return message.removeprefix("Value error, ")


def _validation_messages(errors: list[dict[str, Any]]) -> str:
    return ". ".join(_clean_message(error["msg"]) for error in errors)


def _statement_columns(statement: str) -> list[str]:
    """Bound column names of an INSERT or UPDATE, in parameter order."""
    insert = _INSERT_COLUMNS.search(statement)
    if insert:
        return [name.strip().strip('"') for name in insert["columns"].split(",")]
    update = _UPDATE_SET.search(statement)
    if update:
        return [name.strip('"') for name in _SET_COLUMN.findall(update["assignments"])]
    return []


def _invalid_value(exc: IntegrityError) -> Optional[str]:
    """Describe a NOT NULL or CHECK violation, or None for any other integrity error."""
    text = str(exc.orig)
    match = _NOT_NULL.search(text)
    if match:
        return f"{match['pg'] or match['sqlite']} must not be null"
    match = _CHECK.search(text)
    if match:
        return f"{match['pg'] or match['sqlite']} was violated"
    return None


def _duplicate_value(exc: IntegrityError) -> Optional[str]:
    text = str(exc.orig)
    match = _PG_DUPLICATE.search(text)
    if match:
        return match["value"]
    match = _SQLITE_DUPLICATE.search(text)
    if not match:
        return None
    # SQLite names the column, not the value; read it back from the statement parameters
    column = match["columns"].split(",")[0].strip().split(".")[-1]
    params = exc.params
    if isinstance(params, dict):
        return str(params.get(column, column))
    columns = _statement_columns(exc.statement or "")
    if isinstance(params, (list, tuple)) and column in columns:
        index = columns.index(column)
        if index < len(params):
            return str(params[index])
    return column


class ErrorNormalizer:
    """
    Turns exceptions into responses.

    `verbose` is fixed at construction (development mode); the normalizer
    never reads process state while handling a request.
    """

    def __init__(self, verbose: bool, templates: Optional[Jinja2Templates] = None):
        self.verbose = verbose
        self.templates = templates

    def reclassify(self, exc: Exception) -> Exception:
        """Map known non-operational failures onto operational errors."""
        if isinstance(exc, CastError):
            return BadRequestError(f"Invalid {exc.path}: {exc.value}.")
        if isinstance(exc, IntegrityError):
            value = _duplicate_value(exc)
            if value is not None:
                return BadRequestError(f"Duplicate field value: {value}. Please use another value!")
            invalid = _invalid_value(exc)
            if invalid is not None:
                return BadRequestError(f"Invalid input data. {invalid}")
            return exc
        if isinstance(exc, ValidationError):
            return BadRequestError(f"Invalid input data. {_validation_messages(exc.errors())}")
        if isinstance(exc, jwt.ExpiredSignatureError):
            return UnauthorizedError("Your token has expired! Please log in again.")
        if isinstance(exc, jwt.InvalidTokenError):
            return UnauthorizedError("Invalid token. Please log in again!")
        return exc

    def request_validation_error(self, exc: RequestValidationError) -> AppError:
        errors = list(exc.errors())
        first = errors[0] if errors else {}
        location = first.get("loc", ())
        if location and location[0] in ("path", "query"):
            return BadRequestError(f"Invalid {location[-1]}: {first.get('input')}.")
        return BadRequestError(f"Invalid input data. {_validation_messages(errors)}")

    def describe(self, exc: Exception) -> tuple[int, str, bool]:
        """Return (status code, message, operational)."""
        if isinstance(exc, RequestValidationError):
            error = self.request_validation_error(exc)
            return error.status_code, error.message, True
        if not self.verbose:
            exc = self.reclassify(exc)
        if isinstance(exc, AppError):
            return exc.status_code, exc.message, True
        if self.verbose:
            return 500, str(exc) or type(exc).__name__, False
        return 500, GENERIC_MESSAGE, False

    def detail(self, exc: Exception) -> dict[str, Any]:
        detail: dict[str, Any] = {
            "error": {"type": type(exc).__name__, "repr": repr(exc)},
            "stack": traceback.format_exception(type(exc), exc, exc.__traceback__),
        }
        if isinstance(exc, RequestValidationError):
            detail["error"]["errors"] = [
                {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
                for error in exc.errors()
            ]
        return detail

    def render(self, request: Request, status_code: int, message: str, operational: bool, exc: Exception) -> Response:
        status = "fail" if 400 <= status_code < 500 else "error"

        if request.url.path.startswith("/api") or self.templates is None:
            body: dict[str, Any] = {"status": status, "message": message}
            if self.verbose:
                body.update(self.detail(exc))
            return JSONResponse(status_code=status_code, content=body)

        if not operational and not self.verbose:
            message = "Please try again later."
        return self.templates.TemplateResponse(
            request,
            "error.html",
            {"title": "Something went wrong!", "msg": message},
            status_code=status_code,
        )

    async def handle(self, request: Request, exc: Exception) -> Response:
        status_code, message, operational = self.describe(exc)
        if operational:
            logger.info("request_error", status_code=status_code, message=message)
        else:
            logger.error("unhandled_error", error=repr(exc), exc_info=exc)
        return self.render(request, status_code, message, operational, exc)

    async def handle_http_exception(self, request: Request, exc: StarletteHTTPException) -> Response:
        if exc.status_code == 404:
            error = AppError(f"Can't find {request.url.path} on this server!", 404)
        else:
            error = AppError(str(exc.detail), exc.status_code)
        response = await self.handle(request, error)
        for key, value in (exc.headers or {}).items():
            response.headers[key] = value
        return response


def register_exception_handlers(app: FastAPI, normalizer: ErrorNormalizer) -> None:
    """
    Route every failure through the normalizer.

    Unrecognised exceptions reach the catch-all Exception handler, which
    Starlette runs in its outermost middleware and then re-raises for the
    server to log.
    """
    app.add_exception_handler(StarletteHTTPException, normalizer.handle_http_exception)
    for exc_class in (
        RequestValidationError,
        AppError,
        CastError,
        IntegrityError,
        ValidationError,
        jwt.InvalidTokenError,
        Exception,
    ):
        app.add_exception_handler(exc_class, normalizer.handle)
