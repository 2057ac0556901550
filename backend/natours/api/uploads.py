"""
Request body reading for endpoints that take JSON or multipart form data.
"""

import json
from typing import Any

from fastapi import Request, UploadFile
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError

from natours.core.errors import BadRequestError


async def read_body(request: Request) -> tuple[dict[str, Any], dict[str, list[UploadFile]]]:
    """
    Return (fields, files) from a JSON or multipart body.

    An empty body reads as no fields. Multipart text fields arrive as strings
    and are left to the schema to coerce.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data") or content_type.startswith(
        "application/x-www-form-urlencoded"
    ):
        form = await request.form()
        fields: dict[str, Any] = {}
        files: dict[str, list[UploadFile]] = {}
        for key, value in form.multi_items():
            if isinstance(value, str):
                fields[key] = value
            else:
                files.setdefault(key, []).append(value)
        return fields, files

    raw = await request.body()
    if not raw.strip():
        return {}, {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise BadRequestError("Request body is not valid JSON.") from exc
    if not isinstance(data, dict):
        raise BadRequestError("Request body must be a JSON object.")
    return data, {}


def validate_payload(schema: type[BaseModel], data: dict[str, Any]) -> BaseModel:
    """Validate a body against a schema, failing the way FastAPI body params fail."""
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        errors = [{**error, "loc": ("body", *error["loc"])} for error in exc.errors(include_url=False)]
        raise RequestValidationError(errors) from exc


async def read_upload(upload: UploadFile) -> bytes:
    try:
        return await upload.read()
    finally:
        await upload.close()
