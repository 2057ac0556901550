"""
Endpoint factory: builds FastAPI handlers for a Resource.

    router.add_api_route("/", factory.get_all(tours), methods=["GET"])
    router.add_api_route("/{record_id}", factory.get_one(tours, populate=("reviews",)), methods=["GET"])

Every handler answers with the standard envelope:

    {"status": "success", "results": n, "data": {"data": ...}}
"""

from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from fastapi import Depends, Request, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from natours.api.uploads import read_body, validate_payload
from natours.core.errors import CastError
from natours.db.session import get_db
from natours.services import handler_factory
from natours.services.handler_factory import Resource, serialize
from natours.services.query_features import parse_query_string

# (request, values) -> values, e.g. fill in ids from the path or the session
Prepare = Callable[[Request, dict[str, Any]], dict[str, Any]]
# (request, db, record, files) -> extra values, e.g. stored image names
Attach = Callable[[Request, AsyncSession, Any, dict[str, list[UploadFile]]], Awaitable[dict[str, Any]]]
# (request, attached values) -> None, undoes an Attach when the update fails
Discard = Callable[[Request, dict[str, Any]], None]


def envelope(data: Any, results: Optional[int] = None) -> dict[str, Any]:
    body: dict[str, Any] = {"status": "success"}
    if results is not None:
        body["results"] = results
    body["data"] = {"data": data}
    return body


def path_int(request: Request, name: str) -> int:
    raw = request.path_params[name]
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise CastError(name, raw) from exc


def get_all(
    resource: Resource,
    parent: Optional[tuple[str, Any]] = None,
    overrides: Optional[Mapping[str, str]] = None,
):
    """
    List handler. `parent` is (path param, column) for nested routes;
    `overrides` replaces query keys, e.g. for canned aliases.
    """

    async def list_records(request: Request, db: AsyncSession = Depends(get_db)):
        query = parse_query_string(request.query_params.multi_items())
        if overrides:
            query.update(overrides)

        parent_scope = None
        if parent is not None and parent[0] in request.path_params:
            param, column = parent
            parent_scope = {column: path_int(request, param)}

        records, features = await handler_factory.list_all(db, resource, query, parent_scope)
        data = [features.project(serialize(record, resource.schema)) for record in records]
        return envelope(data, results=len(data))

    return list_records


def get_one(resource: Resource, populate: Sequence[str] = ()):
    async def read_record(record_id: int, db: AsyncSession = Depends(get_db)):
        record = await handler_factory.get_one(db, resource, record_id, populate)
        return envelope(serialize(record, resource.schema))

    return read_record


def create_one(resource: Resource, prepare: Optional[Prepare] = None):
    async def create_record(request: Request, db: AsyncSession = Depends(get_db)):
        fields, _ = await read_body(request)
        values = validate_payload(resource.create_schema, fields).model_dump(mode="json")
        if prepare is not None:
            values = prepare(request, values)
        record = await handler_factory.create_one(db, resource, values)
        return envelope(serialize(record, resource.schema))

    return create_record


def update_one(resource: Resource, attach: Optional[Attach] = None, discard: Optional[Discard] = None):
    """
    Update handler. `attach` runs only after the values are validated; if the
    write still fails, `discard` receives what it attached.
    """

    async def update_record(record_id: int, request: Request, db: AsyncSession = Depends(get_db)):
        fields, files = await read_body(request)
        values = validate_payload(resource.update_schema, fields).model_dump(mode="json", exclude_unset=True)

        attached: dict[str, Any] = {}

        async def attach_files(record: Any) -> dict[str, Any]:
            attached.update(await attach(request, db, record, files))
            return attached

        try:
            record = await handler_factory.update_one(
                db, resource, record_id, values, attach=attach_files if attach is not None else None
            )
        except Exception:
            if attached and discard is not None:
                discard(request, attached)
            raise
        return envelope(serialize(record, resource.schema))

    return update_record


def delete_one(resource: Resource):
    async def delete_record(record_id: int, db: AsyncSession = Depends(get_db)):
        await handler_factory.delete_one(db, resource, record_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return delete_record
