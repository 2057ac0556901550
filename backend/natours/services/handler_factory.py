"""
Generic CRUD over a resource descriptor.

A Resource names a model, its response schema and the explicit processing
pipelines that run around each write:

    before_create / before_update   (db, values, record) -> values
    after_write                     (db, record) -> None, after create and update
    before_delete / after_delete    (db, record) -> None

`scope` predicates are added to every read, update and delete (secret tours,
inactive users). Nothing in this module knows about a concrete resource.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy import Select, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from natours.core.errors import BadRequestError, NotFoundError
from natours.core.logging import get_logger
from natours.services.query_features import QueryFeatures

logger = get_logger(__name__)

BeforeStep = Callable[[AsyncSession, dict[str, Any], Optional[Any]], Awaitable[dict[str, Any]]]
AfterStep = Callable[[AsyncSession, Any], Awaitable[None]]


@dataclass(frozen=True)
class Resource:
    model: Any
    name: str
    schema: type[BaseModel]
    create_schema: Optional[type[BaseModel]] = None
    update_schema: Optional[type[BaseModel]] = None
    scope: tuple[Any, ...] = ()
    relations: Mapping[str, Any] = field(default_factory=dict)
    before_create: tuple[BeforeStep, ...] = ()
    before_update: tuple[BeforeStep, ...] = ()
    after_write: tuple[AfterStep, ...] = ()
    before_delete: tuple[AfterStep, ...] = ()
    after_delete: tuple[AfterStep, ...] = ()

    def select(self, scoped: bool = True) -> Select:
        statement = select(self.model)
        if scoped and self.scope:
            statement = statement.where(*self.scope)
        return statement


def serialize(record: Any, schema: type[BaseModel]) -> dict[str, Any]:
    """
    Dump a record through its response schema.

    Only attributes that are already loaded are read, so relations that were
    not populated are left out instead of triggering a lazy load.
    """
    state = inspect(record)
    loaded = {
        key: getattr(record, key)
        for key in state.mapper.attrs.keys()
        if key not in state.unloaded
    }
    return schema.model_validate(loaded, from_attributes=True).model_dump(mode="json", exclude_unset=True)


def reject_nulls(model: Any, values: Mapping[str, Any]) -> None:
    """Explicit nulls are only accepted for nullable columns."""
    columns = model.__table__.columns
    nulled = [
        key for key, value in values.items()
        if value is None and key in columns and not columns[key].nullable
    ]
    if nulled:
        raise BadRequestError(
            "Invalid input data. " + ". ".join(f"{key} must not be null" for key in nulled)
        )


async def fetch(
    db: AsyncSession,
    resource: Resource,
    record_id: int,
    populate: Sequence[str] = (),
    scoped: bool = True,
) -> Optional[Any]:
    statement = resource.select(scoped).where(resource.model.id == record_id)
    for name in populate:
        statement = statement.options(selectinload(resource.relations[name]))
    statement = statement.execution_options(populate_existing=True)
    result = await db.execute(statement)
    return result.scalar_one_or_none()


async def get_one(
    db: AsyncSession,
    resource: Resource,
    record_id: int,
    populate: Sequence[str] = (),
) -> Any:
    record = await fetch(db, resource, record_id, populate)
    if record is None:
        raise NotFoundError(f"No {resource.name} found with that ID")
    return record


async def list_all(
    db: AsyncSession,
    resource: Resource,
    query: Mapping[str, Any],
    parent_scope: Optional[Mapping[Any, Any]] = None,
) -> tuple[list[Any], QueryFeatures]:
    """Filter -> sort -> project -> paginate, always in that order."""
    statement = resource.select()
    for column, value in (parent_scope or {}).items():
        statement = statement.where(column == value)

    features = (
        QueryFeatures(resource.model, statement, query)
        .filter()
        .sort()
        .limit_fields()
        .paginate()
    )
    result = await db.execute(features.statement)
    return list(result.scalars().all()), features


async def create_one(db: AsyncSession, resource: Resource, values: dict[str, Any]) -> Any:
    for step in resource.before_create:
        values = await step(db, values, None)

    record = resource.model(**values)
    db.add(record)
    await db.flush()

    for after in resource.after_write:
        await after(db, record)

    logger.info("record_created", resource=resource.name, record_id=record.id)
    # Read back unscoped: a record may be created outside the default scope
    return await fetch(db, resource, record.id, scoped=False)


async def update_one(
    db: AsyncSession,
    resource: Resource,
    record_id: int,
    values: dict[str, Any],
    attach: Optional[Callable[[Any], Awaitable[dict[str, Any]]]] = None,
) -> Any:
    """
    Apply a partial update. `attach` runs once the values have passed every
    `before_update` step and returns extra values, e.g. stored file names.
    """
    record = await get_one(db, resource, record_id)
    reject_nulls(resource.model, values)

    for step in resource.before_update:
        values = await step(db, values, record)

    if attach is not None:
        values.update(await attach(record))

    for key, value in values.items():
        setattr(record, key, value)
    record.version = (record.version or 0) + 1
    await db.flush()

    for after in resource.after_write:
        await after(db, record)

    logger.info("record_updated", resource=resource.name, record_id=record_id, fields=sorted(values))
    return await fetch(db, resource, record_id, scoped=False)


async def delete_one(db: AsyncSession, resource: Resource, record_id: int) -> None:
    record = await get_one(db, resource, record_id)
    for step in resource.before_delete:
        await step(db, record)

    await db.delete(record)
    await db.flush()

    for after in resource.after_delete:
        await after(db, record)

    logger.info("record_deleted", resource=resource.name, record_id=record_id)
