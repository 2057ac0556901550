"""
Query features: turn a request query string into statement refinements.

    features = (
        QueryFeatures(Tour, select(Tour), query)
        .filter()
        .sort()
        .limit_fields()
        .paginate()
    )
    result = await db.execute(features.statement)

Supported query-string shapes:
  - Equality:     ?difficulty=easy
  - Membership:   ?difficulty=easy&difficulty=medium
  - Range:        ?price[gte]=500&price[lt]=1500   (gte, gt, lte, lt)
  - Sorting:      ?sort=-ratings_average,price     (default: -created_at)
  - Projection:   ?fields=name,price  or  ?fields=-description
  - Pagination:   ?page=2&limit=10                  (defaults: 1 and 100)

Every refinement returns a new QueryFeatures wrapping a new statement, so a
builder can be shared and refined along different paths without one chain
leaking into another.

Field names are not validated. A key that is not a column matches nothing,
the same as querying a document store for a field no document has, and any
column is filterable. Callers that need a field to stay private must scope
the base statement themselves.
"""

import operator
import re
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import JSON, Select, false
from sqlalchemy.sql.elements import ColumnElement

from natours.core.errors import CastError

CONTROL_KEYS = frozenset({"page", "sort", "limit", "fields"})

COMPARISON_OPERATORS = {
    "gte": operator.ge,
    "gt": operator.gt,
    "lte": operator.le,
    "lt": operator.lt,
}

DEFAULT_SORT = "-created_at"
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 100
HIDDEN_FIELDS = frozenset({"version"})

_BRACKET_KEY = re.compile(r"^(?P<field>[^\[\]]+)\[(?P<op>[^\[\]]+)\]$")
_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


def parse_query_string(items: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """
    Nest bracketed keys and collect repeated keys.

    [("price[gte]", "500"), ("difficulty", "easy"), ("difficulty", "medium")]
    -> {"price": {"gte": "500"}, "difficulty": ["easy", "medium"]}
    """
    parsed: dict[str, Any] = {}
    for key, value in items:
        match = _BRACKET_KEY.match(key)
        if match:
            nested = parsed.setdefault(match["field"], {})
            if isinstance(nested, dict):
                nested[match["op"]] = value
            continue
        if key in parsed:
            existing = parsed[key]
            parsed[key] = existing + [value] if isinstance(existing, list) else [existing, value]
        else:
            parsed[key] = value
    return parsed


def _coerce(column, path: str, raw: Any) -> Any:
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        python_type = str

    if not isinstance(raw, str) or python_type is str:
        return raw
    try:
        if python_type is bool:
            lowered = raw.lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError(raw)
        if python_type is datetime:
            return datetime.fromisoformat(raw)
        return python_type(raw)
    except (TypeError, ValueError) as exc:
        raise CastError(path, raw) from exc


def _first(value: Any) -> Optional[str]:
    if isinstance(value, list):
        return value[0] if value else None
    if isinstance(value, dict):
        return None
    return value


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(_first(value))
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


@dataclass(frozen=True)
class QueryFeatures:
    model: Any
    statement: Select
    query: Mapping[str, Any]
    # None means "default projection"
    selected_fields: Optional[tuple[str, ...]] = None
    excluded_fields: frozenset[str] = HIDDEN_FIELDS

    def _column(self, name: str):
        return self.model.__table__.columns.get(name)

    def _conditions(self, name: str, value: Any) -> list[ColumnElement]:
        column = self._column(name)
        if column is None or isinstance(column.type, JSON):
            return [false()]
        if isinstance(value, dict):
            conditions = []
            for op_name, operand in value.items():
                compare = COMPARISON_OPERATORS.get(op_name)
                if compare is None:
                    conditions.append(false())
                else:
                    conditions.append(compare(column, _coerce(column, name, operand)))
            return conditions
        if isinstance(value, list):
            return [column.in_([_coerce(column, name, item) for item in value])]
        return [column == _coerce(column, name, value)]

    def filter(self) -> "QueryFeatures":
        conditions: list[ColumnElement] = []
        for name, value in self.query.items():
            if name in CONTROL_KEYS:
                continue
            conditions.extend(self._conditions(name, value))
        if not conditions:
            return self
        return replace(self, statement=self.statement.where(*conditions))

    def sort(self) -> "QueryFeatures":
        sort_by = _first(self.query.get("sort")) or DEFAULT_SORT
        order_by = []
        for token in sort_by.split(","):
            token = token.strip()
            descending = token.startswith("-")
            column = self._column(token.lstrip("-"))
            if column is None or isinstance(column.type, JSON):
                continue
            order_by.append(column.desc() if descending else column.asc())
        order_by.append(self.model.id.asc())
        return replace(self, statement=self.statement.order_by(*order_by))

    def limit_fields(self) -> "QueryFeatures":
        raw = _first(self.query.get("fields"))
        if not raw:
            return replace(self, selected_fields=None, excluded_fields=HIDDEN_FIELDS)
        names = [name.strip() for name in raw.split(",") if name.strip()]
        if names and all(name.startswith("-") for name in names):
            return replace(
                self,
                selected_fields=None,
                excluded_fields=frozenset(name[1:] for name in names),
            )
        kept = ("id",) + tuple(name.lstrip("-") for name in names if name.lstrip("-") != "id")
        return replace(self, selected_fields=kept, excluded_fields=frozenset())

    def paginate(self) -> "QueryFeatures":
        page = _positive_int(self.query.get("page"), DEFAULT_PAGE)
        limit = _positive_int(self.query.get("limit"), DEFAULT_LIMIT)
        offset = (page - 1) * limit
        return replace(self, statement=self.statement.offset(offset).limit(limit))

    def project(self, record: dict[str, Any]) -> dict[str, Any]:
        """Apply the field projection to one serialized record."""
        if self.selected_fields is not None:
            return {key: record[key] for key in self.selected_fields if key in record}
        return {key: value for key, value in record.items() if key not in self.excluded_fields}
