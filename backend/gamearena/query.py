"""
Translation of entity filter documents into SQLAlchemy clauses.

A filter document maps field names to either a plain value (equality, with
``None`` meaning IS NULL) or an operator object::

    {"region_id": "…", "status": {"$in": ["preparing", "ongoing"]},
     "hosted_by": {"$in": ["…", None]}, "tournament_type": {"$ne": "automated"}}

Values are coerced to the column's declared type before they reach SQL.
Sort strings are comma separated field names, ``-`` prefixed for descending.
"""

from typing import Any

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import JSON, ColumnElement, and_, or_
from sqlmodel import SQLModel

from gamearena.services.errors import InvalidRequestError

OPERATORS = ("$eq", "$ne", "$in", "$nin", "$gt", "$gte", "$lt", "$lte")


class InvalidQueryError(InvalidRequestError):
    pass


def _column(model: type[SQLModel], field_name: str):
    columns = model.__table__.columns  # type: ignore[attr-defined]
    if field_name not in columns or field_name not in model.model_fields:
        raise InvalidQueryError(f"Unknown field '{field_name}' for {model.__name__}")
    column = columns[field_name]
    if isinstance(column.type, JSON):
        raise InvalidQueryError(f"Field '{field_name}' cannot be filtered or sorted")
    return getattr(model, field_name)


def _coerce(model: type[SQLModel], field_name: str, value: Any) -> Any:
    annotation = model.model_fields[field_name].annotation
    try:
        return TypeAdapter(annotation).validate_python(value)
    except ValidationError as exc:
        raise InvalidQueryError(
            f"Invalid value {value!r} for field '{field_name}'"
        ) from exc


def _operand_list(field_name: str, operator: str, operand: Any) -> list[Any]:
    if not isinstance(operand, list | tuple):
        raise InvalidQueryError(f"'{operator}' on '{field_name}' expects a list")
    return list(operand)


def _condition(
    model: type[SQLModel], field_name: str, operator: str, operand: Any
) -> ColumnElement[bool]:
    column = _column(model, field_name)

    if operator == "$eq":
        if operand is None:
            return column.is_(None)
        return column == _coerce(model, field_name, operand)

    if operator == "$ne":
        if operand is None:
            return column.is_not(None)
        # NULL rows are "not equal" too
        return or_(column != _coerce(model, field_name, operand), column.is_(None))

    if operator in ("$in", "$nin"):
        items = _operand_list(field_name, operator, operand)
        include_null = any(item is None for item in items)
        values = [_coerce(model, field_name, item) for item in items if item is not None]
        if operator == "$in":
            clauses = [column.in_(values)] if values else []
            if include_null:
                clauses.append(column.is_(None))
            if not clauses:
                return column.in_([])
            return or_(*clauses)
        if include_null:
            return and_(column.not_in(values), column.is_not(None))
        return or_(column.not_in(values), column.is_(None))

    if operator in ("$gt", "$gte", "$lt", "$lte"):
        if operand is None:
            raise InvalidQueryError(f"'{operator}' on '{field_name}' needs a value")
        value = _coerce(model, field_name, operand)
        if operator == "$gt":
            return column > value
        if operator == "$gte":
            return column >= value
        if operator == "$lt":
            return column < value
        return column <= value

    raise InvalidQueryError(f"Unsupported operator '{operator}'")


def build_conditions(
    model: type[SQLModel], query: dict[str, Any] | None
) -> list[ColumnElement[bool]]:
    """Turn a filter document into a list of clauses to AND together."""
    if not query:
        return []
    if not isinstance(query, dict):
        raise InvalidQueryError("Query must be an object")

    conditions: list[ColumnElement[bool]] = []
    for field_name, criterion in query.items():
        if isinstance(criterion, dict):
            if not criterion:
                raise InvalidQueryError(f"Empty operator object for '{field_name}'")
            for operator, operand in criterion.items():
                conditions.append(_condition(model, field_name, operator, operand))
        else:
            conditions.append(_condition(model, field_name, "$eq", criterion))
    return conditions


def build_order_by(model: type[SQLModel], sort: str | None) -> list[Any]:
    """``"-created_date,name"`` -> ``[created_date DESC, name ASC]``.

    Without a sort the newest rows come first when the model is timestamped.
    The primary key always breaks ties so paging is stable.
    """
    if not sort:
        sort = "-created_date" if "created_date" in model.model_fields else ""

    order_by: list[Any] = []
    for raw in sort.split(","):
        token = raw.strip()
        if not token:
            continue
        descending = token.startswith("-")
        field_name = token.lstrip("-+")
        column = _column(model, field_name)
        order_by.append(column.desc() if descending else column.asc())

    order_by.append(model.id.asc())  # type: ignore[attr-defined]
    return order_by
