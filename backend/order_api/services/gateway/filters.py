"""
Translate ``where`` mappings into SQLAlchemy criteria.

Keys are ``field`` (equality, ``None`` means IS NULL) or ``field__lookup``:

    in, not_in, gt, gte, lt, lte, ne, contains, icontains, startswith, isnull

Example:
    {"status__in": ["PENDING", "CONFIRMED"], "placed_at__gte": start}
"""

from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy import ColumnElement, and_

from shared.utils.exceptions import ValidationError

LOOKUP_SEPARATOR = "__"


def split_key(key: str) -> tuple[str, str | None]:
    field, sep, lookup = key.partition(LOOKUP_SEPARATOR)
    return field, (lookup if sep else None)


def _column(model: type, field: str):
    if field not in model.__mapper__.column_attrs:
        raise ValidationError(f"Unknown field '{field}' for {model.__name__}")
    return getattr(model, field)


def _criterion(column, lookup: str | None, value: Any) -> ColumnElement[bool]:
    if lookup is None:
        return column.is_(None) if value is None else column == value
    if lookup == "in":
        return column.in_(list(value))
    if lookup == "not_in":
        return column.not_in(list(value))
    if lookup == "gt":
        return column > value
    if lookup == "gte":
        return column >= value
    if lookup == "lt":
        return column < value
    if lookup == "lte":
        return column <= value
    if lookup == "ne":
        return column.is_not(None) if value is None else column != value
    if lookup == "contains":
        return column.contains(value, autoescape=True)
    if lookup == "icontains":
        return column.icontains(value, autoescape=True)
    if lookup == "startswith":
        return column.startswith(value, autoescape=True)
    if lookup == "isnull":
        return column.is_(None) if value else column.is_not(None)
    raise ValidationError(f"Unsupported filter lookup '{lookup}'")


def build_criteria(model: type, where: Mapping[str, Any]) -> list[ColumnElement[bool]]:
    return [
        _criterion(_column(model, field), lookup, value)
        for field, lookup, value in (
            (*split_key(key), value) for key, value in where.items()
        )
    ]


def build_where(model: type, where: Mapping[str, Any]) -> ColumnElement[bool] | None:
    criteria = build_criteria(model, where)
    if not criteria:
        return None
    return and_(*criteria)


def build_order_by(model: type, order_by: tuple[str, ...]) -> list:
    """``"-placed_at"`` sorts descending."""
    clauses = []
    for item in order_by:
        descending = item.startswith("-")
        column = _column(model, item.lstrip("-"))
        clauses.append(column.desc() if descending else column.asc())
    return clauses
