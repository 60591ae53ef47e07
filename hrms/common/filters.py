"""Generic filtering, sorting, and search utilities."""

from __future__ import annotations

from typing import Any, Optional, Sequence

from sqlalchemy import Select, String, and_, cast, extract, or_
from sqlalchemy.orm import InstrumentedAttribute


# ── Sorting ─────────────────────────────────────────────────────────

def apply_sorting(
    query: Select,
    model: Any,
    sort: Optional[str],
) -> Select:
    """
    Parse a sort string like ``"-start_date"`` and replace ORDER BY.

    * Leading ``-`` → DESC; otherwise ASC.
    * Unknown columns leave the query untouched.
    """
    if not sort:
        return query

    descending = sort.startswith("-")
    col = _get_column(model, sort.lstrip("-"))
    if col is None:
        return query

    return query.order_by(None).order_by(
        col.desc() if descending else col.asc(),
        model.id.desc(),
    )


# ── Generic filtering ──────────────────────────────────────────────

def apply_filters(
    query: Select,
    model: Any,
    filters: dict[str, Any],
) -> Select:
    """
    Apply a dict of filter parameters to a SQLAlchemy ``Select``.

    Key suffixes determine the operator:

    ============  ==================
    Suffix        Operator
    ============  ==================
    (none)        ``==``
    ``__ilike``   case-insensitive LIKE (wraps ``%…%``)
    ``__from``    ``>=``
    ``__to``      ``<=``
    ``__in``      ``IN (…)``
    ``__month``   ``EXTRACT(MONTH) ==``
    ``__year``    ``EXTRACT(YEAR) ==``
    ============  ==================

    ``None`` values are silently skipped.
    """
    conditions: list = []

    for key, value in filters.items():
        if value is None:
            continue

        if key.endswith("__ilike"):
            col = _get_column(model, key.removesuffix("__ilike"))
            if col is not None:
                conditions.append(col.ilike(f"%{value}%"))

        elif key.endswith("__from"):
            col = _get_column(model, key.removesuffix("__from"))
            if col is not None:
                conditions.append(col >= value)

        elif key.endswith("__to"):
            col = _get_column(model, key.removesuffix("__to"))
            if col is not None:
                conditions.append(col <= value)

        elif key.endswith("__in"):
            col = _get_column(model, key.removesuffix("__in"))
            if col is not None:
                conditions.append(col.in_(value))

        elif key.endswith("__month"):
            col = _get_column(model, key.removesuffix("__month"))
            if col is not None:
                conditions.append(extract("month", col) == value)

        elif key.endswith("__year"):
            col = _get_column(model, key.removesuffix("__year"))
            if col is not None:
                conditions.append(extract("year", col) == value)

        else:
            col = _get_column(model, key)
            if col is not None:
                conditions.append(col == value)

    if conditions:
        query = query.where(and_(*conditions))

    return query


# ── Free-text search ────────────────────────────────────────────────

def apply_search(
    query: Select,
    model: Any,
    search: Optional[str],
    columns: Sequence[str],
) -> Select:
    """ILIKE ``%search%`` across *columns*, OR-ed together."""
    if not search or not search.strip():
        return query

    search = search.strip()
    like_conds: list = []
    for name in columns:
        col = _get_column(model, name)
        if col is None:
            continue
        like_conds.append(cast(col, String).ilike(f"%{search}%"))

    if not like_conds:
        return query
    return query.where(or_(*like_conds))


# ── Internal helper ─────────────────────────────────────────────────

def _get_column(model: Any, name: str) -> Optional[InstrumentedAttribute]:
    """Retrieve a mapped column attribute by name, or None."""
    attr = getattr(model, name, None)
    if attr is None or not hasattr(attr, "property"):
        return None
    if not hasattr(attr.property, "columns"):
        return None
    return attr
