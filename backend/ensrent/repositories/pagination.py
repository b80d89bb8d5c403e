"""Keyset pagination with opaque, sort-bound cursors."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Generic, Sequence, TypeVar

from sqlalchemy import Select, and_, not_, or_
from sqlalchemy.orm import Session

from ensrent.errors import QueryError

T = TypeVar("T")

SORT_DIRECTIONS = ("asc", "desc")


@dataclass(frozen=True, slots=True)
class SortSpec:
    """Resolved sort order: a primary column plus the row's primary key as tie-breakers."""

    key: str
    direction: str
    columns: tuple[Any, ...]

    @property
    def token(self) -> str:
        return f"{self.key}:{self.direction}"

    @property
    def ascending(self) -> bool:
        return self.direction == "asc"


@dataclass(slots=True)
class PageRequest:
    limit: int
    after: str | None = None
    before: str | None = None


@dataclass(slots=True)
class PageInfo:
    start_cursor: str | None = None
    end_cursor: str | None = None
    has_next_page: bool = False
    has_previous_page: bool = False


@dataclass(slots=True)
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    page_info: PageInfo = field(default_factory=PageInfo)


def resolve_sort(
    available: dict[str, Any],
    order_by: str,
    direction: str,
    tie_breakers: Sequence[Any],
) -> SortSpec:
    if order_by not in available:
        raise QueryError(
            f"Unsupported orderBy '{order_by}'. Allowed values: {', '.join(sorted(available))}"
        )
    direction = (direction or "").lower()
    if direction not in SORT_DIRECTIONS:
        raise QueryError(f"Unsupported orderDirection '{direction}'. Use 'asc' or 'desc'")
    return SortSpec(key=order_by, direction=direction, columns=(available[order_by], *tie_breakers))


def encode_cursor(spec: SortSpec, values: Sequence[Any]) -> str:
    payload = {"s": spec.token, "k": [str(value) for value in values]}
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(cursor: str, spec: SortSpec, converters: Sequence[type]) -> tuple[Any, ...]:
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise QueryError("Malformed pagination cursor") from exc

    if not isinstance(payload, dict) or not isinstance(payload.get("k"), list):
        raise QueryError("Malformed pagination cursor")
    if payload.get("s") != spec.token:
        raise QueryError(
            f"Cursor was issued for sort '{payload.get('s')}' and cannot be used with '{spec.token}'"
        )
    raw_values = payload["k"]
    if len(raw_values) != len(converters):
        raise QueryError("Malformed pagination cursor")
    try:
        return tuple(convert(value) for convert, value in zip(converters, raw_values))
    except (TypeError, ValueError) as exc:
        raise QueryError("Malformed pagination cursor") from exc


def _beyond(spec: SortSpec, values: Sequence[Any], *, forward: bool):
    """Rows strictly after ``values`` in the walk direction."""

    use_greater = spec.ascending == forward
    clauses = []
    for index, column in enumerate(spec.columns):
        prefix = [spec.columns[i] == values[i] for i in range(index)]
        step = column > values[index] if use_greater else column < values[index]
        clauses.append(and_(*prefix, step))
    return or_(*clauses)


def _ordering(spec: SortSpec, *, forward: bool) -> list[Any]:
    ascending = spec.ascending == forward
    return [column.asc() if ascending else column.desc() for column in spec.columns]


def _exists(session: Session, stmt: Select, condition) -> bool:
    return session.execute(stmt.where(condition).limit(1)).scalars().first() is not None


def paginate(
    session: Session,
    stmt: Select,
    spec: SortSpec,
    request: PageRequest,
    *,
    key_of,
    converters: Sequence[type],
) -> Page:
    """Run ``stmt`` as one page of a keyset walk described by ``request``.

    ``key_of`` maps a row to its sort key, matching ``spec.columns`` and
    ``converters`` position by position.
    """

    if request.after and request.before:
        raise QueryError("Pass either 'after' or 'before', not both")

    limit = request.limit
    if request.before:
        key = decode_cursor(request.before, spec, converters)
        boundary = _beyond(spec, key, forward=False)
        rows = list(
            session.execute(stmt.where(boundary).order_by(*_ordering(spec, forward=False)).limit(limit + 1))
            .scalars()
            .all()
        )
        has_previous = len(rows) > limit
        rows = rows[:limit]
        rows.reverse()
        has_next = _exists(session, stmt, not_(boundary))
    else:
        boundary = None
        if request.after:
            key = decode_cursor(request.after, spec, converters)
            boundary = _beyond(spec, key, forward=True)
        query = stmt if boundary is None else stmt.where(boundary)
        rows = list(
            session.execute(query.order_by(*_ordering(spec, forward=True)).limit(limit + 1))
            .scalars()
            .all()
        )
        has_next = len(rows) > limit
        rows = rows[:limit]
        has_previous = boundary is not None and _exists(session, stmt, not_(boundary))

    info = PageInfo(has_next_page=has_next, has_previous_page=has_previous)
    if rows:
        info.start_cursor = encode_cursor(spec, key_of(rows[0]))
        info.end_cursor = encode_cursor(spec, key_of(rows[-1]))
    return Page(items=rows, page_info=info)


__all__ = [
    "Page",
    "PageInfo",
    "PageRequest",
    "SortSpec",
    "decode_cursor",
    "encode_cursor",
    "paginate",
    "resolve_sort",
]
