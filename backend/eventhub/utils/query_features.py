"""
Generic filter/search/sort/projection/pagination over a mapped model.

QueryFeatures is an immutable value: every step returns a new instance and
the SELECT is only assembled by `statement()`. Filter and search criteria
are kept apart from ordering and paging so `count_statement()` can rebuild
an accurate total without them.

Request parameters are untrusted. Unknown columns are ignored, values are
coerced to the column's Python type, and anything that cannot be coerced is
a BadRequestError rather than a database error.

    features = (
        QueryFeatures(Event, request.query_params)
        .filter()
        .search(["title", "description"])
        .sort()
        .limit_fields()
        .paginate()
    )
    events, total = await features.fetch_page(db)
"""

import math
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy import JSON, Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from eventhub.core.config import get_settings
from eventhub.core.exceptions import BadRequestError

RESERVED_PARAMS = frozenset({"page", "sort", "limit", "fields", "search"})
REFERENCE_ID_FIELDS = frozenset({"organisation_id", "user_id", "event_id"})
HIDDEN_FIELDS = frozenset({"version"})
DEFAULT_SORT = "-created_at"

_OPERATORS = {
    "gte": lambda column, value: column >= value,
    "gt": lambda column, value: column > value,
    "lte": lambda column, value: column <= value,
    "lt": lambda column, value: column < value,
}
_BRACKET_KEY = re.compile(r"^(?P<field>\w+)\[(?P<op>gte|gt|lte|lt)\]$")
_SUFFIX_KEY = re.compile(r"^(?P<field>\w+?)__(?P<op>gte|gt|lte|lt)$")
_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _split_list(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _positive_int(raw: Any, default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value >= 1 else default


@dataclass(frozen=True)
class QueryFeatures:
    model: type
    params: Mapping[str, str]
    base: tuple[ColumnElement, ...] = ()
    criteria: tuple[ColumnElement, ...] = ()
    ordering: tuple[ColumnElement, ...] = ()
    fields: Optional[frozenset[str]] = None
    page: int = 1
    limit: Optional[int] = None
    _columns: Mapping[str, Any] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if self._columns is None:
            table = self.model.__table__
            object.__setattr__(self, "_columns", {c.key: getattr(self.model, c.key) for c in table.columns})
        if not isinstance(self.params, dict):
            object.__setattr__(self, "params", dict(self.params))

    def where(self, *clauses: ColumnElement) -> "QueryFeatures":
        """Add caller-owned scoping criteria (visibility, role filters)."""
        return replace(self, base=self.base + tuple(clauses))

    def filter(self) -> "QueryFeatures":
        clauses = []
        for key, raw in self.params.items():
            if key in RESERVED_PARAMS:
                continue
            name, op = self._parse_key(key)
            column = self._columns.get(name)
            if column is None or isinstance(column.type, JSON):
                continue
            value = self._coerce(name, column, raw)
            if op is None:
                clauses.append(column == value)
            else:
                clauses.append(_OPERATORS[op](column, value))
        return replace(self, criteria=self.criteria + tuple(clauses))

    def search(self, fields: Sequence[str] = ("title", "description")) -> "QueryFeatures":
        term = (self.params.get("search") or "").strip()
        if not term:
            return self
        pattern = f"%{escape_like(term)}%"
        matches = [
            self._columns[name].ilike(pattern, escape="\\")
            for name in fields
            if name in self._columns
        ]
        if not matches:
            return self
        return replace(self, criteria=self.criteria + (or_(*matches),))

    def sort(self, default: str = DEFAULT_SORT) -> "QueryFeatures":
        ordering = []
        for token in _split_list(self.params.get("sort")) or _split_list(default):
            descending = token.startswith("-")
            column = self._columns.get(token.lstrip("-+"))
            if column is None:
                continue
            ordering.append(column.desc() if descending else column.asc())
        if not ordering:
            ordering = [self._columns["id"].desc()]
        return replace(self, ordering=tuple(ordering))

    def limit_fields(self) -> "QueryFeatures":
        requested = [name for name in _split_list(self.params.get("fields")) if name in self._columns]
        if requested:
            selected = frozenset(requested) | {"id"}
        else:
            selected = frozenset(self._columns) - HIDDEN_FIELDS
        return replace(self, fields=selected - HIDDEN_FIELDS)

    def paginate(self) -> "QueryFeatures":
        settings = get_settings()
        page = _positive_int(self.params.get("page"), 1)
        limit = min(_positive_int(self.params.get("limit"), settings.DEFAULT_PAGE_SIZE), settings.MAX_PAGE_SIZE)
        return replace(self, page=page, limit=limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * (self.limit or 0)

    def statement(self) -> Select:
        stmt = select(self.model).where(*self.base, *self.criteria)
        if self.ordering:
            stmt = stmt.order_by(*self.ordering)
        if self.limit is not None:
            stmt = stmt.offset(self.offset).limit(self.limit)
        return stmt

    def count_statement(self) -> Select:
        return select(func.count()).select_from(self.model).where(*self.base, *self.criteria)

    async def fetch_page(self, db: AsyncSession) -> tuple[list[Any], int]:
        total = (await db.execute(self.count_statement())).scalar_one()
        rows = list((await db.execute(self.statement())).scalars().all())
        return rows, total

    def page_meta(self, total: int) -> dict[str, int]:
        limit = self.limit or get_settings().DEFAULT_PAGE_SIZE
        return {
            "total": total,
            "page": self.page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }

    def project(self, data: dict[str, Any]) -> dict[str, Any]:
        if self.fields is None:
            return data
        return {key: value for key, value in data.items() if key in self.fields or key not in self._columns}

    @staticmethod
    def _parse_key(key: str) -> tuple[str, Optional[str]]:
        for pattern in (_BRACKET_KEY, _SUFFIX_KEY):
            match = pattern.match(key)
            if match:
                return match.group("field"), match.group("op")
        return key, None

    @staticmethod
    def _coerce(name: str, column: Any, raw: str) -> Any:
        if name in REFERENCE_ID_FIELDS:
            try:
                return int(raw)
            except (TypeError, ValueError):
                raise BadRequestError(f"Invalid {name}: {raw}")

        try:
            python_type = column.type.python_type
        except NotImplementedError:
            return raw

        try:
            if python_type is bool:
                lowered = str(raw).lower()
                if lowered in _TRUE:
                    return True
                if lowered in _FALSE:
                    return False
                raise ValueError(raw)
            if python_type is datetime:
                return datetime.fromisoformat(raw)
            if python_type in (int, float):
                return python_type(raw)
        except (TypeError, ValueError):
            raise BadRequestError(f"Invalid {name}: {raw}")
        return raw


def with_page(items_key: str, items: Iterable[Any], meta: Mapping[str, int]) -> dict[str, Any]:
    """Assemble a listing response body."""
    items = list(items)
    return {**meta, "results": len(items), items_key: items}
