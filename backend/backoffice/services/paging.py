"""
Paging, sorting and text filtering for list queries.

A list endpoint builds a ``select()`` with its filters, hands it to
``apply_sort`` and then to ``paginate``:

    stmt = apply_sort(stmt, query.sort, sortable_columns(Client), default=(Client.created_at.desc(),))
    return await paginate(db, stmt, query, ClientListItem.model_validate)
"""
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from fastapi import Query
from sqlalchemy import Select, func, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import settings
from backoffice.schemas.common import PagedResult

LIKE_ESCAPE = "\\"


@dataclass
class PagedQuery:
    page: int = 1
    page_size: int = settings.DEFAULT_PAGE_SIZE
    sort: Optional[str] = None
    q: Optional[str] = None

    def __post_init__(self):
        self.page = 1 if self.page is None or self.page < 1 else self.page
        if self.page_size is None or self.page_size < 1:
            self.page_size = 1
        elif self.page_size > settings.MAX_PAGE_SIZE:
            self.page_size = settings.MAX_PAGE_SIZE
        self.q = self.q.strip() if self.q and self.q.strip() else None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def paged_query(
    page: int = Query(1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, alias="pageSize"),
    sort: Optional[str] = Query(None),
    q: Optional[str] = Query(None),
) -> PagedQuery:
    """FastAPI dependency reading ``page``, ``pageSize``, ``sort`` and ``q``."""
    return PagedQuery(page=page, page_size=page_size, sort=sort, q=q)


def escape_like(text: str) -> str:
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", f"{LIKE_ESCAPE}%")
        .replace("_", f"{LIKE_ESCAPE}_")
    )


def contains_pattern(text: str) -> str:
    return f"%{escape_like(text)}%"


def contains(column, text: str):
    """Case-insensitive ``column LIKE %text%`` with wildcards escaped."""
    return column.ilike(contains_pattern(text), escape=LIKE_ESCAPE)


def normalize_sort_key(name: str) -> str:
    return name.replace("_", "").lower()


def sortable_columns(model, **extra) -> dict[str, Any]:
    """Map normalized attribute names of ``model`` to its columns."""
    columns = {
        normalize_sort_key(attr.key): getattr(model, attr.key)
        for attr in inspect(model).column_attrs
    }
    for key, column in extra.items():
        columns[normalize_sort_key(key)] = column
    return columns


def parse_sort(sort: Optional[str]) -> tuple[Optional[str], bool]:
    """``"-createdAt"`` -> ``("createdat", True)``."""
    if not sort or not sort.strip():
        return None, False
    sort = sort.strip()
    descending = sort.startswith("-")
    name = sort[1:] if descending else sort
    return normalize_sort_key(name), descending


def apply_sort(
    stmt: Select,
    sort: Optional[str],
    columns: dict[str, Any],
    default: Sequence = (),
    tiebreaker=None,
) -> Select:
    """
    Order ``stmt`` by the requested attribute.

    Unknown attributes fall back to ``default``. ``tiebreaker`` is appended
    last so pages stay stable when sort values repeat.
    """
    key, descending = parse_sort(sort)
    column = columns.get(key) if key else None
    if column is not None:
        stmt = stmt.order_by(column.desc() if descending else column.asc())
    elif default:
        stmt = stmt.order_by(*default)
    if tiebreaker is not None:
        stmt = stmt.order_by(tiebreaker)
    return stmt


async def count_rows(db: AsyncSession, stmt: Select) -> int:
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    return (await db.execute(count_stmt)).scalar_one()


async def paginate(
    db: AsyncSession,
    stmt: Select,
    query: PagedQuery,
    mapper: Callable[[Any], Any],
) -> PagedResult:
    total = await count_rows(db, stmt)
    result = await db.execute(stmt.offset(query.offset).limit(query.page_size))
    items = [mapper(row) for row in result.scalars().unique().all()]
    return PagedResult.create(items, total, query.page, query.page_size)
