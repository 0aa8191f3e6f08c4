"""
Change History Queries

Both queries page over *operations* rather than field rows:

1. filter raw ``EntityChange`` rows,
2. group them per operation (timestamp = earliest row, one display name),
3. sort and take one page of operations,
4. re-fetch every field row of the page's operations,
5. regroup those rows into ``Operation -> ChangeGroup -> FieldChange``.

Operations whose rows vanished between steps 3 and 4 are dropped from the page.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.audit.change_tracking import MODIFIED
from backoffice.models.audit import EntityChange
from backoffice.schemas.audit import (
    EntityChangeGroupDto,
    FieldChangeDto,
    GlobalOperationDto,
    OperationDto,
)
from backoffice.schemas.common import PagedResult
from backoffice.services.paging import PagedQuery, apply_sort, contains, count_rows


@dataclass
class OperationHeader:
    operation_id: UUID
    timestamp: datetime
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None


@dataclass
class EntityChangeFilter:
    from_: Optional[datetime] = None
    to: Optional[datetime] = None
    user_names: list[str] = field(default_factory=list)
    entity_type: Optional[str] = None
    change_type: Optional[str] = None


def operation_change_type(rows: Iterable[EntityChange]) -> str:
    """The uniform change type of the rows, else ``Modified``."""
    types = {row.change_type for row in rows}
    if len(types) == 1:
        return types.pop()
    return MODIFIED


def group_changes(rows: Sequence[EntityChange]) -> list[EntityChangeGroupDto]:
    """
    Group an operation's rows by related entity, in order of first appearance.

    The group's change type is that of its first row.
    """
    groups: "OrderedDict[tuple, list[EntityChange]]" = OrderedDict()
    for row in rows:
        groups.setdefault((row.related_entity_type, row.related_entity_id), []).append(row)

    return [
        EntityChangeGroupDto(
            related_entity_type=related_type,
            related_entity_id=related_id,
            related_entity_display_name=group_rows[0].related_entity_display_name,
            change_type=group_rows[0].change_type,
            fields=[
                FieldChangeDto(
                    field_name=row.field_name,
                    change_type=row.change_type,
                    old_value=row.old_value,
                    new_value=row.new_value,
                )
                for row in group_rows
            ],
        )
        for (related_type, related_id), group_rows in groups.items()
    ]


def build_operations(
    headers: Sequence[OperationHeader],
    rows: Sequence[EntityChange],
    global_view: bool = False,
) -> list[OperationDto]:
    """
    Assemble operation DTOs for one page.

    ``rows`` must be ordered by timestamp then sequence. In the global view an
    operation is keyed by ``(operation_id, entity_type, entity_id)``.
    """
    by_key: dict[tuple, list[EntityChange]] = {}
    for row in rows:
        key = (row.operation_id, row.entity_type, row.entity_id) if global_view else (row.operation_id,)
        by_key.setdefault(key, []).append(row)

    operations: list[OperationDto] = []
    for header in headers:
        key = (
            (header.operation_id, header.entity_type, header.entity_id)
            if global_view
            else (header.operation_id,)
        )
        op_rows = by_key.get(key)
        if not op_rows:
            continue

        first = op_rows[0]
        values = dict(
            operation_id=header.operation_id,
            timestamp=header.timestamp,
            user_id=first.user_id,
            user_name=first.user_name,
            entity_display_name=first.entity_display_name,
            change_type=operation_change_type(op_rows),
            changes=group_changes(op_rows),
        )
        if global_view:
            operations.append(GlobalOperationDto(entity_type=header.entity_type, entity_id=header.entity_id, **values))
        else:
            operations.append(OperationDto(**values))
    return operations


async def get_entity_changes(
    db: AsyncSession,
    entity_type: str,
    entity_id: str,
    query: PagedQuery,
) -> PagedResult[OperationDto]:
    """
    Change history of one entity.

    ``sort`` accepts ``timestamp`` (``-`` prefix for descending); the default
    is newest operation first.
    """
    conditions = (EntityChange.entity_type == entity_type, EntityChange.entity_id == entity_id)

    grouped = (
        select(
            EntityChange.operation_id.label("operation_id"),
            func.min(EntityChange.timestamp).label("first_timestamp"),
        )
        .where(*conditions)
        .group_by(EntityChange.operation_id)
        .subquery()
    )

    page_stmt = apply_sort(
        select(grouped),
        query.sort,
        {"timestamp": grouped.c.first_timestamp},
        default=(grouped.c.first_timestamp.desc(),),
        tiebreaker=grouped.c.operation_id,
    )
    total = await count_rows(db, page_stmt)
    page_rows = (await db.execute(page_stmt.offset(query.offset).limit(query.page_size))).all()
    headers = [OperationHeader(row.operation_id, row.first_timestamp) for row in page_rows]

    rows: Sequence[EntityChange] = []
    if headers:
        rows = (await db.execute(
            select(EntityChange)
            .where(*conditions, EntityChange.operation_id.in_([h.operation_id for h in headers]))
            .order_by(EntityChange.timestamp, EntityChange.sequence)
        )).scalars().all()

    return PagedResult[OperationDto].create(build_operations(headers, rows), total, query.page, query.page_size)


def _global_conditions(filters: EntityChangeFilter, q: Optional[str]) -> list:
    conditions = []
    if filters.from_ is not None:
        conditions.append(EntityChange.timestamp >= filters.from_)
    if filters.to is not None:
        conditions.append(EntityChange.timestamp <= filters.to)
    if filters.user_names:
        conditions.append(EntityChange.user_name.in_(filters.user_names))
    if filters.entity_type:
        conditions.append(EntityChange.entity_type == filters.entity_type)
    if filters.change_type:
        with_type = select(EntityChange.operation_id).where(EntityChange.change_type == filters.change_type)
        conditions.append(EntityChange.operation_id.in_(with_type))
    if q:
        conditions.append(or_(
            contains(EntityChange.user_name, q),
            contains(EntityChange.entity_type, q),
            contains(EntityChange.entity_display_name, q),
        ))
    return conditions


async def get_all_entity_changes(
    db: AsyncSession,
    filters: EntityChangeFilter,
    query: PagedQuery,
) -> PagedResult[GlobalOperationDto]:
    """Global change feed: one item per operation and root entity."""
    grouped = (
        select(
            EntityChange.operation_id.label("operation_id"),
            EntityChange.entity_type.label("entity_type"),
            EntityChange.entity_id.label("entity_id"),
            func.min(EntityChange.timestamp).label("first_timestamp"),
            func.max(EntityChange.entity_display_name).label("entity_display_name"),
            func.max(EntityChange.user_name).label("user_name"),
        )
        .where(*_global_conditions(filters, query.q))
        .group_by(EntityChange.operation_id, EntityChange.entity_type, EntityChange.entity_id)
        .subquery()
    )

    sortable = {
        "timestamp": grouped.c.first_timestamp,
        "entitydisplayname": grouped.c.entity_display_name,
        "username": grouped.c.user_name,
        "entitytype": grouped.c.entity_type,
    }
    page_stmt = apply_sort(
        select(grouped),
        query.sort,
        sortable,
        default=(grouped.c.first_timestamp.desc(),),
    ).order_by(grouped.c.operation_id, grouped.c.entity_id)

    total = await count_rows(db, page_stmt)
    page_rows = (await db.execute(page_stmt.offset(query.offset).limit(query.page_size))).all()
    headers = [
        OperationHeader(
            operation_id=row.operation_id,
            timestamp=row.first_timestamp,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
        )
        for row in page_rows
    ]

    rows: Sequence[EntityChange] = []
    if headers:
        operation_ids = list({h.operation_id for h in headers})
        rows = (await db.execute(
            select(EntityChange)
            .where(EntityChange.operation_id.in_(operation_ids))
            .order_by(EntityChange.timestamp, EntityChange.sequence)
        )).scalars().all()

    return PagedResult[GlobalOperationDto].create(
        build_operations(headers, rows, global_view=True), total, query.page, query.page_size
    )
