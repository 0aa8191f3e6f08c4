from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.exceptions import NotFoundError
from backoffice.models.audit import AuditLog
from backoffice.schemas.audit import AuditLogOut
from backoffice.schemas.common import PagedResult
from backoffice.services.paging import PagedQuery, apply_sort, contains, paginate, sortable_columns


@dataclass
class AuditLogFilter:
    from_: Optional[datetime] = None
    to: Optional[datetime] = None
    user_id: Optional[UUID] = None
    user_name: Optional[str] = None
    action: Optional[str] = None
    entity_type: Optional[str] = None
    is_success: Optional[bool] = None
    method: Optional[str] = None
    path: Optional[str] = None
    status_code: Optional[int] = None


async def list_audit_logs(db: AsyncSession, filters: AuditLogFilter, query: PagedQuery) -> PagedResult[AuditLogOut]:
    stmt = select(AuditLog)

    if filters.from_ is not None:
        stmt = stmt.where(AuditLog.created_at >= filters.from_)
    if filters.to is not None:
        stmt = stmt.where(AuditLog.created_at <= filters.to)
    if filters.user_id is not None:
        stmt = stmt.where(AuditLog.user_id == filters.user_id)
    if filters.user_name:
        stmt = stmt.where(contains(AuditLog.user_name, filters.user_name))
    if filters.action:
        stmt = stmt.where(contains(AuditLog.action, filters.action))
    if filters.entity_type:
        stmt = stmt.where(AuditLog.entity_type == filters.entity_type)
    if filters.is_success is not None:
        stmt = stmt.where(AuditLog.is_success == filters.is_success)
    if filters.method:
        stmt = stmt.where(AuditLog.method == filters.method.upper())
    if filters.path:
        stmt = stmt.where(contains(AuditLog.path, filters.path))
    if filters.status_code is not None:
        stmt = stmt.where(AuditLog.status_code == filters.status_code)
    if query.q:
        stmt = stmt.where(or_(
            contains(AuditLog.user_name, query.q),
            contains(AuditLog.action, query.q),
            contains(AuditLog.entity_type, query.q),
            contains(AuditLog.path, query.q),
        ))

    stmt = apply_sort(
        stmt,
        query.sort,
        sortable_columns(AuditLog),
        default=(AuditLog.created_at.desc(),),
        tiebreaker=AuditLog.id,
    )
    return await paginate(db, stmt, query, AuditLogOut.model_validate)


async def get_audit_log(db: AsyncSession, audit_log_id: UUID) -> AuditLogOut:
    entry = await db.get(AuditLog, audit_log_id)
    if entry is None:
        raise NotFoundError("AuditLog", audit_log_id)
    return AuditLogOut.model_validate(entry)
