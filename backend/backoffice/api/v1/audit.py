"""
Audit API Endpoints

Read-only views over the request-level audit log and the field-level change
history. Both require ``audit.read``.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from backoffice.api.v1.deps import DbSession, require_permission
from backoffice.core.permissions import Permission
from backoffice.schemas.audit import AuditLogOut, GlobalOperationDto, OperationDto
from backoffice.schemas.common import PagedResult
from backoffice.services import audit_logs as audit_log_service
from backoffice.services import entity_changes as entity_change_service
from backoffice.services.audit_logs import AuditLogFilter
from backoffice.services.entity_changes import EntityChangeFilter
from backoffice.services.paging import PagedQuery, paged_query

router = APIRouter(dependencies=[Depends(require_permission(Permission.AUDIT_READ))])
entity_changes_router = APIRouter(dependencies=[Depends(require_permission(Permission.AUDIT_READ))])


def audit_log_filter(
    from_: Optional[datetime] = Query(None, alias="from"),
    to: Optional[datetime] = Query(None),
    user_id: Optional[UUID] = Query(None, alias="userId"),
    user_name: Optional[str] = Query(None, alias="userName"),
    action: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None, alias="entityType"),
    is_success: Optional[bool] = Query(None, alias="isSuccess"),
    method: Optional[str] = Query(None),
    path: Optional[str] = Query(None),
    status_code: Optional[int] = Query(None, alias="statusCode"),
) -> AuditLogFilter:
    return AuditLogFilter(
        from_=from_,
        to=to,
        user_id=user_id,
        user_name=user_name,
        action=action,
        entity_type=entity_type,
        is_success=is_success,
        method=method,
        path=path,
        status_code=status_code,
    )


@router.get("", response_model=PagedResult[AuditLogOut])
async def list_audit_logs(
    db: DbSession,
    filters: AuditLogFilter = Depends(audit_log_filter),
    query: PagedQuery = Depends(paged_query),
):
    """List audit log entries, newest first unless ``sort`` says otherwise."""
    return await audit_log_service.list_audit_logs(db, filters, query)


@router.get("/{audit_log_id}", response_model=AuditLogOut)
async def get_audit_log(audit_log_id: UUID, db: DbSession):
    return await audit_log_service.get_audit_log(db, audit_log_id)


@entity_changes_router.get("", response_model=PagedResult[OperationDto])
async def get_entity_changes(
    db: DbSession,
    entity_type: str = Query(..., alias="entityType", min_length=1),
    entity_id: str = Query(..., alias="entityId", min_length=1),
    query: PagedQuery = Depends(paged_query),
):
    """
    Change history of one entity.

    Items are operations (one logical write each), newest first unless
    ``sort=timestamp`` asks for oldest first. Paging counts operations, not
    field rows.
    """
    return await entity_change_service.get_entity_changes(db, entity_type, entity_id, query)


@entity_changes_router.get("/all", response_model=PagedResult[GlobalOperationDto])
async def get_all_entity_changes(
    db: DbSession,
    from_: Optional[datetime] = Query(None, alias="from"),
    to: Optional[datetime] = Query(None),
    user_names: list[str] = Query([], alias="userName"),
    entity_type: Optional[str] = Query(None, alias="entityType"),
    change_type: Optional[str] = Query(None, alias="changeType"),
    query: PagedQuery = Depends(paged_query),
):
    """
    Global change feed across all entities.

    ``sort`` accepts ``timestamp``, ``entityDisplayName``, ``userName`` and
    ``entityType`` (``-`` prefix for descending); the default is ``-timestamp``.
    """
    filters = EntityChangeFilter(
        from_=from_,
        to=to,
        user_names=user_names,
        entity_type=entity_type,
        change_type=change_type,
    )
    return await entity_change_service.get_all_entity_changes(db, filters, query)
