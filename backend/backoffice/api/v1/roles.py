from uuid import UUID

from fastapi import APIRouter, Depends, status

from backoffice.api.v1.deps import DbSession, require_permission
from backoffice.core.permissions import Permission
from backoffice.schemas.common import PagedResult
from backoffice.schemas.roles import (
    CreateRoleRequest,
    PermissionOut,
    RoleOut,
    SetRolePermissionsRequest,
    UpdateRoleRequest,
)
from backoffice.services import roles as role_service
from backoffice.services.paging import PagedQuery, paged_query

router = APIRouter()
permissions_router = APIRouter()


@router.get(
    "",
    response_model=PagedResult[RoleOut],
    dependencies=[Depends(require_permission(Permission.ROLES_READ))],
)
async def list_roles(db: DbSession, query: PagedQuery = Depends(paged_query)):
    return await role_service.list_roles(db, query)


@router.get(
    "/{role_id}",
    response_model=RoleOut,
    dependencies=[Depends(require_permission(Permission.ROLES_READ))],
)
async def get_role(role_id: UUID, db: DbSession):
    return await role_service.get_role(db, role_id)


@router.post(
    "",
    response_model=RoleOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission(Permission.ROLES_CREATE))],
)
async def create_role(payload: CreateRoleRequest, db: DbSession):
    return await role_service.create_role(db, payload)


@router.put(
    "/{role_id}",
    response_model=RoleOut,
    dependencies=[Depends(require_permission(Permission.ROLES_UPDATE))],
)
async def update_role(role_id: UUID, payload: UpdateRoleRequest, db: DbSession):
    return await role_service.update_role(db, role_id, payload)


@router.put(
    "/{role_id}/permissions",
    response_model=RoleOut,
    dependencies=[Depends(require_permission(Permission.ROLES_UPDATE))],
)
async def set_role_permissions(role_id: UUID, payload: SetRolePermissionsRequest, db: DbSession):
    """Replace the role's permission set."""
    return await role_service.set_role_permissions(db, role_id, payload)


@router.delete(
    "/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission(Permission.ROLES_DELETE))],
)
async def delete_role(role_id: UUID, db: DbSession):
    """Delete a role. System roles cannot be deleted (409)."""
    await role_service.delete_role(db, role_id)


@permissions_router.get(
    "",
    response_model=list[PermissionOut],
    dependencies=[Depends(require_permission(Permission.PERMISSIONS_READ))],
)
async def list_permissions(db: DbSession):
    """The permission catalogue, ordered by group then code."""
    return await role_service.list_permissions(db)
