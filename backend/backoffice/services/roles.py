import logging
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backoffice.audit.audit_logger import snapshot
from backoffice.audit.context import record_entity
from backoffice.core.exceptions import ConflictError, NotFoundError, ValidationFailedError
from backoffice.models.identity import Permission, Role, RolePermission
from backoffice.schemas.common import PagedResult
from backoffice.schemas.roles import (
    CreateRoleRequest,
    PermissionOut,
    RoleOut,
    SetRolePermissionsRequest,
    UpdateRoleRequest,
)
from backoffice.services.common import ensure_row_version, stamp_created, stamp_updated
from backoffice.services.paging import PagedQuery, apply_sort, contains, paginate, sortable_columns

logger = logging.getLogger(__name__)

_WITH_PERMISSIONS = selectinload(Role.role_permissions).selectinload(RolePermission.permission)


def role_out(role: Role) -> RoleOut:
    return RoleOut.model_validate({
        **{key: getattr(role, key) for key in (
            "id", "name", "description", "is_system",
            "created_at", "created_by", "updated_at", "updated_by", "row_version",
        )},
        "permissions": sorted(rp.permission.code for rp in role.role_permissions),
    })


def _role_snapshot(role: Role) -> dict:
    return snapshot(role, permission_ids=sorted(str(rp.permission_id) for rp in role.role_permissions))


async def _load_role(db: AsyncSession, role_id: UUID) -> Role:
    role = (await db.execute(
        select(Role).options(_WITH_PERMISSIONS).where(Role.id == role_id).execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if role is None:
        raise NotFoundError("Role", role_id)
    return role


async def _ensure_unique_name(db: AsyncSession, name: str, exclude_id: UUID | None = None) -> None:
    stmt = select(Role.id).where(Role.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Role.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise ConflictError(f"Role '{name}' already exists")


async def _validate_permissions(db: AsyncSession, permission_ids: list[UUID]) -> set[UUID]:
    wanted = set(permission_ids)
    if not wanted:
        return wanted
    found = set((await db.execute(select(Permission.id).where(Permission.id.in_(wanted)))).scalars().all())
    if found != wanted:
        raise ValidationFailedError({"permissionIds": ["One or more permission IDs are invalid."]})
    return wanted


def _sync_permissions(role: Role, permission_ids: set[UUID]) -> None:
    for role_permission in list(role.role_permissions):
        if role_permission.permission_id not in permission_ids:
            role.role_permissions.remove(role_permission)
    existing = {rp.permission_id for rp in role.role_permissions}
    for permission_id in permission_ids - existing:
        role.role_permissions.append(RolePermission(permission_id=permission_id))


async def list_roles(db: AsyncSession, query: PagedQuery) -> PagedResult[RoleOut]:
    stmt = select(Role).options(_WITH_PERMISSIONS)
    if query.q:
        stmt = stmt.where(or_(contains(Role.name, query.q), contains(Role.description, query.q)))
    stmt = apply_sort(stmt, query.sort, sortable_columns(Role), default=(Role.name.asc(),), tiebreaker=Role.id)
    return await paginate(db, stmt, query, role_out)


async def get_role(db: AsyncSession, role_id: UUID) -> RoleOut:
    return role_out(await _load_role(db, role_id))


async def create_role(db: AsyncSession, request: CreateRoleRequest) -> RoleOut:
    await _ensure_unique_name(db, request.name)
    permission_ids = await _validate_permissions(db, request.permission_ids)

    role = Role(name=request.name, description=request.description, is_system=False)
    stamp_created(role)
    role.role_permissions = [RolePermission(permission_id=pid) for pid in permission_ids]
    db.add(role)
    await db.flush()

    record_entity("Role", role.id, after=_role_snapshot(role))
    await db.commit()

    logger.info("Role created", extra={"event": "role_created", "role_id": str(role.id)})
    return role_out(await _load_role(db, role.id))


async def update_role(db: AsyncSession, role_id: UUID, request: UpdateRoleRequest) -> RoleOut:
    role = await _load_role(db, role_id)
    ensure_row_version(role, request.row_version)
    await _ensure_unique_name(db, request.name, exclude_id=role.id)

    before = _role_snapshot(role)
    role.name = request.name
    role.description = request.description
    stamp_updated(role)
    await db.flush()

    record_entity("Role", role.id, before=before, after=_role_snapshot(role))
    await db.commit()

    logger.info("Role updated", extra={"event": "role_updated", "role_id": str(role.id)})
    return role_out(await _load_role(db, role.id))


async def set_role_permissions(db: AsyncSession, role_id: UUID, request: SetRolePermissionsRequest) -> RoleOut:
    role = await _load_role(db, role_id)
    if request.row_version is not None:
        ensure_row_version(role, request.row_version)
    permission_ids = await _validate_permissions(db, request.permission_ids)

    before = _role_snapshot(role)
    _sync_permissions(role, permission_ids)
    stamp_updated(role)
    await db.flush()

    record_entity("Role", role.id, before=before, after=_role_snapshot(role))
    await db.commit()

    logger.info(
        "Role permissions replaced",
        extra={"event": "role_permissions_set", "role_id": str(role.id), "count": len(permission_ids)},
    )
    return role_out(await _load_role(db, role.id))


async def delete_role(db: AsyncSession, role_id: UUID) -> None:
    role = await _load_role(db, role_id)
    if role.is_system:
        raise ConflictError("System roles cannot be deleted")

    record_entity("Role", role.id, before=_role_snapshot(role))
    await db.delete(role)
    await db.commit()

    logger.info("Role deleted", extra={"event": "role_deleted", "role_id": str(role_id)})


async def list_permissions(db: AsyncSession) -> list[PermissionOut]:
    permissions = (await db.execute(select(Permission).order_by(Permission.group, Permission.code))).scalars().all()
    return [PermissionOut.model_validate(p) for p in permissions]
