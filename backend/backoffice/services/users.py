import logging
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backoffice.audit.audit_logger import snapshot
from backoffice.audit.context import record_entity
from backoffice.core.exceptions import ConflictError, NotFoundError, ValidationFailedError
from backoffice.core.security import get_password_hash
from backoffice.models.identity import Role, User, UserRole
from backoffice.schemas.common import PagedResult
from backoffice.schemas.users import CreateUserRequest, UpdateUserRequest, UserOut
from backoffice.services.common import ensure_row_version, stamp_created, stamp_updated
from backoffice.services.paging import PagedQuery, apply_sort, contains, paginate, sortable_columns

logger = logging.getLogger(__name__)

_WITH_ROLES = selectinload(User.user_roles).selectinload(UserRole.role)


def user_out(user: User) -> UserOut:
    roles = sorted(user.user_roles, key=lambda ur: ur.role.name)
    return UserOut.model_validate({
        **{key: getattr(user, key) for key in (
            "id", "username", "email", "full_name", "is_active",
            "created_at", "created_by", "updated_at", "updated_by", "row_version",
        )},
        "roles": [ur.role.name for ur in roles],
        "role_ids": [ur.role_id for ur in roles],
    })


def _user_snapshot(user: User, role_ids) -> dict:
    return snapshot(user, role_ids=sorted(str(rid) for rid in role_ids))


async def _load_user(db: AsyncSession, user_id: UUID) -> User:
    user = (await db.execute(
        select(User).options(_WITH_ROLES).where(User.id == user_id).execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User", user_id)
    return user


async def _ensure_unique(db: AsyncSession, username: str | None, email: str, exclude_id: UUID | None = None) -> None:
    conditions = [User.email == email]
    if username is not None:
        conditions.append(User.username == username)
    stmt = select(User.username, User.email).where(or_(*conditions))
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    for existing_username, existing_email in (await db.execute(stmt)).all():
        if username is not None and existing_username == username:
            raise ConflictError(f"Username '{username}' is already taken")
        if existing_email == email:
            raise ConflictError(f"Email '{email}' is already in use")


async def _validate_roles(db: AsyncSession, role_ids: list[UUID]) -> set[UUID]:
    wanted = set(role_ids)
    if not wanted:
        return wanted
    found = set((await db.execute(select(Role.id).where(Role.id.in_(wanted)))).scalars().all())
    if found != wanted:
        raise ValidationFailedError({"roleIds": ["One or more role IDs are invalid."]})
    return wanted


async def list_users(db: AsyncSession, query: PagedQuery, is_active: bool | None = None) -> PagedResult[UserOut]:
    stmt = select(User).options(_WITH_ROLES)
    if is_active is not None:
        stmt = stmt.where(User.is_active == is_active)
    if query.q:
        stmt = stmt.where(or_(
            contains(User.username, query.q),
            contains(User.email, query.q),
            contains(User.full_name, query.q),
        ))
    stmt = apply_sort(stmt, query.sort, sortable_columns(User), default=(User.username.asc(),), tiebreaker=User.id)
    return await paginate(db, stmt, query, user_out)


async def get_user(db: AsyncSession, user_id: UUID) -> UserOut:
    return user_out(await _load_user(db, user_id))


async def create_user(db: AsyncSession, request: CreateUserRequest) -> UserOut:
    await _ensure_unique(db, request.username, request.email)
    role_ids = await _validate_roles(db, request.role_ids)

    user = User(
        username=request.username,
        email=request.email,
        password_hash=get_password_hash(request.password),
        full_name=request.full_name,
        is_active=request.is_active,
    )
    stamp_created(user)
    user.user_roles = [UserRole(role_id=role_id) for role_id in role_ids]
    db.add(user)
    await db.flush()

    record_entity("User", user.id, after=_user_snapshot(user, role_ids))
    await db.commit()

    logger.info("User created", extra={"event": "user_created", "user_id": str(user.id)})
    return user_out(await _load_user(db, user.id))


async def update_user(db: AsyncSession, user_id: UUID, request: UpdateUserRequest) -> UserOut:
    user = await _load_user(db, user_id)
    ensure_row_version(user, request.row_version)
    await _ensure_unique(db, None, request.email, exclude_id=user.id)
    role_ids = await _validate_roles(db, request.role_ids)

    before = _user_snapshot(user, [ur.role_id for ur in user.user_roles])

    user.email = request.email
    user.full_name = request.full_name
    user.is_active = request.is_active
    if request.password:
        user.password_hash = get_password_hash(request.password)

    for user_role in list(user.user_roles):
        if user_role.role_id not in role_ids:
            user.user_roles.remove(user_role)
    existing = {ur.role_id for ur in user.user_roles}
    for role_id in role_ids - existing:
        user.user_roles.append(UserRole(role_id=role_id))

    stamp_updated(user)
    await db.flush()

    record_entity("User", user.id, before=before, after=_user_snapshot(user, role_ids))
    await db.commit()

    logger.info("User updated", extra={"event": "user_updated", "user_id": str(user.id)})
    return user_out(await _load_user(db, user.id))


async def delete_user(db: AsyncSession, user_id: UUID, current_user_id: UUID | None) -> None:
    if current_user_id is not None and user_id == current_user_id:
        raise ConflictError("You cannot delete your own account")

    user = await _load_user(db, user_id)
    record_entity("User", user.id, before=_user_snapshot(user, [ur.role_id for ur in user.user_roles]))

    await db.delete(user)
    await db.commit()

    logger.info("User deleted", extra={"event": "user_deleted", "user_id": str(user_id)})
