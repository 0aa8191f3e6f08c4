from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from backoffice.api.v1.deps import CurrentUserId, DbSession, require_permission
from backoffice.core.permissions import Permission
from backoffice.schemas.common import PagedResult
from backoffice.schemas.users import CreateUserRequest, UpdateUserRequest, UserOut
from backoffice.services import users as user_service
from backoffice.services.paging import PagedQuery, paged_query

router = APIRouter()


@router.get(
    "",
    response_model=PagedResult[UserOut],
    dependencies=[Depends(require_permission(Permission.USERS_READ))],
)
async def list_users(
    db: DbSession,
    is_active: Optional[bool] = Query(None, alias="isActive"),
    query: PagedQuery = Depends(paged_query),
):
    return await user_service.list_users(db, query, is_active=is_active)


@router.get(
    "/{user_id}",
    response_model=UserOut,
    dependencies=[Depends(require_permission(Permission.USERS_READ))],
)
async def get_user(user_id: UUID, db: DbSession):
    return await user_service.get_user(db, user_id)


@router.post(
    "",
    response_model=UserOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission(Permission.USERS_CREATE))],
)
async def create_user(payload: CreateUserRequest, db: DbSession):
    return await user_service.create_user(db, payload)


@router.put(
    "/{user_id}",
    response_model=UserOut,
    dependencies=[Depends(require_permission(Permission.USERS_UPDATE))],
)
async def update_user(user_id: UUID, payload: UpdateUserRequest, db: DbSession):
    """Update profile, active flag and roles; ``password`` resets the password when given."""
    return await user_service.update_user(db, user_id, payload)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission(Permission.USERS_DELETE))],
)
async def delete_user(user_id: UUID, current_user_id: CurrentUserId, db: DbSession):
    await user_service.delete_user(db, user_id, current_user_id)
