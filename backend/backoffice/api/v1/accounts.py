from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from backoffice.api.v1.deps import DbSession, require_permission
from backoffice.core.permissions import Permission
from backoffice.models.account import AccountStatus, AccountType
from backoffice.schemas.accounts import (
    AccountListItem,
    AccountOut,
    CreateAccountRequest,
    SetHoldersRequest,
    UpdateAccountRequest,
)
from backoffice.schemas.common import PagedResult
from backoffice.services import accounts as account_service
from backoffice.services.accounts import AccountFilter
from backoffice.services.paging import PagedQuery, paged_query

router = APIRouter()


def account_filter(
    number: Optional[str] = Query(None),
    status: list[AccountStatus] = Query([]),
    account_type: list[AccountType] = Query([], alias="accountType"),
) -> AccountFilter:
    return AccountFilter(number=number, status=status, account_type=account_type)


@router.get(
    "",
    response_model=PagedResult[AccountListItem],
    dependencies=[Depends(require_permission(Permission.ACCOUNTS_READ))],
)
async def list_accounts(
    db: DbSession,
    filters: AccountFilter = Depends(account_filter),
    query: PagedQuery = Depends(paged_query),
):
    return await account_service.list_accounts(db, filters, query)


@router.get(
    "/{account_id}",
    response_model=AccountOut,
    dependencies=[Depends(require_permission(Permission.ACCOUNTS_READ))],
)
async def get_account(account_id: UUID, db: DbSession):
    """Get an account with its holders."""
    return await account_service.get_account(db, account_id)


@router.post(
    "",
    response_model=AccountOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission(Permission.ACCOUNTS_CREATE))],
)
async def create_account(payload: CreateAccountRequest, db: DbSession):
    return await account_service.create_account(db, payload)


@router.put(
    "/{account_id}",
    response_model=AccountOut,
    dependencies=[Depends(require_permission(Permission.ACCOUNTS_UPDATE))],
)
async def update_account(account_id: UUID, payload: UpdateAccountRequest, db: DbSession):
    return await account_service.update_account(db, account_id, payload)


@router.put(
    "/{account_id}/holders",
    response_model=AccountOut,
    dependencies=[Depends(require_permission(Permission.ACCOUNTS_UPDATE))],
)
async def set_account_holders(account_id: UUID, payload: SetHoldersRequest, db: DbSession):
    """
    Replace the account's holders.

    At most one holder may be primary. Unknown client ids return 409.
    """
    return await account_service.set_account_holders(db, account_id, payload)


@router.delete(
    "/{account_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission(Permission.ACCOUNTS_DELETE))],
)
async def delete_account(account_id: UUID, db: DbSession):
    await account_service.delete_account(db, account_id)
