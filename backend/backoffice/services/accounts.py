import logging
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backoffice.audit.audit_logger import snapshot
from backoffice.audit.context import record_entity
from backoffice.core.exceptions import ConflictError, NotFoundError, ValidationFailedError
from backoffice.models.account import Account, AccountHolder, AccountStatus, AccountType
from backoffice.models.client import Client
from backoffice.schemas.accounts import (
    AccountFields,
    AccountListItem,
    AccountOut,
    CreateAccountRequest,
    HolderOut,
    SetHoldersRequest,
    UpdateAccountRequest,
)
from backoffice.schemas.common import PagedResult
from backoffice.services.common import ensure_row_version, stamp_created, stamp_updated
from backoffice.services.paging import PagedQuery, apply_sort, contains, paginate, sortable_columns

logger = logging.getLogger(__name__)

_ACCOUNT_FIELDS = tuple(AccountFields.model_fields)
_AUDITED_FIELDS = ("created_at", "created_by", "updated_at", "updated_by", "row_version")
_WITH_HOLDERS = selectinload(Account.holders).selectinload(AccountHolder.client)


@dataclass
class AccountFilter:
    number: Optional[str] = None
    status: list[AccountStatus] = field(default_factory=list)
    account_type: list[AccountType] = field(default_factory=list)


def _account_values(account: Account) -> dict:
    return {key: getattr(account, key) for key in ("id", *_ACCOUNT_FIELDS, *_AUDITED_FIELDS)}


def holder_out(holder: AccountHolder) -> HolderOut:
    return HolderOut(
        client_id=holder.client_id,
        client_display_name=holder.client.display_name if holder.client is not None else None,
        role=holder.role,
        is_primary=holder.is_primary,
        added_at=holder.added_at,
    )


def account_out(account: Account) -> AccountOut:
    holders = sorted(account.holders, key=lambda h: (not h.is_primary, h.role.value, str(h.client_id)))
    return AccountOut.model_validate({**_account_values(account), "holders": [holder_out(h) for h in holders]})


def _account_list_item(account: Account) -> AccountListItem:
    return AccountListItem.model_validate({**_account_values(account), "holder_count": len(account.holders)})


def _account_snapshot(account: Account) -> dict:
    return snapshot(
        account,
        holders=[
            {"client_id": str(h.client_id), "role": h.role.value, "is_primary": h.is_primary}
            for h in account.holders
        ],
    )


async def _load_account(db: AsyncSession, account_id: UUID) -> Account:
    account = (await db.execute(
        select(Account).options(_WITH_HOLDERS).where(Account.id == account_id).execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if account is None:
        raise NotFoundError("Account", account_id)
    return account


async def _ensure_unique_number(db: AsyncSession, number: str, exclude_id: Optional[UUID] = None) -> None:
    stmt = select(Account.id).where(Account.number == number)
    if exclude_id is not None:
        stmt = stmt.where(Account.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise ConflictError(f"An account with number '{number}' already exists")


async def list_accounts(db: AsyncSession, filters: AccountFilter, query: PagedQuery) -> PagedResult[AccountListItem]:
    stmt = select(Account).options(selectinload(Account.holders))
    if filters.number:
        stmt = stmt.where(contains(Account.number, filters.number))
    if filters.status:
        stmt = stmt.where(Account.status.in_(filters.status))
    if filters.account_type:
        stmt = stmt.where(Account.account_type.in_(filters.account_type))
    if query.q:
        stmt = stmt.where(or_(
            contains(Account.number, query.q),
            contains(Account.comment, query.q),
            contains(Account.external_id, query.q),
        ))
    stmt = apply_sort(stmt, query.sort, sortable_columns(Account), default=(Account.number.asc(),), tiebreaker=Account.id)
    return await paginate(db, stmt, query, _account_list_item)


async def get_account(db: AsyncSession, account_id: UUID) -> AccountOut:
    return account_out(await _load_account(db, account_id))


async def create_account(db: AsyncSession, request: CreateAccountRequest) -> AccountOut:
    await _ensure_unique_number(db, request.number)

    account = Account(**request.model_dump(include=set(_ACCOUNT_FIELDS)))
    stamp_created(account)
    account.holders = []
    db.add(account)
    await db.flush()

    record_entity("Account", account.id, after=_account_snapshot(account))
    await db.commit()

    logger.info("Account created", extra={"event": "account_created", "account_id": str(account.id)})
    return account_out(await _load_account(db, account.id))


async def update_account(db: AsyncSession, account_id: UUID, request: UpdateAccountRequest) -> AccountOut:
    account = await _load_account(db, account_id)
    ensure_row_version(account, request.row_version)
    await _ensure_unique_number(db, request.number, exclude_id=account.id)

    before = _account_snapshot(account)
    for name in _ACCOUNT_FIELDS:
        setattr(account, name, getattr(request, name))
    stamp_updated(account)
    await db.flush()

    record_entity("Account", account.id, before=before, after=_account_snapshot(account))
    await db.commit()

    logger.info("Account updated", extra={"event": "account_updated", "account_id": str(account.id)})
    return account_out(await _load_account(db, account.id))


async def delete_account(db: AsyncSession, account_id: UUID) -> None:
    account = await _load_account(db, account_id)
    record_entity("Account", account.id, before=_account_snapshot(account))

    await db.delete(account)
    await db.commit()

    logger.info("Account deleted", extra={"event": "account_deleted", "account_id": str(account_id)})


async def set_account_holders(db: AsyncSession, account_id: UUID, request: SetHoldersRequest) -> AccountOut:
    """
    Replace the holder set of an account.

    Holders are keyed by ``(client_id, role)``: kept keys are updated in place,
    missing keys removed and new keys added, so the history shows one row set
    per holder that actually changed.
    """
    errors: dict[str, list[str]] = {}
    wanted = {}
    for holder in request.holders:
        key = (holder.client_id, holder.role)
        if key in wanted:
            errors.setdefault("holders", []).append(
                f"Client '{holder.client_id}' is listed twice with role '{holder.role.value}'."
            )
        wanted[key] = holder
    if sum(1 for h in request.holders if h.is_primary) > 1:
        errors.setdefault("holders", []).append("At most one holder can be primary.")
    if errors:
        raise ValidationFailedError(errors)

    account = await _load_account(db, account_id)

    client_ids = {client_id for client_id, _ in wanted}
    if client_ids:
        found = set((await db.execute(select(Client.id).where(Client.id.in_(client_ids)))).scalars().all())
        if found != client_ids:
            raise ConflictError("One or more client IDs are invalid")

    before = _account_snapshot(account)

    for holder in list(account.holders):
        key = (holder.client_id, holder.role)
        if key not in wanted:
            account.holders.remove(holder)
        elif holder.is_primary != wanted[key].is_primary:
            holder.is_primary = wanted[key].is_primary

    existing = {(h.client_id, h.role) for h in account.holders}
    for key, holder in wanted.items():
        if key not in existing:
            account.holders.append(
                AccountHolder(client_id=holder.client_id, role=holder.role, is_primary=holder.is_primary)
            )

    stamp_updated(account)
    await db.flush()

    record_entity("Account", account.id, before=before, after=_account_snapshot(account))
    await db.commit()

    logger.info(
        "Account holders replaced",
        extra={"event": "account_holders_set", "account_id": str(account.id), "holder_count": len(wanted)},
    )
    return account_out(await _load_account(db, account.id))
