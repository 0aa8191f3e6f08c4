"""
Client handlers.

Updating a client replaces its address list wholesale and upserts or removes
its investment profile, all in one flush, so the change history shows a
single operation.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backoffice.audit.audit_logger import snapshot
from backoffice.audit.context import record_entity
from backoffice.core.exceptions import ConflictError, NotFoundError, ValidationFailedError
from backoffice.models.account import Account, AccountHolder
from backoffice.models.client import (
    Client,
    ClientAddress,
    ClientStatus,
    ClientType,
    InvestmentProfile,
    KycStatus,
    RiskLevel,
)
from backoffice.models.reference import Country
from backoffice.schemas.clients import (
    ClientAccountOut,
    ClientFields,
    ClientListItem,
    ClientOut,
    CreateClientRequest,
    UpdateClientRequest,
)
from backoffice.schemas.common import PagedResult
from backoffice.services.common import ensure_row_version, stamp_created, stamp_updated
from backoffice.services.paging import PagedQuery, apply_sort, contains, paginate, sortable_columns

logger = logging.getLogger(__name__)

_CLIENT_FIELDS = tuple(ClientFields.model_fields)
_PROFILE_FIELDS = ("objective", "risk_tolerance", "liquidity_needs", "time_horizon", "knowledge", "experience", "notes")


@dataclass
class ClientFilter:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    external_id: Optional[str] = None
    status: list[ClientStatus] = field(default_factory=list)
    client_type: list[ClientType] = field(default_factory=list)
    kyc_status: list[KycStatus] = field(default_factory=list)
    risk_level: list[RiskLevel] = field(default_factory=list)
    residence_country_ids: list[UUID] = field(default_factory=list)
    pep_status: Optional[bool] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None


def _client_snapshot(client: Client) -> dict:
    profile = client.investment_profile
    return snapshot(
        client,
        addresses=[snapshot(address) for address in client.addresses],
        investment_profile=snapshot(profile) if profile is not None else None,
    )


async def _load_client(db: AsyncSession, client_id: UUID) -> Client:
    client = (await db.execute(
        select(Client)
        .options(selectinload(Client.addresses), selectinload(Client.investment_profile))
        .where(Client.id == client_id)
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if client is None:
        raise NotFoundError("Client", client_id)
    return client


async def _validate(db: AsyncSession, request: CreateClientRequest, exclude_id: Optional[UUID] = None) -> None:
    errors: dict[str, list[str]] = {}

    if request.client_type == ClientType.INDIVIDUAL:
        if not request.first_name:
            errors.setdefault("firstName", []).append("First name is required for individual clients.")
        if not request.last_name:
            errors.setdefault("lastName", []).append("Last name is required for individual clients.")
    elif not request.company_name:
        errors.setdefault("companyName", []).append("Company name is required for corporate clients.")

    country_ids = {a.country_id for a in request.addresses}
    country_ids.update(cid for cid in (request.residence_country_id, request.citizenship_country_id) if cid)
    if country_ids:
        found = set((await db.execute(select(Country.id).where(Country.id.in_(country_ids)))).scalars().all())
        if found != country_ids:
            errors.setdefault("countryId", []).append("One or more country IDs are invalid.")

    if errors:
        raise ValidationFailedError(errors)

    stmt = select(Client.id).where(Client.email == request.email)
    if exclude_id is not None:
        stmt = stmt.where(Client.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise ConflictError(f"A client with email '{request.email}' already exists")


def _apply_fields(client: Client, request: ClientFields) -> None:
    for name in _CLIENT_FIELDS:
        setattr(client, name, getattr(request, name))


def _new_addresses(client_id: UUID, request: CreateClientRequest) -> list[ClientAddress]:
    return [ClientAddress(client_id=client_id, **address.model_dump()) for address in request.addresses]


async def list_clients(db: AsyncSession, filters: ClientFilter, query: PagedQuery) -> PagedResult[ClientListItem]:
    stmt = select(Client)

    if filters.name:
        stmt = stmt.where(or_(
            contains(Client.first_name, filters.name),
            contains(Client.last_name, filters.name),
            contains(Client.company_name, filters.name),
        ))
    if filters.email:
        stmt = stmt.where(contains(Client.email, filters.email))
    if filters.phone:
        stmt = stmt.where(contains(Client.phone, filters.phone))
    if filters.external_id:
        stmt = stmt.where(contains(Client.external_id, filters.external_id))
    if filters.status:
        stmt = stmt.where(Client.status.in_(filters.status))
    if filters.client_type:
        stmt = stmt.where(Client.client_type.in_(filters.client_type))
    if filters.kyc_status:
        stmt = stmt.where(Client.kyc_status.in_(filters.kyc_status))
    if filters.risk_level:
        stmt = stmt.where(Client.risk_level.in_(filters.risk_level))
    if filters.residence_country_ids:
        stmt = stmt.where(Client.residence_country_id.in_(filters.residence_country_ids))
    if filters.pep_status is not None:
        stmt = stmt.where(Client.pep_status == filters.pep_status)
    if filters.created_from is not None:
        stmt = stmt.where(Client.created_at >= filters.created_from)
    if filters.created_to is not None:
        stmt = stmt.where(Client.created_at <= filters.created_to)
    if query.q:
        stmt = stmt.where(or_(
            contains(Client.first_name, query.q),
            contains(Client.last_name, query.q),
            contains(Client.company_name, query.q),
            contains(Client.email, query.q),
            contains(Client.phone, query.q),
            contains(Client.external_id, query.q),
        ))

    columns = sortable_columns(Client, display_name=func.coalesce(Client.company_name, Client.last_name))
    stmt = apply_sort(stmt, query.sort, columns, default=(Client.created_at.desc(),), tiebreaker=Client.id)
    return await paginate(db, stmt, query, ClientListItem.model_validate)


async def get_client(db: AsyncSession, client_id: UUID) -> ClientOut:
    return ClientOut.model_validate(await _load_client(db, client_id))


async def create_client(db: AsyncSession, request: CreateClientRequest) -> ClientOut:
    await _validate(db, request)

    client = Client(id=uuid4())
    _apply_fields(client, request)
    stamp_created(client)
    client.addresses = _new_addresses(client.id, request)
    client.investment_profile = (
        InvestmentProfile(client_id=client.id, **request.investment_profile.model_dump())
        if request.investment_profile is not None
        else None
    )
    db.add(client)
    await db.flush()

    record_entity("Client", client.id, after=_client_snapshot(client))
    await db.commit()

    logger.info("Client created", extra={"event": "client_created", "client_id": str(client.id)})
    return ClientOut.model_validate(await _load_client(db, client.id))


async def update_client(db: AsyncSession, client_id: UUID, request: UpdateClientRequest) -> ClientOut:
    client = await _load_client(db, client_id)
    ensure_row_version(client, request.row_version)
    await _validate(db, request, exclude_id=client.id)

    before = _client_snapshot(client)

    _apply_fields(client, request)

    # Addresses are replaced as a set; matching old/new rows collapse in the history
    client.addresses.clear()
    for address in _new_addresses(client.id, request):
        client.addresses.append(address)

    if request.investment_profile is None:
        client.investment_profile = None
    elif client.investment_profile is None:
        client.investment_profile = InvestmentProfile(client_id=client.id, **request.investment_profile.model_dump())
    else:
        for name in _PROFILE_FIELDS:
            setattr(client.investment_profile, name, getattr(request.investment_profile, name))

    stamp_updated(client)
    await db.flush()

    record_entity("Client", client.id, before=before, after=_client_snapshot(client))
    await db.commit()

    logger.info("Client updated", extra={"event": "client_updated", "client_id": str(client.id)})
    return ClientOut.model_validate(await _load_client(db, client.id))


async def delete_client(db: AsyncSession, client_id: UUID) -> None:
    client = await _load_client(db, client_id)

    holdings = (await db.execute(
        select(func.count()).select_from(AccountHolder).where(AccountHolder.client_id == client_id)
    )).scalar_one()
    if holdings:
        raise ConflictError("The client is a holder of one or more accounts and cannot be deleted")

    record_entity("Client", client.id, before=_client_snapshot(client))
    await db.delete(client)
    await db.commit()

    logger.info("Client deleted", extra={"event": "client_deleted", "client_id": str(client_id)})


async def list_client_accounts(db: AsyncSession, client_id: UUID) -> list[ClientAccountOut]:
    if await db.get(Client, client_id) is None:
        raise NotFoundError("Client", client_id)

    rows = (await db.execute(
        select(Account, AccountHolder)
        .join(AccountHolder, AccountHolder.account_id == Account.id)
        .where(AccountHolder.client_id == client_id)
        .order_by(Account.number, AccountHolder.role)
    )).all()

    return [
        ClientAccountOut(
            account_id=account.id,
            number=account.number,
            status=account.status.value,
            account_type=account.account_type.value,
            role=holder.role.value,
            is_primary=holder.is_primary,
            added_at=holder.added_at,
        )
        for account, holder in rows
    ]
