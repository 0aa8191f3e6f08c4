from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from backoffice.api.v1.deps import DbSession, require_permission
from backoffice.core.permissions import Permission
from backoffice.models.client import ClientStatus, ClientType, KycStatus, RiskLevel
from backoffice.schemas.clients import (
    ClientAccountOut,
    ClientListItem,
    ClientOut,
    CreateClientRequest,
    UpdateClientRequest,
)
from backoffice.schemas.common import PagedResult
from backoffice.services import clients as client_service
from backoffice.services.clients import ClientFilter
from backoffice.services.paging import PagedQuery, paged_query

router = APIRouter()


def client_filter(
    name: Optional[str] = Query(None),
    email: Optional[str] = Query(None),
    phone: Optional[str] = Query(None),
    external_id: Optional[str] = Query(None, alias="externalId"),
    status: list[ClientStatus] = Query([]),
    client_type: list[ClientType] = Query([], alias="clientType"),
    kyc_status: list[KycStatus] = Query([], alias="kycStatus"),
    risk_level: list[RiskLevel] = Query([], alias="riskLevel"),
    residence_country_ids: list[UUID] = Query([], alias="residenceCountryIds"),
    pep_status: Optional[bool] = Query(None, alias="pepStatus"),
    created_from: Optional[datetime] = Query(None, alias="createdFrom"),
    created_to: Optional[datetime] = Query(None, alias="createdTo"),
) -> ClientFilter:
    return ClientFilter(
        name=name,
        email=email,
        phone=phone,
        external_id=external_id,
        status=status,
        client_type=client_type,
        kyc_status=kyc_status,
        risk_level=risk_level,
        residence_country_ids=residence_country_ids,
        pep_status=pep_status,
        created_from=created_from,
        created_to=created_to,
    )


@router.get(
    "",
    response_model=PagedResult[ClientListItem],
    dependencies=[Depends(require_permission(Permission.CLIENTS_READ))],
)
async def list_clients(
    db: DbSession,
    filters: ClientFilter = Depends(client_filter),
    query: PagedQuery = Depends(paged_query),
):
    """List clients. Default sort is newest first (``-createdAt``)."""
    return await client_service.list_clients(db, filters, query)


@router.get(
    "/{client_id}",
    response_model=ClientOut,
    dependencies=[Depends(require_permission(Permission.CLIENTS_READ))],
)
async def get_client(client_id: UUID, db: DbSession):
    return await client_service.get_client(db, client_id)


@router.get(
    "/{client_id}/accounts",
    response_model=list[ClientAccountOut],
    dependencies=[Depends(require_permission(Permission.CLIENTS_READ))],
)
async def list_client_accounts(client_id: UUID, db: DbSession):
    """Accounts the client holds, with the holder role on each."""
    return await client_service.list_client_accounts(db, client_id)


@router.post(
    "",
    response_model=ClientOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission(Permission.CLIENTS_CREATE))],
)
async def create_client(payload: CreateClientRequest, db: DbSession):
    return await client_service.create_client(db, payload)


@router.put(
    "/{client_id}",
    response_model=ClientOut,
    dependencies=[Depends(require_permission(Permission.CLIENTS_UPDATE))],
)
async def update_client(client_id: UUID, payload: UpdateClientRequest, db: DbSession):
    """
    Replace a client's data, addresses and investment profile.

    ``rowVersion`` must match the stored version, otherwise 409 is returned
    and nothing is written.
    """
    return await client_service.update_client(db, client_id, payload)


@router.delete(
    "/{client_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission(Permission.CLIENTS_DELETE))],
)
async def delete_client(client_id: UUID, db: DbSession):
    await client_service.delete_client(db, client_id)
