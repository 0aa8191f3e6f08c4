from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from backoffice.api.v1.deps import DbSession, require_permission
from backoffice.core.permissions import Permission
from backoffice.models.instrument import AssetClass, InstrumentStatus, InstrumentType
from backoffice.schemas.common import PagedResult
from backoffice.schemas.instruments import CreateInstrumentRequest, InstrumentOut, UpdateInstrumentRequest
from backoffice.services import instruments as instrument_service
from backoffice.services.instruments import InstrumentFilter
from backoffice.services.paging import PagedQuery, paged_query

router = APIRouter()


def instrument_filter(
    symbol: Optional[str] = Query(None),
    name: Optional[str] = Query(None),
    type: list[InstrumentType] = Query([]),
    status: list[InstrumentStatus] = Query([]),
    asset_class: list[AssetClass] = Query([], alias="assetClass"),
) -> InstrumentFilter:
    return InstrumentFilter(symbol=symbol, name=name, type=type, status=status, asset_class=asset_class)


@router.get(
    "",
    response_model=PagedResult[InstrumentOut],
    dependencies=[Depends(require_permission(Permission.INSTRUMENTS_READ))],
)
async def list_instruments(
    db: DbSession,
    filters: InstrumentFilter = Depends(instrument_filter),
    query: PagedQuery = Depends(paged_query),
):
    return await instrument_service.list_instruments(db, filters, query)


@router.get(
    "/{instrument_id}",
    response_model=InstrumentOut,
    dependencies=[Depends(require_permission(Permission.INSTRUMENTS_READ))],
)
async def get_instrument(instrument_id: UUID, db: DbSession):
    return await instrument_service.get_instrument(db, instrument_id)


@router.post(
    "",
    response_model=InstrumentOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission(Permission.INSTRUMENTS_CREATE))],
)
async def create_instrument(payload: CreateInstrumentRequest, db: DbSession):
    return await instrument_service.create_instrument(db, payload)


@router.put(
    "/{instrument_id}",
    response_model=InstrumentOut,
    dependencies=[Depends(require_permission(Permission.INSTRUMENTS_UPDATE))],
)
async def update_instrument(instrument_id: UUID, payload: UpdateInstrumentRequest, db: DbSession):
    return await instrument_service.update_instrument(db, instrument_id, payload)


@router.delete(
    "/{instrument_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission(Permission.INSTRUMENTS_DELETE))],
)
async def delete_instrument(instrument_id: UUID, db: DbSession):
    await instrument_service.delete_instrument(db, instrument_id)
