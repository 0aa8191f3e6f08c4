from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from backoffice.api.v1.deps import DbSession, require_permission
from backoffice.core.permissions import Permission
from backoffice.models.order import TradeSide
from backoffice.models.transaction import TransactionStatus
from backoffice.schemas.common import PagedResult
from backoffice.schemas.transactions import (
    CreateTradeTransactionRequest,
    TradeTransactionOut,
    UpdateTradeTransactionRequest,
)
from backoffice.services import transactions as transaction_service
from backoffice.services.paging import PagedQuery, paged_query
from backoffice.services.transactions import TradeTransactionFilter

router = APIRouter()


def trade_transaction_filter(
    order_id: Optional[UUID] = Query(None, alias="orderId"),
    instrument_id: Optional[UUID] = Query(None, alias="instrumentId"),
    status: list[TransactionStatus] = Query([]),
    side: list[TradeSide] = Query([]),
    transaction_date_from: Optional[datetime] = Query(None, alias="transactionDateFrom"),
    transaction_date_to: Optional[datetime] = Query(None, alias="transactionDateTo"),
) -> TradeTransactionFilter:
    return TradeTransactionFilter(
        order_id=order_id,
        instrument_id=instrument_id,
        status=status,
        side=side,
        transaction_date_from=transaction_date_from,
        transaction_date_to=transaction_date_to,
    )


@router.get(
    "",
    response_model=PagedResult[TradeTransactionOut],
    dependencies=[Depends(require_permission(Permission.TRANSACTIONS_READ))],
)
async def list_trade_transactions(
    db: DbSession,
    filters: TradeTransactionFilter = Depends(trade_transaction_filter),
    query: PagedQuery = Depends(paged_query),
):
    return await transaction_service.list_trade_transactions(db, filters, query)


@router.get(
    "/{transaction_id}",
    response_model=TradeTransactionOut,
    dependencies=[Depends(require_permission(Permission.TRANSACTIONS_READ))],
)
async def get_trade_transaction(transaction_id: UUID, db: DbSession):
    return await transaction_service.get_trade_transaction(db, transaction_id)


@router.post(
    "",
    response_model=TradeTransactionOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission(Permission.TRANSACTIONS_CREATE))],
)
async def create_trade_transaction(payload: CreateTradeTransactionRequest, db: DbSession):
    return await transaction_service.create_trade_transaction(db, payload)


@router.put(
    "/{transaction_id}",
    response_model=TradeTransactionOut,
    dependencies=[Depends(require_permission(Permission.TRANSACTIONS_UPDATE))],
)
async def update_trade_transaction(transaction_id: UUID, payload: UpdateTradeTransactionRequest, db: DbSession):
    return await transaction_service.update_trade_transaction(db, transaction_id, payload)


@router.delete(
    "/{transaction_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission(Permission.TRANSACTIONS_DELETE))],
)
async def delete_trade_transaction(transaction_id: UUID, db: DbSession):
    await transaction_service.delete_trade_transaction(db, transaction_id)
