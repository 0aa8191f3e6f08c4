from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from backoffice.api.v1.deps import DbSession, require_permission
from backoffice.core.permissions import Permission
from backoffice.models.order import OrderStatus, TradeSide
from backoffice.schemas.common import PagedResult
from backoffice.schemas.orders import CreateTradeOrderRequest, TradeOrderOut, UpdateTradeOrderRequest
from backoffice.services import orders as order_service
from backoffice.services.orders import TradeOrderFilter
from backoffice.services.paging import PagedQuery, paged_query

router = APIRouter()


def trade_order_filter(
    account_id: Optional[UUID] = Query(None, alias="accountId"),
    instrument_id: Optional[UUID] = Query(None, alias="instrumentId"),
    status: list[OrderStatus] = Query([]),
    side: list[TradeSide] = Query([]),
    order_date_from: Optional[datetime] = Query(None, alias="orderDateFrom"),
    order_date_to: Optional[datetime] = Query(None, alias="orderDateTo"),
) -> TradeOrderFilter:
    return TradeOrderFilter(
        account_id=account_id,
        instrument_id=instrument_id,
        status=status,
        side=side,
        order_date_from=order_date_from,
        order_date_to=order_date_to,
    )


@router.get(
    "",
    response_model=PagedResult[TradeOrderOut],
    dependencies=[Depends(require_permission(Permission.ORDERS_READ))],
)
async def list_trade_orders(
    db: DbSession,
    filters: TradeOrderFilter = Depends(trade_order_filter),
    query: PagedQuery = Depends(paged_query),
):
    return await order_service.list_trade_orders(db, filters, query)


@router.get(
    "/{order_id}",
    response_model=TradeOrderOut,
    dependencies=[Depends(require_permission(Permission.ORDERS_READ))],
)
async def get_trade_order(order_id: UUID, db: DbSession):
    return await order_service.get_trade_order(db, order_id)


@router.post(
    "",
    response_model=TradeOrderOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission(Permission.ORDERS_CREATE))],
)
async def create_trade_order(payload: CreateTradeOrderRequest, db: DbSession):
    """Place a trade order. The order number is generated and the status starts as ``New``."""
    return await order_service.create_trade_order(db, payload)


@router.put(
    "/{order_id}",
    response_model=TradeOrderOut,
    dependencies=[Depends(require_permission(Permission.ORDERS_UPDATE))],
)
async def update_trade_order(order_id: UUID, payload: UpdateTradeOrderRequest, db: DbSession):
    return await order_service.update_trade_order(db, order_id, payload)


@router.delete(
    "/{order_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission(Permission.ORDERS_DELETE))],
)
async def delete_trade_order(order_id: UUID, db: DbSession):
    await order_service.delete_trade_order(db, order_id)
