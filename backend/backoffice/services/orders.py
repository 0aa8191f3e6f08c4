"""
Trade order handlers.

An order is stored as an ``Order`` header plus a one-to-one ``TradeOrder``
detail row; both are written in the same flush and share one operation in the
change history.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backoffice.audit.audit_logger import snapshot
from backoffice.audit.context import record_entity
from backoffice.core.exceptions import NotFoundError, ValidationFailedError
from backoffice.models.account import Account
from backoffice.models.base import utcnow
from backoffice.models.instrument import Instrument
from backoffice.models.order import Order, OrderCategory, OrderStatus, TradeOrder, TradeSide
from backoffice.schemas.common import PagedResult
from backoffice.schemas.orders import CreateTradeOrderRequest, TradeOrderFields, TradeOrderOut, UpdateTradeOrderRequest
from backoffice.services.common import ensure_row_version, generate_number, stamp_created, stamp_updated
from backoffice.services.paging import PagedQuery, apply_sort, contains, paginate, sortable_columns

logger = logging.getLogger(__name__)

_HEADER_FIELDS = ("account_id", "comment", "external_id")
_DETAIL_FIELDS = ("instrument_id", "side", "order_type", "time_in_force", "quantity", "price", "stop_price", "expiration_date")
_EXECUTION_FIELDS = ("executed_quantity", "average_price", "commission", "executed_at")

_WITH_DETAIL = (
    selectinload(Order.account),
    selectinload(Order.trade_order).selectinload(TradeOrder.instrument),
)


@dataclass
class TradeOrderFilter:
    account_id: Optional[UUID] = None
    instrument_id: Optional[UUID] = None
    status: list[OrderStatus] = field(default_factory=list)
    side: list[TradeSide] = field(default_factory=list)
    order_date_from: Optional[datetime] = None
    order_date_to: Optional[datetime] = None


def trade_order_out(order: Order) -> TradeOrderOut:
    detail = order.trade_order
    values = {key: getattr(order, key) for key in (
        "id", "order_number", "category", "status", "order_date", "account_id", "comment", "external_id",
        "created_at", "created_by", "updated_at", "updated_by", "row_version",
    )}
    values.update({key: getattr(detail, key) for key in (*_DETAIL_FIELDS, *_EXECUTION_FIELDS)})
    values["account_number"] = order.account.number if order.account is not None else None
    values["instrument_symbol"] = detail.instrument.symbol if detail.instrument is not None else None
    return TradeOrderOut.model_validate(values)


def _order_snapshot(order: Order) -> dict:
    detail = order.trade_order
    return snapshot(order, trade_order=snapshot(detail) if detail is not None else None)


async def _load_order(db: AsyncSession, order_id: UUID) -> Order:
    order = (await db.execute(
        select(Order)
        .options(*_WITH_DETAIL)
        .where(Order.id == order_id, Order.category == OrderCategory.TRADE)
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if order is None or order.trade_order is None:
        raise NotFoundError("TradeOrder", order_id)
    return order


async def _validate_references(db: AsyncSession, request: TradeOrderFields) -> None:
    errors: dict[str, list[str]] = {}
    if await db.get(Account, request.account_id) is None:
        errors["accountId"] = ["Account not found."]
    if await db.get(Instrument, request.instrument_id) is None:
        errors["instrumentId"] = ["Instrument not found."]
    if errors:
        raise ValidationFailedError(errors)


async def list_trade_orders(
    db: AsyncSession, filters: TradeOrderFilter, query: PagedQuery
) -> PagedResult[TradeOrderOut]:
    stmt = (
        select(Order)
        .join(Order.trade_order)
        .join(TradeOrder.instrument)
        .join(Order.account)
        .options(*_WITH_DETAIL)
        .where(Order.category == OrderCategory.TRADE)
    )
    if filters.account_id is not None:
        stmt = stmt.where(Order.account_id == filters.account_id)
    if filters.instrument_id is not None:
        stmt = stmt.where(TradeOrder.instrument_id == filters.instrument_id)
    if filters.status:
        stmt = stmt.where(Order.status.in_(filters.status))
    if filters.side:
        stmt = stmt.where(TradeOrder.side.in_(filters.side))
    if filters.order_date_from is not None:
        stmt = stmt.where(Order.order_date >= filters.order_date_from)
    if filters.order_date_to is not None:
        stmt = stmt.where(Order.order_date <= filters.order_date_to)
    if query.q:
        stmt = stmt.where(or_(
            contains(Order.order_number, query.q),
            contains(Order.external_id, query.q),
            contains(Account.number, query.q),
            contains(Instrument.symbol, query.q),
        ))

    columns = sortable_columns(
        Order,
        side=TradeOrder.side,
        quantity=TradeOrder.quantity,
        price=TradeOrder.price,
        account_number=Account.number,
        instrument_symbol=Instrument.symbol,
    )
    stmt = apply_sort(stmt, query.sort, columns, default=(Order.order_date.desc(),), tiebreaker=Order.id)
    return await paginate(db, stmt, query, trade_order_out)


async def get_trade_order(db: AsyncSession, order_id: UUID) -> TradeOrderOut:
    return trade_order_out(await _load_order(db, order_id))


async def create_trade_order(db: AsyncSession, request: CreateTradeOrderRequest) -> TradeOrderOut:
    await _validate_references(db, request)

    order = Order(
        order_number=generate_number("TO"),
        category=OrderCategory.TRADE,
        status=OrderStatus.NEW,
        order_date=request.order_date or utcnow(),
        **{key: getattr(request, key) for key in _HEADER_FIELDS},
    )
    order.trade_order = TradeOrder(**{key: getattr(request, key) for key in _DETAIL_FIELDS})
    stamp_created(order)
    db.add(order)
    await db.flush()

    record_entity("Order", order.id, after=_order_snapshot(order))
    await db.commit()

    logger.info(
        "Trade order created",
        extra={"event": "trade_order_created", "order_id": str(order.id), "order_number": order.order_number},
    )
    return trade_order_out(await _load_order(db, order.id))


async def update_trade_order(db: AsyncSession, order_id: UUID, request: UpdateTradeOrderRequest) -> TradeOrderOut:
    order = await _load_order(db, order_id)
    ensure_row_version(order, request.row_version)
    await _validate_references(db, request)

    before = _order_snapshot(order)

    for key in _HEADER_FIELDS:
        setattr(order, key, getattr(request, key))
    order.status = request.status
    if request.order_date is not None:
        order.order_date = request.order_date

    detail = order.trade_order
    for key in (*_DETAIL_FIELDS, *_EXECUTION_FIELDS):
        setattr(detail, key, getattr(request, key))

    stamp_updated(order)
    await db.flush()

    record_entity("Order", order.id, before=before, after=_order_snapshot(order))
    await db.commit()

    logger.info("Trade order updated", extra={"event": "trade_order_updated", "order_id": str(order.id)})
    return trade_order_out(await _load_order(db, order.id))


async def delete_trade_order(db: AsyncSession, order_id: UUID) -> None:
    order = await _load_order(db, order_id)
    record_entity("Order", order.id, before=_order_snapshot(order))

    await db.delete(order)
    await db.commit()

    logger.info("Trade order deleted", extra={"event": "trade_order_deleted", "order_id": str(order_id)})
