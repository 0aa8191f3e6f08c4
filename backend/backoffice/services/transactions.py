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
from backoffice.models.base import utcnow
from backoffice.models.instrument import Instrument
from backoffice.models.order import Order, OrderCategory, TradeSide
from backoffice.models.transaction import TradeTransaction, Transaction, TransactionStatus
from backoffice.schemas.common import PagedResult
from backoffice.schemas.transactions import (
    CreateTradeTransactionRequest,
    TradeTransactionFields,
    TradeTransactionOut,
    UpdateTradeTransactionRequest,
)
from backoffice.services.common import ensure_row_version, generate_number, stamp_created, stamp_updated
from backoffice.services.paging import PagedQuery, apply_sort, contains, paginate, sortable_columns

logger = logging.getLogger(__name__)

_HEADER_FIELDS = ("order_id", "status", "comment", "external_id")
_DETAIL_FIELDS = ("instrument_id", "side", "quantity", "price", "commission", "settlement_date", "venue")

_WITH_DETAIL = (
    selectinload(Transaction.order),
    selectinload(Transaction.trade_transaction).selectinload(TradeTransaction.instrument),
)


@dataclass
class TradeTransactionFilter:
    order_id: Optional[UUID] = None
    instrument_id: Optional[UUID] = None
    status: list[TransactionStatus] = field(default_factory=list)
    side: list[TradeSide] = field(default_factory=list)
    transaction_date_from: Optional[datetime] = None
    transaction_date_to: Optional[datetime] = None


def trade_transaction_out(transaction: Transaction) -> TradeTransactionOut:
    detail = transaction.trade_transaction
    values = {key: getattr(transaction, key) for key in (
        "id", "transaction_number", "category", "status", "transaction_date", "order_id", "comment",
        "external_id", "created_at", "created_by", "updated_at", "updated_by", "row_version",
    )}
    values.update({key: getattr(detail, key) for key in _DETAIL_FIELDS})
    values["order_number"] = transaction.order.order_number if transaction.order is not None else None
    values["instrument_symbol"] = detail.instrument.symbol if detail.instrument is not None else None
    return TradeTransactionOut.model_validate(values)


def _transaction_snapshot(transaction: Transaction) -> dict:
    detail = transaction.trade_transaction
    return snapshot(transaction, trade_transaction=snapshot(detail) if detail is not None else None)


async def _load_transaction(db: AsyncSession, transaction_id: UUID) -> Transaction:
    transaction = (await db.execute(
        select(Transaction)
        .options(*_WITH_DETAIL)
        .where(Transaction.id == transaction_id, Transaction.category == OrderCategory.TRADE)
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if transaction is None or transaction.trade_transaction is None:
        raise NotFoundError("TradeTransaction", transaction_id)
    return transaction


async def _validate_references(db: AsyncSession, request: TradeTransactionFields) -> None:
    errors: dict[str, list[str]] = {}
    if request.order_id is not None and await db.get(Order, request.order_id) is None:
        errors["orderId"] = ["Order not found."]
    if await db.get(Instrument, request.instrument_id) is None:
        errors["instrumentId"] = ["Instrument not found."]
    if errors:
        raise ValidationFailedError(errors)


async def list_trade_transactions(
    db: AsyncSession, filters: TradeTransactionFilter, query: PagedQuery
) -> PagedResult[TradeTransactionOut]:
    stmt = (
        select(Transaction)
        .join(Transaction.trade_transaction)
        .join(TradeTransaction.instrument)
        .options(*_WITH_DETAIL)
        .where(Transaction.category == OrderCategory.TRADE)
    )
    if filters.order_id is not None:
        stmt = stmt.where(Transaction.order_id == filters.order_id)
    if filters.instrument_id is not None:
        stmt = stmt.where(TradeTransaction.instrument_id == filters.instrument_id)
    if filters.status:
        stmt = stmt.where(Transaction.status.in_(filters.status))
    if filters.side:
        stmt = stmt.where(TradeTransaction.side.in_(filters.side))
    if filters.transaction_date_from is not None:
        stmt = stmt.where(Transaction.transaction_date >= filters.transaction_date_from)
    if filters.transaction_date_to is not None:
        stmt = stmt.where(Transaction.transaction_date <= filters.transaction_date_to)
    if query.q:
        stmt = stmt.where(or_(
            contains(Transaction.transaction_number, query.q),
            contains(Transaction.external_id, query.q),
            contains(TradeTransaction.venue, query.q),
            contains(Instrument.symbol, query.q),
        ))

    columns = sortable_columns(
        Transaction,
        side=TradeTransaction.side,
        quantity=TradeTransaction.quantity,
        price=TradeTransaction.price,
        instrument_symbol=Instrument.symbol,
    )
    stmt = apply_sort(
        stmt, query.sort, columns, default=(Transaction.transaction_date.desc(),), tiebreaker=Transaction.id
    )
    return await paginate(db, stmt, query, trade_transaction_out)


async def get_trade_transaction(db: AsyncSession, transaction_id: UUID) -> TradeTransactionOut:
    return trade_transaction_out(await _load_transaction(db, transaction_id))


async def create_trade_transaction(db: AsyncSession, request: CreateTradeTransactionRequest) -> TradeTransactionOut:
    await _validate_references(db, request)

    transaction = Transaction(
        transaction_number=generate_number("TT"),
        category=OrderCategory.TRADE,
        transaction_date=request.transaction_date or utcnow(),
        **{key: getattr(request, key) for key in _HEADER_FIELDS},
    )
    transaction.trade_transaction = TradeTransaction(**{key: getattr(request, key) for key in _DETAIL_FIELDS})
    stamp_created(transaction)
    db.add(transaction)
    await db.flush()

    record_entity("Transaction", transaction.id, after=_transaction_snapshot(transaction))
    await db.commit()

    logger.info(
        "Trade transaction created",
        extra={
            "event": "trade_transaction_created",
            "transaction_id": str(transaction.id),
            "transaction_number": transaction.transaction_number,
        },
    )
    return trade_transaction_out(await _load_transaction(db, transaction.id))


async def update_trade_transaction(
    db: AsyncSession, transaction_id: UUID, request: UpdateTradeTransactionRequest
) -> TradeTransactionOut:
    transaction = await _load_transaction(db, transaction_id)
    ensure_row_version(transaction, request.row_version)
    await _validate_references(db, request)

    before = _transaction_snapshot(transaction)

    for key in _HEADER_FIELDS:
        setattr(transaction, key, getattr(request, key))
    if request.transaction_date is not None:
        transaction.transaction_date = request.transaction_date
    detail = transaction.trade_transaction
    for key in _DETAIL_FIELDS:
        setattr(detail, key, getattr(request, key))

    stamp_updated(transaction)
    await db.flush()

    record_entity("Transaction", transaction.id, before=before, after=_transaction_snapshot(transaction))
    await db.commit()

    logger.info(
        "Trade transaction updated",
        extra={"event": "trade_transaction_updated", "transaction_id": str(transaction.id)},
    )
    return trade_transaction_out(await _load_transaction(db, transaction.id))


async def delete_trade_transaction(db: AsyncSession, transaction_id: UUID) -> None:
    transaction = await _load_transaction(db, transaction_id)
    record_entity("Transaction", transaction.id, before=_transaction_snapshot(transaction))

    await db.delete(transaction)
    await db.commit()

    logger.info(
        "Trade transaction deleted",
        extra={"event": "trade_transaction_deleted", "transaction_id": str(transaction_id)},
    )
