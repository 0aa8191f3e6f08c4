from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field

from backoffice.models.order import OrderCategory, TradeSide
from backoffice.models.transaction import TransactionStatus
from backoffice.schemas.common import AuditedOut, CamelModel


class TradeTransactionFields(CamelModel):
    order_id: Optional[UUID] = None
    instrument_id: UUID
    transaction_date: Optional[datetime] = None
    status: TransactionStatus = TransactionStatus.PENDING
    side: TradeSide
    quantity: Decimal = Field(gt=0)
    price: Decimal = Field(gt=0)
    commission: Optional[Decimal] = Field(default=None, ge=0)
    settlement_date: Optional[datetime] = None
    venue: Optional[str] = Field(default=None, max_length=100)
    comment: Optional[str] = Field(default=None, max_length=500)
    external_id: Optional[str] = Field(default=None, max_length=64)


class CreateTradeTransactionRequest(TradeTransactionFields):
    pass


class UpdateTradeTransactionRequest(TradeTransactionFields):
    row_version: int


class TradeTransactionOut(AuditedOut):
    id: UUID
    transaction_number: str
    category: OrderCategory
    status: TransactionStatus
    transaction_date: datetime
    order_id: Optional[UUID] = None
    order_number: Optional[str] = None
    instrument_id: UUID
    instrument_symbol: Optional[str] = None
    side: TradeSide
    quantity: Decimal
    price: Decimal
    commission: Optional[Decimal] = None
    settlement_date: Optional[datetime] = None
    venue: Optional[str] = None
    comment: Optional[str] = None
    external_id: Optional[str] = None
