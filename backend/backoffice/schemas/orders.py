from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field

from backoffice.models.order import OrderCategory, OrderStatus, TimeInForce, TradeOrderType, TradeSide
from backoffice.schemas.common import AuditedOut, CamelModel


class TradeOrderFields(CamelModel):
    account_id: UUID
    instrument_id: UUID
    order_date: Optional[datetime] = None
    side: TradeSide
    order_type: TradeOrderType = TradeOrderType.MARKET
    time_in_force: TimeInForce = TimeInForce.DAY
    quantity: Decimal = Field(gt=0)
    price: Optional[Decimal] = Field(default=None, gt=0)
    stop_price: Optional[Decimal] = Field(default=None, gt=0)
    expiration_date: Optional[datetime] = None
    comment: Optional[str] = Field(default=None, max_length=500)
    external_id: Optional[str] = Field(default=None, max_length=64)


class CreateTradeOrderRequest(TradeOrderFields):
    pass


class UpdateTradeOrderRequest(TradeOrderFields):
    status: OrderStatus
    executed_quantity: Decimal = Field(default=Decimal("0"), ge=0)
    average_price: Optional[Decimal] = Field(default=None, gt=0)
    commission: Optional[Decimal] = Field(default=None, ge=0)
    executed_at: Optional[datetime] = None
    row_version: int


class TradeOrderOut(AuditedOut):
    id: UUID
    order_number: str
    category: OrderCategory
    status: OrderStatus
    order_date: datetime
    account_id: UUID
    account_number: Optional[str] = None
    instrument_id: UUID
    instrument_symbol: Optional[str] = None
    side: TradeSide
    order_type: TradeOrderType
    time_in_force: TimeInForce
    quantity: Decimal
    price: Optional[Decimal] = None
    stop_price: Optional[Decimal] = None
    executed_quantity: Decimal
    average_price: Optional[Decimal] = None
    commission: Optional[Decimal] = None
    executed_at: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    comment: Optional[str] = None
    external_id: Optional[str] = None
