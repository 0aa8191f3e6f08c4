import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.core.database import Base
from backoffice.models.account import Account
from backoffice.models.base import AuditableMixin, enum_column
from backoffice.models.instrument import Instrument


class OrderCategory(str, enum.Enum):
    TRADE = "Trade"
    NON_TRADE = "NonTrade"


class OrderStatus(str, enum.Enum):
    NEW = "New"
    PENDING_APPROVAL = "PendingApproval"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    IN_PROGRESS = "InProgress"
    PARTIALLY_FILLED = "PartiallyFilled"
    FILLED = "Filled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    FAILED = "Failed"


class TradeSide(str, enum.Enum):
    BUY = "Buy"
    SELL = "Sell"
    SHORT_SELL = "ShortSell"
    BUY_TO_COVER = "BuyToCover"


class TradeOrderType(str, enum.Enum):
    MARKET = "Market"
    LIMIT = "Limit"
    STOP = "Stop"
    STOP_LIMIT = "StopLimit"


class TimeInForce(str, enum.Enum):
    DAY = "Day"
    GTC = "GTC"
    IOC = "IOC"
    FOK = "FOK"
    GTD = "GTD"


class Order(AuditableMixin, Base):
    """Order header; the trade specifics live in ``TradeOrder``."""
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("accounts.id"), index=True, nullable=False)
    order_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    category: Mapped[OrderCategory] = mapped_column(enum_column(OrderCategory), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(enum_column(OrderStatus), nullable=False)
    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    account: Mapped[Account] = relationship()
    trade_order: Mapped[Optional["TradeOrder"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", uselist=False
    )


class TradeOrder(Base):
    __tablename__ = "trade_orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    instrument_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("instruments.id"), index=True, nullable=False)
    side: Mapped[TradeSide] = mapped_column(enum_column(TradeSide), nullable=False)
    order_type: Mapped[TradeOrderType] = mapped_column(enum_column(TradeOrderType), nullable=False)
    time_in_force: Mapped[TimeInForce] = mapped_column(enum_column(TimeInForce), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 8), nullable=False)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 8), nullable=True)
    stop_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 8), nullable=True)
    executed_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal("0"), nullable=False)
    average_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 8), nullable=True)
    commission: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 8), nullable=True)
    executed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expiration_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    order: Mapped[Order] = relationship(back_populates="trade_order")
    instrument: Mapped[Instrument] = relationship()
