import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.core.database import Base
from backoffice.models.base import AuditableMixin, enum_column
from backoffice.models.instrument import Instrument
from backoffice.models.order import Order, OrderCategory, TradeSide


class TransactionStatus(str, enum.Enum):
    PENDING = "Pending"
    SETTLED = "Settled"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


class Transaction(AuditableMixin, Base):
    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("orders.id"), index=True, nullable=True)
    transaction_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    category: Mapped[OrderCategory] = mapped_column(enum_column(OrderCategory), nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(enum_column(TransactionStatus), nullable=False)
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    order: Mapped[Optional[Order]] = relationship()
    trade_transaction: Mapped[Optional["TradeTransaction"]] = relationship(
        back_populates="transaction", cascade="all, delete-orphan", uselist=False
    )


class TradeTransaction(Base):
    __tablename__ = "trade_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("transactions.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    instrument_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("instruments.id"), index=True, nullable=False)
    side: Mapped[TradeSide] = mapped_column(enum_column(TradeSide), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 8), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 8), nullable=False)
    commission: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 8), nullable=True)
    settlement_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    venue: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    transaction: Mapped[Transaction] = relationship(back_populates="trade_transaction")
    instrument: Mapped[Instrument] = relationship()
