import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.database import Base
from backoffice.models.base import AuditableMixin, enum_column


class InstrumentType(str, enum.Enum):
    STOCK = "Stock"
    BOND = "Bond"
    ETF = "ETF"
    OPTION = "Option"
    FUTURE = "Future"
    FOREX = "Forex"
    CFD = "CFD"
    MUTUAL_FUND = "MutualFund"
    WARRANT = "Warrant"
    INDEX = "Index"


class AssetClass(str, enum.Enum):
    EQUITIES = "Equities"
    FIXED_INCOME = "FixedIncome"
    DERIVATIVES = "Derivatives"
    FOREIGN_EXCHANGE = "ForeignExchange"
    COMMODITIES = "Commodities"
    FUNDS = "Funds"


class InstrumentStatus(str, enum.Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    DELISTED = "Delisted"
    SUSPENDED = "Suspended"


class Sector(str, enum.Enum):
    TECHNOLOGY = "Technology"
    HEALTHCARE = "Healthcare"
    FINANCE = "Finance"
    ENERGY = "Energy"
    CONSUMER_DISCRETIONARY = "ConsumerDiscretionary"
    CONSUMER_STAPLES = "ConsumerStaples"
    INDUSTRIALS = "Industrials"
    MATERIALS = "Materials"
    REAL_ESTATE = "RealEstate"
    UTILITIES = "Utilities"
    COMMUNICATION = "Communication"
    OTHER = "Other"


class Instrument(AuditableMixin, Base):
    __tablename__ = "instruments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    symbol: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    isin: Mapped[Optional[str]] = mapped_column(String(12), nullable=True)
    cusip: Mapped[Optional[str]] = mapped_column(String(9), nullable=True)
    type: Mapped[InstrumentType] = mapped_column(enum_column(InstrumentType), nullable=False)
    asset_class: Mapped[AssetClass] = mapped_column(enum_column(AssetClass), nullable=False)
    status: Mapped[InstrumentStatus] = mapped_column(enum_column(InstrumentStatus), nullable=False)
    currency_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("currencies.id"), nullable=True)
    country_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("countries.id"), nullable=True)
    sector: Mapped[Optional[Sector]] = mapped_column(enum_column(Sector), nullable=True)
    lot_size: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    tick_size: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 8), nullable=True)
    margin_requirement: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)
    is_margin_eligible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    listing_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delisting_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expiration_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    issuer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
