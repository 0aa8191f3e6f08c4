import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.core.database import Base
from backoffice.models.base import AuditableMixin, enum_column, utcnow
from backoffice.models.client import Client


class AccountStatus(str, enum.Enum):
    ACTIVE = "Active"
    BLOCKED = "Blocked"
    CLOSED = "Closed"
    SUSPENDED = "Suspended"


class AccountType(str, enum.Enum):
    INDIVIDUAL = "Individual"
    CORPORATE = "Corporate"
    JOINT = "Joint"
    TRUST = "Trust"
    IRA = "IRA"


class MarginType(str, enum.Enum):
    CASH = "Cash"
    MARGIN_X1 = "MarginX1"
    MARGIN_X2 = "MarginX2"
    MARGIN_X4 = "MarginX4"
    DAY_TRADER = "DayTrader"


class OptionLevel(str, enum.Enum):
    LEVEL_0 = "Level0"
    LEVEL_1 = "Level1"
    LEVEL_2 = "Level2"
    LEVEL_3 = "Level3"
    LEVEL_4 = "Level4"


class Tariff(str, enum.Enum):
    BASIC = "Basic"
    STANDARD = "Standard"
    PREMIUM = "Premium"
    VIP = "VIP"


class DeliveryType(str, enum.Enum):
    PAPER = "Paper"
    ELECTRONIC = "Electronic"


class HolderRole(str, enum.Enum):
    OWNER = "Owner"
    BENEFICIARY = "Beneficiary"
    TRUSTEE = "Trustee"
    POWER_OF_ATTORNEY = "PowerOfAttorney"
    CUSTODIAN = "Custodian"
    AUTHORIZED = "Authorized"


class Account(AuditableMixin, Base):
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    number: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    status: Mapped[AccountStatus] = mapped_column(enum_column(AccountStatus), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(enum_column(AccountType), nullable=False)
    margin_type: Mapped[MarginType] = mapped_column(enum_column(MarginType), nullable=False)
    option_level: Mapped[OptionLevel] = mapped_column(enum_column(OptionLevel), nullable=False)
    tariff: Mapped[Tariff] = mapped_column(enum_column(Tariff), nullable=False)
    delivery_type: Mapped[Optional[DeliveryType]] = mapped_column(enum_column(DeliveryType), nullable=True)
    opened_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    holders: Mapped[list["AccountHolder"]] = relationship(back_populates="account", cascade="all, delete-orphan")


class AccountHolder(Base):
    """Links a client to an account in a given role; one client may hold several roles."""
    __tablename__ = "account_holders"

    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    role: Mapped[HolderRole] = mapped_column(enum_column(HolderRole), primary_key=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    account: Mapped[Account] = relationship(back_populates="holders")
    client: Mapped[Client] = relationship()
