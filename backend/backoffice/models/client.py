import enum
import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.core.database import Base
from backoffice.models.base import AuditableMixin, enum_column


class ClientType(str, enum.Enum):
    INDIVIDUAL = "Individual"
    CORPORATE = "Corporate"


class ClientStatus(str, enum.Enum):
    ACTIVE = "Active"
    BLOCKED = "Blocked"
    PENDING_KYC = "PendingKyc"


class KycStatus(str, enum.Enum):
    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class RiskLevel(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class Gender(str, enum.Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"
    UNSPECIFIED = "Unspecified"


class MaritalStatus(str, enum.Enum):
    SINGLE = "Single"
    MARRIED = "Married"
    DIVORCED = "Divorced"
    WIDOWED = "Widowed"
    SEPARATED = "Separated"
    CIVIL_UNION = "CivilUnion"
    UNSPECIFIED = "Unspecified"


class Education(str, enum.Enum):
    NONE = "None"
    HIGH_SCHOOL = "HighSchool"
    BACHELOR = "Bachelor"
    MASTER = "Master"
    PHD = "PhD"
    OTHER = "Other"
    UNSPECIFIED = "Unspecified"


class AddressType(str, enum.Enum):
    LEGAL = "Legal"
    MAILING = "Mailing"
    WORKING = "Working"


class InvestmentObjective(str, enum.Enum):
    PRESERVATION = "Preservation"
    INCOME = "Income"
    GROWTH = "Growth"
    SPECULATION = "Speculation"
    HEDGING = "Hedging"
    OTHER = "Other"


class RiskTolerance(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class LiquidityNeeds(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class InvestmentTimeHorizon(str, enum.Enum):
    SHORT = "Short"
    MEDIUM = "Medium"
    LONG = "Long"


class InvestmentKnowledge(str, enum.Enum):
    NONE = "None"
    BASIC = "Basic"
    GOOD = "Good"
    ADVANCED = "Advanced"


class InvestmentExperience(str, enum.Enum):
    NONE = "None"
    LESS_THAN_1_YEAR = "LessThan1Year"
    ONE_TO_THREE_YEARS = "OneToThreeYears"
    THREE_TO_FIVE_YEARS = "ThreeToFiveYears"
    MORE_THAN_5_YEARS = "MoreThan5Years"


class Client(AuditableMixin, Base):
    """
    A brokerage customer, either a natural person or a company.

    Individual clients use the personal fields (names, date of birth, ...),
    corporate clients use ``company_name``/``registration_number``/``tax_id``.
    """
    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_type: Mapped[ClientType] = mapped_column(enum_column(ClientType), nullable=False)
    external_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[ClientStatus] = mapped_column(enum_column(ClientStatus), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    preferred_language: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    time_zone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    residence_country_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("countries.id"), nullable=True
    )
    citizenship_country_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("countries.id"), nullable=True
    )
    pep_status: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    risk_level: Mapped[Optional[RiskLevel]] = mapped_column(enum_column(RiskLevel), nullable=True)
    kyc_status: Mapped[KycStatus] = mapped_column(enum_column(KycStatus), nullable=False)
    kyc_reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Individual
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    middle_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    gender: Mapped[Optional[Gender]] = mapped_column(enum_column(Gender), nullable=True)
    marital_status: Mapped[Optional[MaritalStatus]] = mapped_column(enum_column(MaritalStatus), nullable=True)
    education: Mapped[Optional[Education]] = mapped_column(enum_column(Education), nullable=True)
    ssn: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    passport_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    driver_license_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    # Corporate
    company_name: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    registration_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    tax_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    addresses: Mapped[list["ClientAddress"]] = relationship(
        back_populates="client", cascade="all, delete-orphan", order_by="ClientAddress.type"
    )
    investment_profile: Mapped[Optional["InvestmentProfile"]] = relationship(
        back_populates="client", cascade="all, delete-orphan", uselist=False
    )

    @property
    def display_name(self) -> str:
        if self.client_type == ClientType.CORPORATE:
            return self.company_name or ""
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class ClientAddress(Base):
    __tablename__ = "client_addresses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), index=True, nullable=False
    )
    type: Mapped[AddressType] = mapped_column(enum_column(AddressType), nullable=False)
    line1: Mapped[str] = mapped_column(String(200), nullable=False)
    line2: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    country_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("countries.id"), nullable=False)

    client: Mapped[Client] = relationship(back_populates="addresses")


class InvestmentProfile(Base):
    __tablename__ = "investment_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    objective: Mapped[Optional[InvestmentObjective]] = mapped_column(enum_column(InvestmentObjective), nullable=True)
    risk_tolerance: Mapped[Optional[RiskTolerance]] = mapped_column(enum_column(RiskTolerance), nullable=True)
    liquidity_needs: Mapped[Optional[LiquidityNeeds]] = mapped_column(enum_column(LiquidityNeeds), nullable=True)
    time_horizon: Mapped[Optional[InvestmentTimeHorizon]] = mapped_column(
        enum_column(InvestmentTimeHorizon), nullable=True
    )
    knowledge: Mapped[Optional[InvestmentKnowledge]] = mapped_column(enum_column(InvestmentKnowledge), nullable=True)
    experience: Mapped[Optional[InvestmentExperience]] = mapped_column(
        enum_column(InvestmentExperience), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    client: Mapped[Client] = relationship(back_populates="investment_profile")
