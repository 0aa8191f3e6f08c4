from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import EmailStr, Field

from backoffice.models.client import (
    AddressType,
    ClientStatus,
    ClientType,
    Education,
    Gender,
    InvestmentExperience,
    InvestmentKnowledge,
    InvestmentObjective,
    InvestmentTimeHorizon,
    KycStatus,
    LiquidityNeeds,
    MaritalStatus,
    RiskLevel,
    RiskTolerance,
)
from backoffice.schemas.common import AuditedOut, CamelModel


class AddressIn(CamelModel):
    type: AddressType
    line1: str = Field(min_length=1, max_length=200)
    line2: Optional[str] = Field(default=None, max_length=200)
    city: str = Field(min_length=1, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    postal_code: Optional[str] = Field(default=None, max_length=20)
    country_id: UUID


class AddressOut(AddressIn):
    id: UUID


class InvestmentProfileIn(CamelModel):
    objective: Optional[InvestmentObjective] = None
    risk_tolerance: Optional[RiskTolerance] = None
    liquidity_needs: Optional[LiquidityNeeds] = None
    time_horizon: Optional[InvestmentTimeHorizon] = None
    knowledge: Optional[InvestmentKnowledge] = None
    experience: Optional[InvestmentExperience] = None
    notes: Optional[str] = Field(default=None, max_length=4000)


class InvestmentProfileOut(InvestmentProfileIn):
    id: UUID


class ClientFields(CamelModel):
    client_type: ClientType
    external_id: Optional[str] = Field(default=None, max_length=64)
    status: ClientStatus = ClientStatus.PENDING_KYC
    email: EmailStr
    phone: Optional[str] = Field(default=None, max_length=50)
    preferred_language: Optional[str] = Field(default=None, max_length=10)
    time_zone: Optional[str] = Field(default=None, max_length=64)
    residence_country_id: Optional[UUID] = None
    citizenship_country_id: Optional[UUID] = None
    pep_status: bool = False
    risk_level: Optional[RiskLevel] = None
    kyc_status: KycStatus = KycStatus.NOT_STARTED
    kyc_reviewed_at: Optional[datetime] = None

    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    middle_name: Optional[str] = Field(default=None, max_length=100)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    marital_status: Optional[MaritalStatus] = None
    education: Optional[Education] = None
    ssn: Optional[str] = Field(default=None, max_length=32)
    passport_number: Optional[str] = Field(default=None, max_length=32)
    driver_license_number: Optional[str] = Field(default=None, max_length=32)

    company_name: Optional[str] = Field(default=None, max_length=300)
    registration_number: Optional[str] = Field(default=None, max_length=64)
    tax_id: Optional[str] = Field(default=None, max_length=64)


class CreateClientRequest(ClientFields):
    addresses: list[AddressIn] = []
    investment_profile: Optional[InvestmentProfileIn] = None


class UpdateClientRequest(CreateClientRequest):
    row_version: int


class ClientListItem(AuditedOut):
    id: UUID
    client_type: ClientType
    display_name: str
    email: str
    phone: Optional[str] = None
    status: ClientStatus
    kyc_status: KycStatus
    risk_level: Optional[RiskLevel] = None
    pep_status: bool
    residence_country_id: Optional[UUID] = None
    external_id: Optional[str] = None


class ClientOut(ClientFields, AuditedOut):
    id: UUID
    display_name: str
    email: str
    addresses: list[AddressOut] = []
    investment_profile: Optional[InvestmentProfileOut] = None


class ClientAccountOut(CamelModel):
    """An account the client holds, with the holder role."""
    account_id: UUID
    number: str
    status: str
    account_type: str
    role: str
    is_primary: bool
    added_at: datetime
