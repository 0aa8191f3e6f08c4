from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field

from backoffice.models.instrument import AssetClass, InstrumentStatus, InstrumentType, Sector
from backoffice.schemas.common import AuditedOut, CamelModel


class InstrumentFields(CamelModel):
    symbol: str = Field(min_length=1, max_length=32)
    name: str = Field(min_length=1, max_length=200)
    isin: Optional[str] = Field(default=None, max_length=12)
    cusip: Optional[str] = Field(default=None, max_length=9)
    type: InstrumentType
    asset_class: AssetClass
    status: InstrumentStatus = InstrumentStatus.ACTIVE
    currency_id: Optional[UUID] = None
    country_id: Optional[UUID] = None
    sector: Optional[Sector] = None
    lot_size: int = Field(default=1, ge=1)
    tick_size: Optional[Decimal] = Field(default=None, gt=0)
    margin_requirement: Optional[Decimal] = Field(default=None, ge=0)
    is_margin_eligible: bool = True
    listing_date: Optional[datetime] = None
    delisting_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    issuer_name: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=4000)
    external_id: Optional[str] = Field(default=None, max_length=64)


class CreateInstrumentRequest(InstrumentFields):
    pass


class UpdateInstrumentRequest(InstrumentFields):
    row_version: int


class InstrumentOut(InstrumentFields, AuditedOut):
    id: UUID
