from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from backoffice.models.account import (
    AccountStatus,
    AccountType,
    DeliveryType,
    HolderRole,
    MarginType,
    OptionLevel,
    Tariff,
)
from backoffice.schemas.common import AuditedOut, CamelModel


class AccountFields(CamelModel):
    number: str = Field(min_length=1, max_length=50)
    status: AccountStatus = AccountStatus.ACTIVE
    account_type: AccountType
    margin_type: MarginType = MarginType.CASH
    option_level: OptionLevel = OptionLevel.LEVEL_0
    tariff: Tariff = Tariff.BASIC
    delivery_type: Optional[DeliveryType] = None
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    comment: Optional[str] = Field(default=None, max_length=500)
    external_id: Optional[str] = Field(default=None, max_length=64)


class CreateAccountRequest(AccountFields):
    pass


class UpdateAccountRequest(AccountFields):
    row_version: int


class HolderIn(CamelModel):
    client_id: UUID
    role: HolderRole
    is_primary: bool = False


class SetHoldersRequest(CamelModel):
    holders: list[HolderIn]


class HolderOut(CamelModel):
    client_id: UUID
    client_display_name: Optional[str] = None
    role: HolderRole
    is_primary: bool
    added_at: datetime


class AccountListItem(AccountFields, AuditedOut):
    id: UUID
    holder_count: int = 0


class AccountOut(AccountFields, AuditedOut):
    id: UUID
    holders: list[HolderOut] = []
