from typing import Optional
from uuid import UUID

from backoffice.schemas.common import CamelModel


class CountryOut(CamelModel):
    id: UUID
    iso2: str
    iso3: Optional[str] = None
    name: str
    flag_emoji: Optional[str] = None
    is_active: bool


class CurrencyOut(CamelModel):
    id: UUID
    code: str
    name: str
    symbol: Optional[str] = None
    is_active: bool
