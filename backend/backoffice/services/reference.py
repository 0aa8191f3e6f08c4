from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.models.reference import Country, Currency
from backoffice.schemas.reference import CountryOut, CurrencyOut


async def list_countries(db: AsyncSession, active_only: bool = False) -> list[CountryOut]:
    stmt = select(Country).order_by(Country.name)
    if active_only:
        stmt = stmt.where(Country.is_active.is_(True))
    return [CountryOut.model_validate(c) for c in (await db.execute(stmt)).scalars().all()]


async def list_currencies(db: AsyncSession, active_only: bool = False) -> list[CurrencyOut]:
    stmt = select(Currency).order_by(Currency.code)
    if active_only:
        stmt = stmt.where(Currency.is_active.is_(True))
    return [CurrencyOut.model_validate(c) for c in (await db.execute(stmt)).scalars().all()]
