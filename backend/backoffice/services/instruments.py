import logging
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.audit.audit_logger import snapshot
from backoffice.audit.context import record_entity
from backoffice.core.exceptions import ConflictError, NotFoundError, ValidationFailedError
from backoffice.models.instrument import AssetClass, Instrument, InstrumentStatus, InstrumentType
from backoffice.models.reference import Country, Currency
from backoffice.schemas.common import PagedResult
from backoffice.schemas.instruments import (
    CreateInstrumentRequest,
    InstrumentFields,
    InstrumentOut,
    UpdateInstrumentRequest,
)
from backoffice.services.common import ensure_row_version, stamp_created, stamp_updated
from backoffice.services.paging import PagedQuery, apply_sort, contains, paginate, sortable_columns

logger = logging.getLogger(__name__)

_INSTRUMENT_FIELDS = tuple(InstrumentFields.model_fields)


@dataclass
class InstrumentFilter:
    symbol: Optional[str] = None
    name: Optional[str] = None
    type: list[InstrumentType] = field(default_factory=list)
    status: list[InstrumentStatus] = field(default_factory=list)
    asset_class: list[AssetClass] = field(default_factory=list)


async def _load_instrument(db: AsyncSession, instrument_id: UUID) -> Instrument:
    instrument = (await db.execute(
        select(Instrument).where(Instrument.id == instrument_id).execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if instrument is None:
        raise NotFoundError("Instrument", instrument_id)
    return instrument


async def _validate(db: AsyncSession, request: InstrumentFields, exclude_id: Optional[UUID] = None) -> None:
    errors: dict[str, list[str]] = {}
    if request.currency_id is not None and await db.get(Currency, request.currency_id) is None:
        errors["currencyId"] = ["Currency not found."]
    if request.country_id is not None and await db.get(Country, request.country_id) is None:
        errors["countryId"] = ["Country not found."]
    if errors:
        raise ValidationFailedError(errors)

    stmt = select(Instrument.id).where(Instrument.symbol == request.symbol)
    if exclude_id is not None:
        stmt = stmt.where(Instrument.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise ConflictError(f"An instrument with symbol '{request.symbol}' already exists")


async def list_instruments(
    db: AsyncSession, filters: InstrumentFilter, query: PagedQuery
) -> PagedResult[InstrumentOut]:
    stmt = select(Instrument)
    if filters.symbol:
        stmt = stmt.where(contains(Instrument.symbol, filters.symbol))
    if filters.name:
        stmt = stmt.where(contains(Instrument.name, filters.name))
    if filters.type:
        stmt = stmt.where(Instrument.type.in_(filters.type))
    if filters.status:
        stmt = stmt.where(Instrument.status.in_(filters.status))
    if filters.asset_class:
        stmt = stmt.where(Instrument.asset_class.in_(filters.asset_class))
    if query.q:
        stmt = stmt.where(or_(
            contains(Instrument.symbol, query.q),
            contains(Instrument.name, query.q),
            contains(Instrument.isin, query.q),
            contains(Instrument.issuer_name, query.q),
        ))
    stmt = apply_sort(
        stmt, query.sort, sortable_columns(Instrument), default=(Instrument.symbol.asc(),), tiebreaker=Instrument.id
    )
    return await paginate(db, stmt, query, InstrumentOut.model_validate)


async def get_instrument(db: AsyncSession, instrument_id: UUID) -> InstrumentOut:
    return InstrumentOut.model_validate(await _load_instrument(db, instrument_id))


async def create_instrument(db: AsyncSession, request: CreateInstrumentRequest) -> InstrumentOut:
    await _validate(db, request)

    instrument = Instrument(**request.model_dump(include=set(_INSTRUMENT_FIELDS)))
    stamp_created(instrument)
    db.add(instrument)
    await db.flush()

    record_entity("Instrument", instrument.id, after=snapshot(instrument))
    await db.commit()

    logger.info("Instrument created", extra={"event": "instrument_created", "instrument_id": str(instrument.id)})
    return InstrumentOut.model_validate(await _load_instrument(db, instrument.id))


async def update_instrument(db: AsyncSession, instrument_id: UUID, request: UpdateInstrumentRequest) -> InstrumentOut:
    instrument = await _load_instrument(db, instrument_id)
    ensure_row_version(instrument, request.row_version)
    await _validate(db, request, exclude_id=instrument.id)

    before = snapshot(instrument)
    for name in _INSTRUMENT_FIELDS:
        setattr(instrument, name, getattr(request, name))
    stamp_updated(instrument)
    await db.flush()

    record_entity("Instrument", instrument.id, before=before, after=snapshot(instrument))
    await db.commit()

    logger.info("Instrument updated", extra={"event": "instrument_updated", "instrument_id": str(instrument.id)})
    return InstrumentOut.model_validate(await _load_instrument(db, instrument.id))


async def delete_instrument(db: AsyncSession, instrument_id: UUID) -> None:
    instrument = await _load_instrument(db, instrument_id)
    record_entity("Instrument", instrument.id, before=snapshot(instrument))

    await db.delete(instrument)
    await db.commit()

    logger.info("Instrument deleted", extra={"event": "instrument_deleted", "instrument_id": str(instrument_id)})
