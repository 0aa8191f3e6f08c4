from fastapi import APIRouter, Depends, Query

from backoffice.api.v1.deps import DbSession, get_token_payload
from backoffice.schemas.reference import CountryOut, CurrencyOut
from backoffice.services import reference as reference_service

router = APIRouter(dependencies=[Depends(get_token_payload)])


@router.get("/countries", response_model=list[CountryOut])
async def list_countries(db: DbSession, active_only: bool = Query(False, alias="activeOnly")):
    return await reference_service.list_countries(db, active_only=active_only)


@router.get("/currencies", response_model=list[CurrencyOut])
async def list_currencies(db: DbSession, active_only: bool = Query(False, alias="activeOnly")):
    return await reference_service.list_currencies(db, active_only=active_only)
