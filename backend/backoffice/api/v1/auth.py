import logging

from fastapi import APIRouter, Request, status

from backoffice.api.v1.deps import CurrentUserId, DbSession
from backoffice.core.rate_limit import check_rate_limit, get_client_ip
from backoffice.schemas.auth import ChangePasswordRequest, LoginRequest, MeResponse, RefreshRequest, TokenResponse
from backoffice.services import auth as auth_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, request: Request, db: DbSession):
    """
    Exchange username and password for an access token and a refresh token.

    Rate limited per client IP; returns 429 with ``Retry-After`` when exceeded.
    """
    check_rate_limit("login", request)
    return await auth_service.login(db, payload, get_client_ip(request))


@router.post("/refresh", response_model=TokenResponse)
async def refresh(payload: RefreshRequest, request: Request, db: DbSession):
    """Rotate a refresh token. Reusing a rotated token revokes the whole family."""
    return await auth_service.refresh(db, payload, get_client_ip(request))


@router.get("/me", response_model=MeResponse)
async def get_me(user_id: CurrentUserId, db: DbSession):
    """Get current user info with roles and effective permissions"""
    return await auth_service.get_me(db, user_id)


@router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(payload: ChangePasswordRequest, user_id: CurrentUserId, db: DbSession):
    await auth_service.change_password(db, user_id, payload)
