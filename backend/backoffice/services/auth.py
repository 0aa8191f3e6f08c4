"""
Authentication handlers: login, refresh-token rotation, profile and
password change.
"""
import logging
from datetime import timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import settings
from backoffice.core.exceptions import AuthenticationError, NotFoundError, ValidationFailedError
from backoffice.core.security import (
    create_access_token,
    generate_refresh_token,
    get_password_hash,
    hash_token,
    verify_password,
)
from backoffice.models.base import utcnow
from backoffice.models.identity import (
    Permission,
    Role,
    RolePermission,
    User,
    UserPermissionOverride,
    UserRefreshToken,
    UserRole,
)
from backoffice.schemas.auth import ChangePasswordRequest, LoginRequest, MeResponse, RefreshRequest, TokenResponse
from backoffice.services.common import stamp_updated

logger = logging.getLogger(__name__)


async def get_effective_permissions(db: AsyncSession, user_id: UUID) -> list[str]:
    """Role permissions, plus allowed overrides, minus denied overrides."""
    role_codes = (await db.execute(
        select(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .where(UserRole.user_id == user_id)
    )).scalars().all()

    overrides = (await db.execute(
        select(Permission.code, UserPermissionOverride.is_allowed)
        .join(UserPermissionOverride, UserPermissionOverride.permission_id == Permission.id)
        .where(UserPermissionOverride.user_id == user_id)
    )).all()

    permissions = set(role_codes)
    for code, is_allowed in overrides:
        if is_allowed:
            permissions.add(code)
        else:
            permissions.discard(code)
    return sorted(permissions)


async def get_role_names(db: AsyncSession, user_id: UUID) -> list[str]:
    return list((await db.execute(
        select(Role.name).join(UserRole, UserRole.role_id == Role.id).where(UserRole.user_id == user_id).order_by(Role.name)
    )).scalars().all())


def build_access_token(user: User, permissions: list[str]) -> str:
    return create_access_token(data={
        "sub": str(user.id),
        "unique_name": user.username,
        "email": user.email,
        "permissions": permissions,
    })


async def _issue_tokens(db: AsyncSession, user: User, ip_address: Optional[str]) -> tuple[TokenResponse, str]:
    permissions = await get_effective_permissions(db, user.id)
    refresh_token = generate_refresh_token()
    refresh_hash = hash_token(refresh_token)
    db.add(UserRefreshToken(
        user_id=user.id,
        token_hash=refresh_hash,
        expires_at=utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        created_by_ip=ip_address,
    ))
    response = TokenResponse(
        access_token=build_access_token(user, permissions),
        refresh_token=refresh_token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return response, refresh_hash


async def login(db: AsyncSession, request: LoginRequest, ip_address: Optional[str] = None) -> TokenResponse:
    user = (await db.execute(select(User).where(User.username == request.username))).scalar_one_or_none()

    if user is None or not verify_password(request.password, user.password_hash):
        logger.info(
            "Login failed",
            extra={"event": "login_failed", "username": request.username, "ip": ip_address},
        )
        raise AuthenticationError("Invalid credentials")

    if not user.is_active:
        logger.info("Login rejected for disabled account", extra={"event": "login_disabled", "user_id": str(user.id)})
        raise AuthenticationError("Account is disabled")

    response, _ = await _issue_tokens(db, user, ip_address)
    await db.commit()

    logger.info("User logged in", extra={"event": "login_succeeded", "user_id": str(user.id)})
    return response


async def revoke_user_tokens(db: AsyncSession, user_id: UUID) -> None:
    await db.execute(
        update(UserRefreshToken)
        .where(UserRefreshToken.user_id == user_id, UserRefreshToken.revoked_at.is_(None))
        .values(revoked_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )


async def refresh(db: AsyncSession, request: RefreshRequest, ip_address: Optional[str] = None) -> TokenResponse:
    """
    Rotate a refresh token.

    Presenting a token that is revoked or expired is treated as theft: every
    active token of that user is revoked.
    """
    stored = (await db.execute(
        select(UserRefreshToken).where(UserRefreshToken.token_hash == hash_token(request.refresh_token))
    )).scalar_one_or_none()

    if stored is None:
        raise AuthenticationError("Invalid refresh token")

    now = utcnow()
    if not stored.is_active(now):
        await revoke_user_tokens(db, stored.user_id)
        await db.commit()
        logger.warning(
            "Refresh token reuse detected",
            extra={"event": "refresh_token_reuse", "user_id": str(stored.user_id), "ip": ip_address},
        )
        raise AuthenticationError("Token reuse detected")

    user = await db.get(User, stored.user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("Account is disabled")

    response, new_hash = await _issue_tokens(db, user, ip_address)
    stored.revoked_at = now
    stored.replaced_by_token_hash = new_hash
    await db.commit()

    logger.info("Refresh token rotated", extra={"event": "refresh_token_rotated", "user_id": str(user.id)})
    return response


async def get_me(db: AsyncSession, user_id: UUID) -> MeResponse:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return MeResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        full_name=user.full_name,
        roles=await get_role_names(db, user.id),
        permissions=await get_effective_permissions(db, user.id),
    )


async def change_password(db: AsyncSession, user_id: UUID, request: ChangePasswordRequest) -> None:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)

    if not verify_password(request.current_password, user.password_hash):
        raise ValidationFailedError({"currentPassword": ["Current password is incorrect."]})

    user.password_hash = get_password_hash(request.new_password)
    stamp_updated(user)
    await revoke_user_tokens(db, user.id)
    await db.commit()

    logger.info("Password changed", extra={"event": "password_changed", "user_id": str(user.id)})
