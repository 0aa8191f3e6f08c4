from typing import Annotated, Callable
from uuid import UUID

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.database import get_db
from backoffice.core.exceptions import AuthenticationError
from backoffice.core.permissions import Permission
from backoffice.core.security import decode_token, oauth2_scheme


DbSession = Annotated[AsyncSession, Depends(get_db)]


# =============================================================================
# Authentication: token claims of the caller
# =============================================================================

async def get_token_payload(token: Annotated[str | None, Depends(oauth2_scheme)]) -> dict:
    """
    Decode and validate the bearer token.

    Raises:
        AuthenticationError (401): missing, expired or malformed token
    """
    if not token:
        raise AuthenticationError("Not authenticated")
    payload = decode_token(token)
    if payload is None or not payload.get("sub"):
        raise AuthenticationError("Could not validate credentials")
    return payload


TokenPayload = Annotated[dict, Depends(get_token_payload)]


async def get_current_user_id(payload: TokenPayload) -> UUID:
    try:
        return UUID(payload["sub"])
    except (ValueError, TypeError):
        raise AuthenticationError("Could not validate credentials")


CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]


# =============================================================================
# Authorization: permission guards
# =============================================================================

def require_permission(code: Permission | str) -> Callable:
    """
    Guard: allows callers whose token carries the permission ``code``.

    Raises:
        HTTP 403: if the permission is missing
    """
    code = code.value if isinstance(code, Permission) else code

    async def guard(payload: TokenPayload) -> None:
        if code not in (payload.get("permissions") or ()):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "FORBIDDEN", "message": f"Permission '{code}' is required"},
            )

    return guard
