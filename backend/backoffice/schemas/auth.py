from typing import Optional
from uuid import UUID

from pydantic import Field

from backoffice.schemas.common import CamelModel


class LoginRequest(CamelModel):
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class TokenResponse(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=128)


class MeResponse(CamelModel):
    id: UUID
    username: str
    email: str
    full_name: Optional[str] = None
    roles: list[str]
    permissions: list[str]
