from typing import Optional
from uuid import UUID

from pydantic import EmailStr, Field

from backoffice.schemas.common import AuditedOut, CamelModel


class UserOut(AuditedOut):
    id: UUID
    username: str
    email: str
    full_name: Optional[str] = None
    is_active: bool
    roles: list[str] = []
    role_ids: list[UUID] = []


class CreateUserRequest(CamelModel):
    username: str = Field(min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    full_name: Optional[str] = Field(default=None, max_length=200)
    is_active: bool = True
    role_ids: list[UUID] = []


class UpdateUserRequest(CamelModel):
    email: EmailStr
    full_name: Optional[str] = Field(default=None, max_length=200)
    is_active: bool = True
    role_ids: list[UUID] = []
    # Optional admin password reset
    password: Optional[str] = Field(default=None, min_length=8, max_length=128)
    row_version: int
