from typing import Optional
from uuid import UUID

from pydantic import Field

from backoffice.schemas.common import AuditedOut, CamelModel


class RoleOut(AuditedOut):
    id: UUID
    name: str
    description: Optional[str] = None
    is_system: bool
    permissions: list[str] = []


class CreateRoleRequest(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    permission_ids: list[UUID] = []


class UpdateRoleRequest(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    row_version: int


class SetRolePermissionsRequest(CamelModel):
    permission_ids: list[UUID]
    row_version: Optional[int] = None


class PermissionOut(CamelModel):
    id: UUID
    code: str
    name: str
    description: Optional[str] = None
    group: str
