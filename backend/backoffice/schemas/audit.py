"""
Audit Schemas

Request-level audit log entries and the field-level change history views
(``Operation -> ChangeGroup -> FieldChange``).
"""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from backoffice.schemas.common import CamelModel


class AuditLogOut(CamelModel):
    id: UUID
    user_id: Optional[UUID] = None
    user_name: Optional[str] = None
    action: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    before_json: Optional[Any] = None
    after_json: Optional[Any] = None
    correlation_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    path: str
    method: str
    status_code: int
    is_success: bool
    created_at: datetime


class FieldChangeDto(CamelModel):
    field_name: str
    change_type: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None


class EntityChangeGroupDto(CamelModel):
    """Field changes of one (possibly nested) entity within an operation."""
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[str] = None
    related_entity_display_name: Optional[str] = None
    change_type: str
    fields: list[FieldChangeDto]


class OperationDto(CamelModel):
    operation_id: UUID
    timestamp: datetime
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    entity_display_name: Optional[str] = None
    change_type: str
    changes: list[EntityChangeGroupDto]


class GlobalOperationDto(OperationDto):
    entity_type: str
    entity_id: str
