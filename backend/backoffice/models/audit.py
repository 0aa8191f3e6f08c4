"""
Audit Models

``AuditLog`` holds one row per mutating HTTP request (written by the audit
middleware). ``EntityChange`` holds one row per changed field, written by the
change-tracking session hook; all rows produced by one request share an
``operation_id``.

Both tables are append-only: application code never updates or deletes rows.
"""
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.database import Base
from backoffice.models.base import utcnow

JSONPayload = JSON().with_variant(JSONB(), "postgresql")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_created_at", "created_at"),
        Index("ix_audit_logs_correlation_id", "correlation_id"),
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Actor (null for anonymous requests such as login)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # "<router>.<endpoint>", e.g. "clients.update_client"
    action: Mapped[str] = mapped_column(String(200), nullable=False)

    entity_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Sanitized snapshots recorded by the handler
    before_json: Mapped[Optional[Any]] = mapped_column(JSONPayload, nullable=True)
    after_json: Mapped[Optional[Any]] = mapped_column(JSONPayload, nullable=True)

    # Request metadata
    correlation_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    path: Mapped[str] = mapped_column(String(500), nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    is_success: Mapped[bool] = mapped_column(Boolean, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action={self.action}, status={self.status_code})>"


class EntityChange(Base):
    __tablename__ = "entity_changes"
    __table_args__ = (
        Index("ix_entity_changes_entity", "entity_type", "entity_id"),
        Index("ix_entity_changes_operation_id", "operation_id"),
        Index("ix_entity_changes_timestamp", "timestamp"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    operation_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    # Root entity the change is filed under
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(200), nullable=False)
    entity_display_name: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)

    # Nested entity that actually changed (address, holder, ...), if any
    related_entity_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    related_entity_id: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    related_entity_display_name: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)

    # "Created" | "Modified" | "Deleted"
    change_type: Mapped[str] = mapped_column(String(16), nullable=False)
    field_name: Mapped[str] = mapped_column(String(100), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Position within the operation; keeps field order stable when timestamps tie
    sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
