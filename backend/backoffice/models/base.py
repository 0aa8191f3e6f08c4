"""
Shared column helpers and the auditable-entity mixin.
"""
import enum
from datetime import datetime, timezone
from typing import Optional, Type

from sqlalchemy import DateTime, Enum as SQLEnum, Integer, String
from sqlalchemy.orm import Mapped, declared_attr, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (SQLite hands them back) as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def enum_column(enum_cls: Type[enum.Enum]) -> SQLEnum:
    """Store enum values (not member names) as plain strings."""
    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


class AuditableMixin:
    """
    Provenance columns plus the optimistic-concurrency row version.

    ``row_version`` is the mapper's ``version_id_col``: every UPDATE or DELETE
    carries ``WHERE row_version = <loaded value>`` and bumps it by one, so a
    concurrent writer's flush raises ``StaleDataError``.
    """
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False)

    @declared_attr.directive
    def __mapper_args__(cls) -> dict:
        return {"version_id_col": cls.row_version}


# Never written to EntityChange rows
AUDIT_COLUMNS = frozenset({"created_at", "created_by", "updated_at", "updated_by", "row_version"})
