"""Helpers shared by the command handlers."""
import secrets
from datetime import datetime
from typing import Any

from backoffice.audit.context import get_audit_context
from backoffice.core.exceptions import ConcurrencyConflictError
from backoffice.models.base import utcnow


def current_actor() -> str:
    context = get_audit_context()
    actor = context.actor if context is not None else None
    return actor or "system"


def stamp_created(entity: Any) -> None:
    entity.created_at = utcnow()
    entity.created_by = current_actor()


def stamp_updated(entity: Any) -> None:
    entity.updated_at = utcnow()
    entity.updated_by = current_actor()


def ensure_row_version(entity: Any, row_version: int) -> None:
    """Reject a write based on a stale copy before anything is changed."""
    if entity.row_version != row_version:
        raise ConcurrencyConflictError()


def generate_number(prefix: str, when: datetime | None = None) -> str:
    """``TO-20240131-9F2C01AB`` style document numbers."""
    when = when or utcnow()
    return f"{prefix}-{when:%Y%m%d}-{secrets.token_hex(4).upper()}"
