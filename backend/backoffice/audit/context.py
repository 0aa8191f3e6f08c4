"""
Request Context Module

This module provides a context variable holding request-scoped audit
information: correlation id, caller identity, the operation id shared by all
field-level changes of the request, and the before/after snapshots a handler
records for the request's AuditLog row.

Uses Python's contextvars to provide async-safe request context.
"""
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import UUID, uuid4


@dataclass
class AuditContext:
    """
    Request context for audit logging.

    Populated by ``AuditMiddleware``. Handlers enrich it through
    ``record_entity`` so the middleware can write a meaningful AuditLog row
    after the response is produced.
    """
    request_id: UUID
    correlation_id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    user_id: Optional[UUID] = None
    user_name: Optional[str] = None
    permissions: frozenset[str] = field(default_factory=frozenset)

    # Filled in by handlers
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    before_json: Optional[Any] = None
    after_json: Optional[Any] = None

    _operation_id: Optional[UUID] = None

    @property
    def operation_id(self) -> UUID:
        """One operation id per request, generated on first use."""
        if self._operation_id is None:
            self._operation_id = uuid4()
        return self._operation_id

    @property
    def actor(self) -> Optional[str]:
        return self.user_name or (str(self.user_id) if self.user_id else None)

    def record_entity(
        self,
        entity_type: str,
        entity_id: Any,
        before: Optional[Any] = None,
        after: Optional[Any] = None,
    ) -> None:
        self.entity_type = entity_type
        self.entity_id = str(entity_id) if entity_id is not None else None
        if before is not None:
            self.before_json = before
        if after is not None:
            self.after_json = after

    @classmethod
    def create_empty(cls) -> "AuditContext":
        """Create an empty audit context for system operations."""
        request_id = uuid4()
        return cls(request_id=request_id, correlation_id=request_id.hex)


# Context variable to store audit context per request
audit_context_var: ContextVar[Optional[AuditContext]] = ContextVar(
    "audit_context",
    default=None
)


def get_audit_context() -> Optional[AuditContext]:
    return audit_context_var.get()


def set_audit_context(context: AuditContext) -> None:
    audit_context_var.set(context)


def clear_audit_context() -> None:
    """Called at the end of request processing."""
    audit_context_var.set(None)


def record_entity(entity_type: str, entity_id: Any, before: Optional[Any] = None, after: Optional[Any] = None) -> None:
    """Attach entity info and snapshots to the current request, if there is one."""
    context = get_audit_context()
    if context is not None:
        context.record_entity(entity_type, entity_id, before=before, after=after)
