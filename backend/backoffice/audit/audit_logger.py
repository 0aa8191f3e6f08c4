"""
Audit Logger Service

Sanitization of request snapshots and the best-effort AuditLog writer used by
the audit middleware. Audit logging failures never break business logic.
"""
import enum
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.models.audit import AuditLog

logger = logging.getLogger(__name__)


# Keys whose values never reach the audit table
SENSITIVE_KEYS = {
    "password",
    "password_hash",
    "passwordhash",
    "currentpassword",
    "current_password",
    "newpassword",
    "new_password",
    "token",
    "authorization",
    "refresh_token",
    "refreshtoken",
    "access_token",
    "accesstoken",
    "token_hash",
    "secret",
    "api_key",
    "private_key",
    "client_secret",
}

# Keys masked instead of redacted (keeps the last 4 chars for support lookups)
MASK_KEYS = {
    "ssn",
}

MAX_STRING_LENGTH = 1000


def sanitize_value(value: Any) -> Any:
    """Sanitize a single value (recursive for nested structures)."""
    if isinstance(value, dict):
        return sanitize_payload(value)
    elif isinstance(value, list):
        return [sanitize_value(item) for item in value]
    elif isinstance(value, str) and len(value) > MAX_STRING_LENGTH:
        return f"{value[:100]}... [TRUNCATED {len(value)} chars]"
    else:
        return value


def sanitize_payload(payload: Any) -> Any:
    """
    Return a sanitized copy of a payload dictionary.

    - Secret keys (password, token, secret, ...) become ``**REDACTED**``
    - Masked keys keep only their last four characters
    - Very long strings are truncated
    - Works recursively for nested dictionaries and lists
    """
    if isinstance(payload, list):
        return [sanitize_value(item) for item in payload]
    if not isinstance(payload, dict):
        return payload

    sanitized = {}

    for key, value in payload.items():
        key_lower = str(key).lower()

        if key_lower in SENSITIVE_KEYS:
            sanitized[key] = "**REDACTED**"
            continue

        if key_lower in MASK_KEYS:
            if isinstance(value, str) and len(value) > 4:
                sanitized[key] = f"**MASKED**{value[-4:]}"
            elif value is not None:
                sanitized[key] = "**MASKED**"
            else:
                sanitized[key] = None
            continue

        sanitized[key] = sanitize_value(value)

    return sanitized


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    return str(value)


def snapshot(instance: Any, **extra: Any) -> dict:
    """
    JSON-safe dict of an ORM instance's column values.

    ``extra`` adds derived data such as nested collections.
    """
    data = {
        attr.key: _json_safe(getattr(instance, attr.key, None))
        for attr in inspect(instance).mapper.column_attrs
    }
    for key, value in extra.items():
        data[key] = _json_safe(value)
    return data


async def write_audit_log(
    db: AsyncSession,
    *,
    action: str,
    path: str,
    method: str,
    status_code: int,
    user_id: Optional[UUID] = None,
    user_name: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    before_json: Optional[Any] = None,
    after_json: Optional[Any] = None,
    correlation_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> bool:
    """
    Persist one AuditLog row and commit it.

    Returns False (after logging) instead of raising when the write fails.
    """
    try:
        entry = AuditLog(
            user_id=user_id,
            user_name=user_name,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            before_json=sanitize_payload(_json_safe(before_json)) if before_json is not None else None,
            after_json=sanitize_payload(_json_safe(after_json)) if after_json is not None else None,
            correlation_id=correlation_id,
            ip_address=ip_address,
            user_agent=user_agent[:500] if user_agent else None,
            path=path[:500],
            method=method,
            status_code=status_code,
            is_success=status_code < 400,
        )
        db.add(entry)
        await db.commit()

        logger.debug(
            f"Audit log entry created: {action} status={status_code}",
            extra={"event": "audit_log_written", "action": action, "status_code": status_code},
        )
        return True
    except Exception as e:
        logger.error(
            f"Failed to write audit log entry for {method} {path}: {e}",
            exc_info=True,
        )
        try:
            await db.rollback()
        except Exception:
            logger.debug("Rollback after failed audit write also failed", exc_info=True)
        return False
