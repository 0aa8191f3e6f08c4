"""
Audit Middleware

Builds the request's ``AuditContext`` (correlation id, caller identity from
the bearer token, client address) and, once the response is known, writes one
``AuditLog`` row for every mutating request.
"""
import logging
from uuid import UUID, uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from backoffice.audit.audit_logger import write_audit_log
from backoffice.audit.context import AuditContext, clear_audit_context, set_audit_context
from backoffice.core.database import get_db
from backoffice.core.rate_limit import get_client_ip
from backoffice.core.security import decode_token

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-Id"
MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def build_context(request: Request) -> AuditContext:
    request_id = uuid4()
    correlation_id = request.headers.get(CORRELATION_HEADER) or request_id.hex

    context = AuditContext(
        request_id=request_id,
        correlation_id=correlation_id[:64],
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )

    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        payload = decode_token(auth_header[7:])
        if payload:
            user_id_str = payload.get("sub")
            if user_id_str:
                try:
                    context.user_id = UUID(user_id_str)
                except (ValueError, TypeError):
                    logger.warning(f"Invalid user_id in token: {user_id_str}")
            context.user_name = payload.get("unique_name")
            context.permissions = frozenset(payload.get("permissions") or ())
        else:
            logger.debug("Could not decode bearer token for audit context")

    return context


def action_name(request: Request) -> str:
    """``<router module>.<endpoint function>``, or method and path when unrouted."""
    endpoint = request.scope.get("endpoint")
    if endpoint is not None and hasattr(endpoint, "__name__"):
        module = getattr(endpoint, "__module__", "") or ""
        return f"{module.rsplit('.', 1)[-1]}.{endpoint.__name__}"
    return f"{request.method} {request.url.path}"


async def persist_audit_log(request: Request, context: AuditContext, status_code: int) -> None:
    # Resolve the session provider the same way FastAPI does, overrides included
    provider = request.app.dependency_overrides.get(get_db, get_db)
    sessions = provider()
    try:
        db = await sessions.__anext__()
        await write_audit_log(
            db,
            action=action_name(request),
            path=request.url.path,
            method=request.method,
            status_code=status_code,
            user_id=context.user_id,
            user_name=context.user_name,
            entity_type=context.entity_type,
            entity_id=context.entity_id,
            before_json=context.before_json,
            after_json=context.after_json,
            correlation_id=context.correlation_id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
    except Exception as e:
        logger.error(f"Audit log session unavailable: {e}", exc_info=True)
    finally:
        await sessions.aclose()


class AuditMiddleware(BaseHTTPMiddleware):
    """
    Middleware to capture request context for audit logging.

    The context is stored in a context variable and cleared after request
    processing. Handlers running inside the request mutate the same context
    object, so entity info they record is visible here afterwards.
    """

    async def dispatch(self, request: Request, call_next):
        context = build_context(request)
        set_audit_context(context)

        try:
            try:
                response = await call_next(request)
            except Exception:
                if request.method in MUTATING_METHODS:
                    await persist_audit_log(request, context, 500)
                raise
            response.headers[CORRELATION_HEADER] = context.correlation_id

            if request.method in MUTATING_METHODS:
                await persist_audit_log(request, context, response.status_code)

            return response
        finally:
            clear_audit_context()
