"""
Permission Catalogue

Single source of truth for permission codes. Codes are ``<area>.<verb>`` and
are what access tokens carry in their ``permissions`` claim.

Usage:
    from backoffice.core.permissions import Permission

    @router.get("", dependencies=[Depends(require_permission(Permission.CLIENTS_READ))])
"""
from enum import Enum
from typing import NamedTuple


class Permission(str, Enum):
    USERS_READ = "users.read"
    USERS_CREATE = "users.create"
    USERS_UPDATE = "users.update"
    USERS_DELETE = "users.delete"

    ROLES_READ = "roles.read"
    ROLES_CREATE = "roles.create"
    ROLES_UPDATE = "roles.update"
    ROLES_DELETE = "roles.delete"

    PERMISSIONS_READ = "permissions.read"

    AUDIT_READ = "audit.read"

    CLIENTS_READ = "clients.read"
    CLIENTS_CREATE = "clients.create"
    CLIENTS_UPDATE = "clients.update"
    CLIENTS_DELETE = "clients.delete"

    ACCOUNTS_READ = "accounts.read"
    ACCOUNTS_CREATE = "accounts.create"
    ACCOUNTS_UPDATE = "accounts.update"
    ACCOUNTS_DELETE = "accounts.delete"

    INSTRUMENTS_READ = "instruments.read"
    INSTRUMENTS_CREATE = "instruments.create"
    INSTRUMENTS_UPDATE = "instruments.update"
    INSTRUMENTS_DELETE = "instruments.delete"

    ORDERS_READ = "orders.read"
    ORDERS_CREATE = "orders.create"
    ORDERS_UPDATE = "orders.update"
    ORDERS_DELETE = "orders.delete"

    TRANSACTIONS_READ = "transactions.read"
    TRANSACTIONS_CREATE = "transactions.create"
    TRANSACTIONS_UPDATE = "transactions.update"
    TRANSACTIONS_DELETE = "transactions.delete"

    SETTINGS_MANAGE = "settings.manage"


class PermissionInfo(NamedTuple):
    code: str
    name: str
    group: str


_VERB_NAMES = {"read": "View", "create": "Create", "update": "Update", "delete": "Delete"}

# Display names that do not follow the "<Verb> <area>" pattern
_SPECIAL_NAMES = {
    Permission.PERMISSIONS_READ: "View permissions",
    Permission.AUDIT_READ: "View audit log",
    Permission.SETTINGS_MANAGE: "Manage reference data settings",
}


def _describe(permission: Permission) -> PermissionInfo:
    area, verb = permission.value.split(".")
    name = _SPECIAL_NAMES.get(permission) or f"{_VERB_NAMES[verb]} {area}"
    return PermissionInfo(code=permission.value, name=name, group=area.capitalize())


ALL_PERMISSIONS: list[PermissionInfo] = [_describe(p) for p in Permission]
