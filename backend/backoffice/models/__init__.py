from backoffice.models.reference import Country, Currency
from backoffice.models.identity import (
    Permission,
    Role,
    RolePermission,
    User,
    UserPermissionOverride,
    UserRefreshToken,
    UserRole,
)
from backoffice.models.client import Client, ClientAddress, InvestmentProfile
from backoffice.models.account import Account, AccountHolder
from backoffice.models.instrument import Instrument
from backoffice.models.order import Order, TradeOrder
from backoffice.models.transaction import Transaction, TradeTransaction
from backoffice.models.audit import AuditLog, EntityChange

__all__ = [
    "Account",
    "AccountHolder",
    "AuditLog",
    "Client",
    "ClientAddress",
    "Country",
    "Currency",
    "EntityChange",
    "Instrument",
    "InvestmentProfile",
    "Order",
    "Permission",
    "Role",
    "RolePermission",
    "TradeOrder",
    "TradeTransaction",
    "Transaction",
    "User",
    "UserPermissionOverride",
    "UserRefreshToken",
    "UserRole",
]
