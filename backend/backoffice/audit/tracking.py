"""
Entity Tracking Registry

Declares which models produce field-level ``EntityChange`` rows and how they
are filed:

- A *root* entity (Client, Account, ...) files changes under its own id.
- A *child* entity (ClientAddress, AccountHolder, ...) files changes under
  each parent it maps to, and names itself as the related entity. An
  AccountHolder therefore shows up both in its account's and in its client's
  history.

Display names are computed here too; they need a ``ReferenceResolver`` (see
``change_tracking``) to look up names of referenced rows.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from backoffice.models import (
    Account,
    AccountHolder,
    Client,
    ClientAddress,
    Country,
    Currency,
    Instrument,
    InvestmentProfile,
    Order,
    Permission,
    Role,
    RolePermission,
    TradeOrder,
    TradeTransaction,
    Transaction,
    User,
    UserRole,
)
from backoffice.models.base import AUDIT_COLUMNS


class ReferenceResolver(Protocol):
    def display_name(self, entity_type: str, entity_id: Any) -> Optional[str]: ...

    def lookup(self, model: type, entity_id: Any) -> Optional[Any]: ...


@dataclass(frozen=True)
class ParentMapping:
    parent_type: str
    foreign_key: str


@dataclass(frozen=True)
class TrackedEntity:
    type_name: str
    model: type
    is_root: bool = False
    parents: tuple[ParentMapping, ...] = ()
    excluded: frozenset[str] = field(default_factory=frozenset)
    # (instance, viewing parent type or None, resolver) -> display name
    display: Optional[Callable[[Any, Optional[str], ReferenceResolver], Optional[str]]] = None


def _attr(name: str):
    def display(instance, _parent_type, _resolver):
        value = getattr(instance, name, None)
        return str(value) if value is not None else None
    return display


def _client_display(client: Client, _parent_type, _resolver) -> Optional[str]:
    return client.display_name or None


def _address_display(address: ClientAddress, _parent_type, _resolver) -> str:
    kind = address.type.value if address.type is not None else ""
    return ", ".join(part for part in (kind, address.line1, address.city) if part)


def _holder_display(holder: AccountHolder, parent_type: Optional[str], resolver: ReferenceResolver) -> str:
    if parent_type == "Client":
        other = resolver.display_name("Account", holder.account_id)
    else:
        other = resolver.display_name("Client", holder.client_id)
    role = holder.role.value if holder.role is not None else ""
    return f"{role}, {other}" if other else role


def _user_role_display(user_role: UserRole, _parent_type, resolver: ReferenceResolver) -> Optional[str]:
    role = resolver.lookup(Role, user_role.role_id)
    return role.name if role is not None else None


def _role_permission_display(role_permission: RolePermission, _parent_type, resolver: ReferenceResolver) -> Optional[str]:
    permission = resolver.lookup(Permission, role_permission.permission_id)
    return permission.code if permission is not None else None


def _trade_detail_display(detail, _parent_type, resolver: ReferenceResolver) -> Optional[str]:
    instrument = resolver.lookup(Instrument, detail.instrument_id)
    side = detail.side.value if detail.side is not None else None
    return " ".join(part for part in (side, instrument.symbol if instrument else None) if part) or None


ENTITY_TRACKING: dict[type, TrackedEntity] = {
    config.model: config
    for config in (
        TrackedEntity("Client", Client, is_root=True, excluded=AUDIT_COLUMNS, display=_client_display),
        TrackedEntity(
            "ClientAddress",
            ClientAddress,
            parents=(ParentMapping("Client", "client_id"),),
            excluded=frozenset({"id", "client_id"}),
            display=_address_display,
        ),
        TrackedEntity(
            "InvestmentProfile",
            InvestmentProfile,
            parents=(ParentMapping("Client", "client_id"),),
            excluded=frozenset({"id", "client_id"}),
        ),
        TrackedEntity("Account", Account, is_root=True, excluded=AUDIT_COLUMNS, display=_attr("number")),
        TrackedEntity(
            "AccountHolder",
            AccountHolder,
            parents=(ParentMapping("Account", "account_id"), ParentMapping("Client", "client_id")),
            excluded=frozenset({"account_id", "client_id", "added_at"}),
            display=_holder_display,
        ),
        TrackedEntity("Instrument", Instrument, is_root=True, excluded=AUDIT_COLUMNS, display=_attr("symbol")),
        TrackedEntity(
            "User", User, is_root=True, excluded=AUDIT_COLUMNS | {"password_hash"}, display=_attr("username")
        ),
        TrackedEntity(
            "UserRole",
            UserRole,
            parents=(ParentMapping("User", "user_id"),),
            excluded=frozenset({"user_id"}),
            display=_user_role_display,
        ),
        TrackedEntity("Role", Role, is_root=True, excluded=AUDIT_COLUMNS, display=_attr("name")),
        TrackedEntity(
            "RolePermission",
            RolePermission,
            parents=(ParentMapping("Role", "role_id"),),
            excluded=frozenset({"role_id"}),
            display=_role_permission_display,
        ),
        TrackedEntity("Order", Order, is_root=True, excluded=AUDIT_COLUMNS, display=_attr("order_number")),
        TrackedEntity(
            "TradeOrder",
            TradeOrder,
            parents=(ParentMapping("Order", "order_id"),),
            excluded=frozenset({"id", "order_id"}),
            display=_trade_detail_display,
        ),
        TrackedEntity(
            "Transaction", Transaction, is_root=True, excluded=AUDIT_COLUMNS, display=_attr("transaction_number")
        ),
        TrackedEntity(
            "TradeTransaction",
            TradeTransaction,
            parents=(ParentMapping("Transaction", "transaction_id"),),
            excluded=frozenset({"id", "transaction_id"}),
            display=_trade_detail_display,
        ),
    )
}

ROOT_MODELS: dict[str, type] = {config.type_name: config.model for config in ENTITY_TRACKING.values() if config.is_root}

# Foreign-key attributes whose raw id is replaced by a readable value
REFERENCE_ATTRIBUTES: dict[str, tuple[type, Callable[[Any], Optional[str]]]] = {
    "country_id": (Country, lambda row: row.name),
    "residence_country_id": (Country, lambda row: row.name),
    "citizenship_country_id": (Country, lambda row: row.name),
    "currency_id": (Currency, lambda row: row.code),
    "role_id": (Role, lambda row: row.name),
    "permission_id": (Permission, lambda row: row.code),
    "account_id": (Account, lambda row: row.number),
    "instrument_id": (Instrument, lambda row: row.symbol),
    "order_id": (Order, lambda row: row.order_number),
    "client_id": (Client, lambda row: row.display_name),
}


def get_tracking(model: type) -> Optional[TrackedEntity]:
    return ENTITY_TRACKING.get(model)


def display_name_of(instance: Any, resolver: ReferenceResolver, parent_type: Optional[str] = None) -> Optional[str]:
    config = ENTITY_TRACKING.get(type(instance))
    if config is None or config.display is None:
        return None
    return config.display(instance, parent_type, resolver)
