"""
SQLAlchemy Session Event Hooks for Field-Level Change Tracking

An ``after_flush`` hook turns every flushed insert, update and delete of a
tracked model (see ``tracking.ENTITY_TRACKING``) into ``EntityChange`` rows,
one per field. All rows written during one HTTP request share the request's
operation id.

The hook runs inside the flush, so it must stay synchronous. It may emit
SELECTs to resolve display names; autoflush is suspended while flushing.
The ``EntityChange`` rows it adds are written by the next flush loop of the
same commit.
"""
import enum
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from itertools import chain
from typing import Any, Iterable, Optional
from uuid import UUID, uuid4

from sqlalchemy import event, inspect, select
from sqlalchemy.orm import Session

from backoffice.audit.context import get_audit_context
from backoffice.audit.tracking import (
    REFERENCE_ATTRIBUTES,
    ROOT_MODELS,
    TrackedEntity,
    display_name_of,
    get_tracking,
)
from backoffice.models.audit import EntityChange
from backoffice.models.base import as_aware, utcnow

logger = logging.getLogger(__name__)


CREATED = "Created"
MODIFIED = "Modified"
DELETED = "Deleted"


@dataclass(eq=False)
class CapturedChange:
    """One field change before it is stamped with operation, user and time."""
    entity_type: str
    entity_id: str
    entity_display_name: Optional[str]
    related_entity_type: Optional[str]
    related_entity_id: Optional[str]
    related_entity_display_name: Optional[str]
    change_type: str
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None


def stringify(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, enum.Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, datetime):
        return as_aware(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


class SessionReferenceResolver:
    """
    Looks up rows referenced by flushed instances.

    Instances already attached to the session (including ones being deleted
    in this flush) win over a database round trip.
    """

    def __init__(self, session: Session):
        self.session = session
        self._known: dict[tuple[type, Any], Any] = {}
        for obj in chain(session.identity_map.values(), session.new, session.deleted):
            obj_id = inspect(obj).dict.get("id")
            if obj_id is not None:
                self._known[(type(obj), obj_id)] = obj

    def lookup(self, model: type, entity_id: Any) -> Optional[Any]:
        if entity_id is None:
            return None
        key = (model, entity_id)
        if key not in self._known:
            self._known[key] = self.session.execute(
                select(model).where(model.id == entity_id)
            ).scalars().first()
        return self._known[key]

    def display_name(self, entity_type: str, entity_id: Any) -> Optional[str]:
        model = ROOT_MODELS.get(entity_type)
        instance = self.lookup(model, entity_id) if model is not None else None
        return display_name_of(instance, self) if instance is not None else None

    def reference_value(self, attribute: str, value: Any) -> Optional[str]:
        reference = REFERENCE_ATTRIBUTES.get(attribute)
        if reference is None or value is None:
            return None
        model, render = reference
        row = self.lookup(model, value)
        return render(row) if row is not None else None


def _field_value(resolver: SessionReferenceResolver, key: str, value: Any) -> Optional[str]:
    if value is not None and key in REFERENCE_ATTRIBUTES:
        resolved = resolver.reference_value(key, value)
        if resolved is not None:
            return resolved
    return stringify(value)


def _tracked_keys(instance: Any, config: TrackedEntity) -> list[str]:
    return [attr.key for attr in inspect(instance).mapper.column_attrs if attr.key not in config.excluded]


def _related_entity_id(instance: Any, config: TrackedEntity) -> str:
    state = inspect(instance)
    if "id" in state.mapper.column_attrs.keys():
        return stringify(state.dict.get("id")) or ""

    # Composite key: parent foreign keys first, then the remaining key columns
    parts = [f"{m.foreign_key}:{stringify(state.dict.get(m.foreign_key)) or ''}" for m in config.parents]
    fk_names = {m.foreign_key for m in config.parents}
    for column in state.mapper.primary_key:
        key = state.mapper.get_property_by_column(column).key
        if key not in fk_names:
            parts.append(f"{key}:{stringify(state.dict.get(key)) or ''}")
    return "|".join(parts)


def _targets(instance: Any, config: TrackedEntity, resolver: SessionReferenceResolver) -> list[dict]:
    """Where the changes of ``instance`` are filed: itself, or each of its parents."""
    state = inspect(instance)
    if config.is_root:
        return [{
            "entity_type": config.type_name,
            "entity_id": stringify(state.dict.get("id")) or "",
            "entity_display_name": display_name_of(instance, resolver),
            "related_entity_type": None,
            "related_entity_id": None,
            "related_entity_display_name": None,
        }]

    related_id = _related_entity_id(instance, config)
    targets = []
    for mapping in config.parents:
        parent_id = state.dict.get(mapping.foreign_key)
        if parent_id is None:
            continue
        targets.append({
            "entity_type": mapping.parent_type,
            "entity_id": stringify(parent_id),
            "entity_display_name": resolver.display_name(mapping.parent_type, parent_id),
            "related_entity_type": config.type_name,
            "related_entity_id": related_id,
            "related_entity_display_name": display_name_of(instance, resolver, mapping.parent_type),
        })
    return targets


def _field_rows(instance: Any, config: TrackedEntity, change_type: str, resolver: SessionReferenceResolver):
    """Yield ``(field, old, new)`` triples for one instance."""
    state = inspect(instance)
    for key in _tracked_keys(instance, config):
        if change_type == CREATED:
            new = _field_value(resolver, key, state.dict.get(key))
            if new is not None:
                yield key, None, new
        elif change_type == DELETED:
            old = _field_value(resolver, key, state.dict.get(key))
            if old is not None:
                yield key, old, None
        else:
            history = state.attrs[key].history
            if not history.has_changes():
                continue
            old = history.deleted[0] if history.deleted else None
            new = history.added[0] if history.added else state.dict.get(key)
            old_value = _field_value(resolver, key, old)
            new_value = _field_value(resolver, key, new)
            if old_value != new_value:
                yield key, old_value, new_value


def _capture_instance(
    changes: list[CapturedChange],
    instance: Any,
    change_type: str,
    resolver: SessionReferenceResolver,
) -> None:
    config = get_tracking(type(instance))
    if config is None:
        return
    fields = list(_field_rows(instance, config, change_type, resolver))
    if not fields:
        return
    for target in _targets(instance, config, resolver):
        for field_name, old_value, new_value in fields:
            changes.append(CapturedChange(
                change_type=change_type,
                field_name=field_name,
                old_value=old_value,
                new_value=new_value,
                **target,
            ))


def flushed_deletes(session: Session, flush_context=None) -> list:
    """
    Instances deleted by this flush.

    Children dropped from a ``delete-orphan`` collection never enter
    ``session.deleted``; the flush context is the only place they show up.
    """
    deleted = list(session.deleted)
    if flush_context is None:
        return deleted

    seen = {id(obj) for obj in deleted}
    for state, (is_delete, _list_only) in flush_context.states.items():
        obj = state.obj()
        if is_delete and obj is not None and id(obj) not in seen:
            deleted.append(obj)
            seen.add(id(obj))
    return deleted


def capture_changes(session: Session, flush_context=None) -> list[CapturedChange]:
    deleted = flushed_deletes(session, flush_context)
    pending = chain(session.new, session.dirty, deleted)
    if not any(get_tracking(type(instance)) is not None for instance in pending):
        return []

    resolver = SessionReferenceResolver(session)
    changes: list[CapturedChange] = []

    for instance in list(session.new):
        _capture_instance(changes, instance, CREATED, resolver)

    deleted_ids = {id(obj) for obj in deleted}
    for instance in list(session.dirty):
        if id(instance) in deleted_ids:
            continue
        if session.is_modified(instance, include_collections=False):
            _capture_instance(changes, instance, MODIFIED, resolver)

    for instance in deleted:
        _capture_instance(changes, instance, DELETED, resolver)

    return collapse_replaced_children(changes)


def _modified_from_pair(
    deleted: list[CapturedChange],
    created: list[CapturedChange],
    include_new_fields: bool,
) -> list[CapturedChange]:
    old_fields = {c.field_name: c.old_value for c in deleted}
    new_fields = {c.field_name: c.new_value for c in created}
    template, created_template = deleted[0], created[0]

    def modified(field_name: str, old_value: Optional[str], new_value: Optional[str]) -> CapturedChange:
        return CapturedChange(
            entity_type=template.entity_type,
            entity_id=template.entity_id,
            entity_display_name=created_template.entity_display_name or template.entity_display_name,
            related_entity_type=template.related_entity_type,
            related_entity_id=template.related_entity_id,
            related_entity_display_name=(
                created_template.related_entity_display_name or template.related_entity_display_name
            ),
            change_type=MODIFIED,
            field_name=field_name,
            old_value=old_value,
            new_value=new_value,
        )

    rows = [
        modified(name, old_value, new_fields[name])
        for name, old_value in old_fields.items()
        if name in new_fields and new_fields[name] != old_value
    ]
    if include_new_fields:
        rows.extend(
            modified(name, None, new_value)
            for name, new_value in new_fields.items()
            if name not in old_fields and new_value is not None
        )
    return rows


def collapse_replaced_children(changes: list[CapturedChange]) -> list[CapturedChange]:
    """
    Fold "clear and re-add" of child entities into real changes.

    Within the same parent and child type:

    0. A related id with both Deleted and Created rows (composite keys that
       were re-added) becomes Modified rows for the fields that differ.
    1. A Deleted child whose values equal a Created child's cancels out.
    2. Remaining Deleted children pair with the Created child sharing the most
       values; at least half of the deleted fields must match. The pair
       becomes Modified rows for differing fields plus newly set fields.
    """
    contexts: dict[tuple, list[CapturedChange]] = defaultdict(list)
    for change in changes:
        if change.related_entity_type is not None:
            contexts[(change.entity_type, change.entity_id, change.related_entity_type)].append(change)

    removed: set[int] = set()
    additions: list[CapturedChange] = []

    def remove(rows: Iterable[CapturedChange]) -> None:
        removed.update(id(row) for row in rows)

    def is_removed(rows: list[CapturedChange]) -> bool:
        return any(id(row) in removed for row in rows)

    for rows in contexts.values():
        entities: dict[str, list[CapturedChange]] = defaultdict(list)
        for row in rows:
            entities[row.related_entity_id].append(row)

        # Pass 0: same related id deleted and re-created
        for group in entities.values():
            deleted = [c for c in group if c.change_type == DELETED]
            created = [c for c in group if c.change_type == CREATED]
            if not deleted or not created:
                continue
            remove(group)
            additions.extend(_modified_from_pair(deleted, created, include_new_fields=False))

        deleted_entities = [
            group for group in entities.values()
            if all(c.change_type == DELETED for c in group) and not is_removed(group)
        ]
        created_entities = [
            (key, group) for key, group in entities.items()
            if all(c.change_type == CREATED for c in group) and not is_removed(group)
        ]
        if not deleted_entities or not created_entities:
            continue

        # Pass 1: exact matches cancel out
        used: set[str] = set()
        for deleted in deleted_entities:
            old_fields = {c.field_name: c.old_value for c in deleted}
            for key, created in created_entities:
                if key in used:
                    continue
                if old_fields == {c.field_name: c.new_value for c in created}:
                    remove(deleted)
                    remove(created)
                    used.add(key)
                    break

        remaining_deleted = [group for group in deleted_entities if not is_removed(group)]
        remaining_created = [(key, group) for key, group in created_entities if key not in used]
        if not remaining_deleted or not remaining_created:
            continue

        # Pass 2: best partial match
        for deleted in remaining_deleted:
            old_fields = {c.field_name: c.old_value for c in deleted}
            best_key, best_match, best_overlap = None, None, 0
            for key, created in remaining_created:
                if key in used:
                    continue
                new_fields = {c.field_name: c.new_value for c in created}
                overlap = sum(
                    1 for name, value in old_fields.items()
                    if name in new_fields and new_fields[name] == value
                )
                if overlap > best_overlap:
                    best_key, best_match, best_overlap = key, created, overlap

            if best_match is None or best_overlap < len(old_fields) // 2:
                continue

            remove(deleted)
            remove(best_match)
            used.add(best_key)
            additions.extend(_modified_from_pair(deleted, best_match, include_new_fields=True))

    if not removed:
        return changes
    return [c for c in changes if id(c) not in removed] + additions


def handle_after_flush(session: Session, flush_context) -> None:
    """
    Record EntityChange rows for the instances just flushed.

    Best effort: a capture failure is logged and the business write proceeds.
    """
    try:
        changes = capture_changes(session, flush_context)
    except Exception as e:
        logger.error(f"Failed to capture entity changes: {e}", exc_info=True)
        return

    if not changes:
        return

    context = get_audit_context()
    operation_id = context.operation_id if context is not None else uuid4()
    user_id = str(context.user_id) if context is not None and context.user_id else None
    user_name = context.actor if context is not None else None
    timestamp = utcnow()

    for sequence, change in enumerate(changes):
        session.add(EntityChange(
            operation_id=operation_id,
            entity_type=change.entity_type,
            entity_id=change.entity_id,
            entity_display_name=change.entity_display_name,
            related_entity_type=change.related_entity_type,
            related_entity_id=change.related_entity_id,
            related_entity_display_name=change.related_entity_display_name,
            change_type=change.change_type,
            field_name=change.field_name,
            old_value=change.old_value,
            new_value=change.new_value,
            user_id=user_id,
            user_name=user_name,
            timestamp=timestamp,
            sequence=sequence,
        ))

    logger.debug(
        f"Captured {len(changes)} entity changes",
        extra={"event": "entity_changes_captured", "operation_id": str(operation_id), "count": len(changes)},
    )


def register_change_tracking(session_factory) -> None:
    """
    Register the change-tracking hook for sessions made by ``session_factory``.

    For an ``async_sessionmaker`` the listener goes on the wrapped sync
    session class. Safe to call more than once.
    """
    from sqlalchemy.ext.asyncio import AsyncSession

    session_class = session_factory.class_
    target = session_class.sync_session_class if issubclass(session_class, AsyncSession) else session_class

    if not event.contains(target, "after_flush", handle_after_flush):
        event.listen(target, "after_flush", handle_after_flush)
        logger.info(f"Change tracking session hooks registered on {target.__name__}")
