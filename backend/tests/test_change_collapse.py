"""
Tests for the pure parts of change tracking:

- value rendering
- folding "clear and re-add" of child rows into real changes
- grouping field rows into operations and change groups
"""
import enum
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from backoffice.audit.change_tracking import (
    CREATED,
    DELETED,
    MODIFIED,
    CapturedChange,
    collapse_replaced_children,
    stringify,
)
from backoffice.models import EntityChange
from backoffice.services.entity_changes import (
    OperationHeader,
    build_operations,
    group_changes,
    operation_change_type,
)


def child_rows(change_type: str, related_id: str, fields: dict, related_type: str = "ClientAddress"):
    rows = []
    for name, value in fields.items():
        rows.append(CapturedChange(
            entity_type="Client",
            entity_id="c1",
            entity_display_name="Jane Doe",
            related_entity_type=related_type,
            related_entity_id=related_id,
            related_entity_display_name=f"{related_type} {related_id}",
            change_type=change_type,
            field_name=name,
            old_value=value if change_type == DELETED else None,
            new_value=value if change_type == CREATED else None,
        ))
    return rows


def entity_change(operation_id, field_name, change_type=MODIFIED, related=None, minutes=0, sequence=0, **extra):
    return EntityChange(
        operation_id=operation_id,
        entity_type=extra.get("entity_type", "Client"),
        entity_id=extra.get("entity_id", "c1"),
        entity_display_name=extra.get("entity_display_name", "Jane Doe"),
        related_entity_type=related[0] if related else None,
        related_entity_id=related[1] if related else None,
        related_entity_display_name=related[2] if related else None,
        change_type=change_type,
        field_name=field_name,
        old_value=extra.get("old_value"),
        new_value=extra.get("new_value"),
        user_id=extra.get("user_id"),
        user_name=extra.get("user_name", "admin"),
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes),
        sequence=sequence,
    )


class Colour(enum.Enum):
    RED = "Red"


class TestStringify:
    def test_none(self):
        assert stringify(None) is None

    def test_enum_uses_value(self):
        assert stringify(Colour.RED) == "Red"

    def test_bool(self):
        assert stringify(True) == "True"
        assert stringify(False) == "False"

    def test_decimal_is_normalized(self):
        assert stringify(Decimal("10.5000")) == "10.5"
        assert stringify(Decimal("100")) == "100"
        assert stringify(Decimal("1E+2")) == "100"

    def test_naive_datetime_is_treated_as_utc(self):
        assert stringify(datetime(2024, 5, 1, 12, 0)) == "2024-05-01T12:00:00+00:00"

    def test_date(self):
        assert stringify(date(1990, 2, 3)) == "1990-02-03"

    def test_uuid(self):
        value = uuid.uuid4()
        assert stringify(value) == str(value)


class TestCollapseReplacedChildren:
    def test_identical_readd_cancels_out(self):
        fields = {"type": "Legal", "line1": "1 Main St", "city": "Springfield"}
        changes = child_rows(DELETED, "a-old", fields) + child_rows(CREATED, "a-new", fields)

        assert collapse_replaced_children(changes) == []

    def test_partial_match_becomes_modified(self):
        old = {"type": "Legal", "line1": "1 Main St", "city": "Springfield", "postal_code": "11111"}
        new = {"type": "Legal", "line1": "1 Main St", "city": "Shelbyville", "postal_code": "11111", "state": "IL"}
        changes = child_rows(DELETED, "a-old", old) + child_rows(CREATED, "a-new", new)

        result = collapse_replaced_children(changes)

        assert all(c.change_type == MODIFIED for c in result)
        by_field = {c.field_name: (c.old_value, c.new_value) for c in result}
        assert by_field == {
            "city": ("Springfield", "Shelbyville"),
            "state": (None, "IL"),
        }
        assert {c.related_entity_id for c in result} == {"a-old"}
        assert result[0].related_entity_display_name == "ClientAddress a-new"

    def test_too_little_overlap_keeps_delete_and_create(self):
        old = {"type": "Legal", "line1": "1 Main St", "city": "Springfield", "postal_code": "11111"}
        new = {"type": "Mailing", "line1": "9 Elm Rd", "city": "Shelbyville", "postal_code": "11111"}
        changes = child_rows(DELETED, "a-old", old) + child_rows(CREATED, "a-new", new)

        result = collapse_replaced_children(changes)

        assert [c.change_type for c in result] == [DELETED] * 4 + [CREATED] * 4

    def test_same_related_id_readded_becomes_modified(self):
        changes = (
            child_rows(DELETED, "account_id:1|client_id:2|role:Owner", {"role": "Owner", "is_primary": "True"},
                       related_type="AccountHolder")
            + child_rows(CREATED, "account_id:1|client_id:2|role:Owner", {"role": "Owner", "is_primary": "False"},
                         related_type="AccountHolder")
        )

        result = collapse_replaced_children(changes)

        assert len(result) == 1
        assert result[0].change_type == MODIFIED
        assert result[0].field_name == "is_primary"
        assert (result[0].old_value, result[0].new_value) == ("True", "False")

    def test_each_created_child_pairs_once(self):
        fields = {"type": "Legal", "line1": "1 Main St", "city": "Springfield"}
        changes = (
            child_rows(DELETED, "a1", fields)
            + child_rows(DELETED, "a2", fields)
            + child_rows(CREATED, "a3", fields)
        )

        result = collapse_replaced_children(changes)

        assert {c.related_entity_id for c in result} == {"a2"}
        assert all(c.change_type == DELETED for c in result)

    def test_other_child_types_are_not_paired(self):
        fields = {"notes": "x"}
        changes = (
            child_rows(DELETED, "p1", fields, related_type="InvestmentProfile")
            + child_rows(CREATED, "a1", fields, related_type="ClientAddress")
        )

        assert collapse_replaced_children(changes) == changes

    def test_root_rows_pass_through(self):
        root = CapturedChange("Client", "c1", "Jane Doe", None, None, None, MODIFIED, "email", "a@x.io", "b@x.io")

        assert collapse_replaced_children([root]) == [root]


class TestOperationGrouping:
    def test_uniform_change_type(self):
        op = uuid.uuid4()
        rows = [entity_change(op, "email", CREATED), entity_change(op, "phone", CREATED)]
        assert operation_change_type(rows) == CREATED

    def test_mixed_change_types_report_modified(self):
        op = uuid.uuid4()
        rows = [entity_change(op, "email", MODIFIED), entity_change(op, "line1", DELETED)]
        assert operation_change_type(rows) == MODIFIED

    def test_groups_follow_first_appearance(self):
        op = uuid.uuid4()
        address = ("ClientAddress", "a1", "Legal, 1 Main St, Springfield")
        rows = [
            entity_change(op, "email", MODIFIED, sequence=0),
            entity_change(op, "line1", CREATED, related=address, sequence=1),
            entity_change(op, "phone", MODIFIED, sequence=2),
            entity_change(op, "city", CREATED, related=address, sequence=3),
        ]

        groups = group_changes(rows)

        assert [g.related_entity_type for g in groups] == [None, "ClientAddress"]
        assert [f.field_name for f in groups[0].fields] == ["email", "phone"]
        assert [f.field_name for f in groups[1].fields] == ["line1", "city"]
        assert groups[1].change_type == CREATED
        assert groups[1].related_entity_display_name == "Legal, 1 Main St, Springfield"

    def test_build_operations_keeps_header_order(self):
        first, second = uuid.uuid4(), uuid.uuid4()
        rows = [
            entity_change(first, "email", minutes=0),
            entity_change(second, "phone", minutes=5),
        ]
        headers = [
            OperationHeader(second, rows[1].timestamp),
            OperationHeader(first, rows[0].timestamp),
        ]

        operations = build_operations(headers, rows)

        assert [op.operation_id for op in operations] == [second, first]
        assert operations[0].changes[0].fields[0].field_name == "phone"
        assert operations[0].user_name == "admin"

    def test_build_operations_drops_vanished_operations(self):
        op = uuid.uuid4()
        headers = [OperationHeader(op, datetime(2024, 1, 1, tzinfo=timezone.utc))]

        assert build_operations(headers, []) == []

    def test_global_view_splits_operation_per_root_entity(self):
        op = uuid.uuid4()
        rows = [
            entity_change(op, "number", CREATED, entity_type="Account", entity_id="acc1",
                          entity_display_name="ACC-1"),
            entity_change(op, "role", CREATED, entity_type="Client", entity_id="c1",
                          related=("AccountHolder", "h1", "Owner, ACC-1")),
        ]
        headers = [
            OperationHeader(op, rows[0].timestamp, entity_type="Account", entity_id="acc1"),
            OperationHeader(op, rows[1].timestamp, entity_type="Client", entity_id="c1"),
        ]

        operations = build_operations(headers, rows, global_view=True)

        assert [(o.entity_type, o.entity_id) for o in operations] == [("Account", "acc1"), ("Client", "c1")]
        assert operations[0].changes[0].fields[0].field_name == "number"
        assert operations[1].changes[0].related_entity_type == "AccountHolder"

    def test_operation_names_come_from_first_row(self):
        op = uuid.uuid4()
        rows = [
            entity_change(op, "last_name", entity_display_name="Jane Doe", user_name="admin", sequence=0),
            entity_change(op, "phone", entity_display_name="Jane Smith", user_name="zed", sequence=1),
        ]

        operation = build_operations([OperationHeader(op, rows[0].timestamp)], rows)[0]

        assert operation.entity_display_name == "Jane Doe"
        assert operation.user_name == "admin"
