"""
Unit tests for the column diff and CHANGE clause builder.
"""

import logging

import pytest

from schemashift.database.introspection import IndexMembership
from schemashift.exceptions import ValidationError
from schemashift.schema.alter import (
    TRACKED_FIELDS,
    AlterClause,
    build_clause,
    changed_fields,
    combine_clauses,
    render_change,
    render_column_definition,
)
from schemashift.schema.columns import ColumnDescriptor, DefaultKind, MoveTarget


@pytest.fixture
def base_column() -> ColumnDescriptor:
    return ColumnDescriptor(
        name="c",
        type="VARCHAR",
        length="10",
        collation="utf8mb4_general_ci",
        nullable=True,
        default_kind=DefaultKind.NULL,
    )


class TestRenderColumnDefinition:
    """Test rendering of column definitions."""

    def test_text_column_with_quoted_default(self):
        column = ColumnDescriptor(
            name="status", type="VARCHAR", length="10", collation="utf8mb4_general_ci",
            default_kind=DefaultKind.USER_DEFINED, default_value="it's",
        )
        assert render_column_definition(column) == (
            "`status` VARCHAR(10) CHARACTER SET utf8mb4 COLLATE utf8mb4_general_ci "
            "NOT NULL DEFAULT 'it\\'s'"
        )

    def test_nullable_null_default(self, base_column):
        assert render_column_definition(base_column) == (
            "`c` VARCHAR(10) CHARACTER SET utf8mb4 COLLATE utf8mb4_general_ci NULL DEFAULT NULL"
        )

    def test_null_default_dropped_for_not_null(self):
        column = ColumnDescriptor(name="a", type="INT", default_kind=DefaultKind.NULL)
        assert render_column_definition(column) == "`a` INT NOT NULL"

    def test_timestamp_zero_default_unquoted(self):
        column = ColumnDescriptor(
            name="ts", type="TIMESTAMP", default_kind=DefaultKind.USER_DEFINED, default_value="0"
        )
        assert render_column_definition(column) == "`ts` TIMESTAMP NOT NULL DEFAULT 0"

    def test_bit_default(self):
        column = ColumnDescriptor(
            name="flags", type="BIT", length="4",
            default_kind=DefaultKind.USER_DEFINED, default_value="b'1021'",
        )
        assert render_column_definition(column) == "`flags` BIT(4) NOT NULL DEFAULT b'1001'"

    @pytest.mark.parametrize("value,expected", [("yes", "TRUE"), ("0", "FALSE"), ("t", "TRUE")])
    def test_boolean_default(self, value, expected):
        column = ColumnDescriptor(
            name="active", type="BOOLEAN",
            default_kind=DefaultKind.USER_DEFINED, default_value=value,
        )
        assert render_column_definition(column) == f"`active` BOOLEAN NOT NULL DEFAULT {expected}"

    def test_current_timestamp_with_precision(self):
        column = ColumnDescriptor(
            name="at", type="DATETIME", length="6", default_kind=DefaultKind.CURRENT_TIMESTAMP
        )
        assert render_column_definition(column) == (
            "`at` DATETIME(6) NOT NULL DEFAULT CURRENT_TIMESTAMP(6)"
        )

    def test_on_update_attribute_with_precision(self):
        column = ColumnDescriptor(
            name="u", type="TIMESTAMP", length="3", attribute="on update CURRENT_TIMESTAMP"
        )
        assert render_column_definition(column) == (
            "`u` TIMESTAMP(3) on update CURRENT_TIMESTAMP(3) NOT NULL"
        )

    def test_unsized_type_drops_length(self):
        column = ColumnDescriptor(name="t", type="TEXT", length="100")
        assert render_column_definition(column) == "`t` TEXT NOT NULL"

    def test_comment_and_move(self):
        column = ColumnDescriptor(
            name="a", type="INT", comment="note", move_to=MoveTarget.after_column("id")
        )
        assert render_column_definition(column) == "`a` INT NOT NULL COMMENT 'note' AFTER `id`"

    def test_move_first(self):
        column = ColumnDescriptor(name="a", type="INT", move_to=MoveTarget.first())
        assert render_column_definition(column) == "`a` INT NOT NULL FIRST"

    def test_generated_column_mysql(self, server):
        column = ColumnDescriptor(
            name="full_name", type="VARCHAR", length="200", collation="utf8mb4_general_ci",
            nullable=True, default_kind=DefaultKind.NULL, extra="AUTO_INCREMENT",
            virtuality="VIRTUAL", expression="concat(`a`,`b`)",
        )
        assert render_column_definition(column, server) == (
            "`full_name` VARCHAR(200) CHARACTER SET utf8mb4 COLLATE utf8mb4_general_ci "
            "AS (concat(`a`,`b`)) VIRTUAL NULL"
        )

    def test_generated_column_mariadb(self, mariadb_server):
        column = ColumnDescriptor(
            name="full_name", type="VARCHAR", length="200", collation="utf8mb4_general_ci",
            nullable=True, default_kind=DefaultKind.NULL,
            virtuality="PERSISTENT", expression="concat(`a`,`b`)",
        )
        assert render_column_definition(column, mariadb_server) == (
            "`full_name` VARCHAR(200) CHARACTER SET utf8mb4 AS (concat(`a`,`b`)) PERSISTENT"
        )

    def test_render_change_uses_source_name(self):
        column = ColumnDescriptor(name="a", type="INT", original_name="old")
        assert render_change("old", column) == "CHANGE `old` `a` INT NOT NULL"


class TestChangedFields:
    """Test facet comparison."""

    def test_no_difference(self, base_column):
        assert changed_fields(base_column, base_column.evolve()) == []

    def test_type_compared_case_insensitively(self, base_column):
        assert changed_fields(base_column, base_column.evolve(type="varchar")) == []

    def test_rename(self, base_column):
        assert changed_fields(base_column, base_column.evolve(name="d")) == ["name"]

    def test_move(self, base_column):
        desired = base_column.evolve(move_to=MoveTarget.first())
        assert changed_fields(base_column, desired) == ["move_to"]


class TestBuildClause:
    """Test CHANGE clause building."""

    def test_no_clause_when_nothing_differs(self, base_column):
        assert build_clause(base_column, base_column.evolve(), IndexMembership()) is None

    @pytest.mark.parametrize(
        "field_name,value",
        [
            ("type", "CHAR"),
            ("length", "20"),
            ("attribute", "BINARY"),
            ("collation", "utf8mb4_bin"),
            ("nullable", False),
            ("default_kind", DefaultKind.NONE),
            ("default_value", "x"),
            ("extra", "auto_increment"),
            ("comment", "hello"),
            ("virtuality", "STORED"),
            ("expression", "1"),
        ],
    )
    def test_any_single_field_difference_yields_clause(self, base_column, field_name, value):
        desired = base_column.evolve(**{field_name: value})
        clause = build_clause(base_column, desired, IndexMembership())

        assert clause is not None
        assert clause.changed_fields == (field_name,)
        assert clause.sql.startswith("CHANGE `c` `c` ")

    def test_every_tracked_field_is_covered(self):
        assert set(TRACKED_FIELDS) == {
            "type", "length", "attribute", "collation", "nullable", "default_kind",
            "default_value", "extra", "comment", "virtuality", "expression",
        }

    def test_idempotent(self, base_column):
        desired = base_column.evolve(name="d", collation="utf8mb4_bin")
        first = build_clause(base_column, desired, IndexMembership())
        second = build_clause(base_column, desired, IndexMembership())

        assert first == second
        assert first.sql == (
            "CHANGE `c` `d` VARCHAR(10) CHARACTER SET utf8mb4 COLLATE utf8mb4_bin NULL DEFAULT NULL"
        )
        assert first.column == "d"
        assert first.original_name == "c"

    def test_mismatched_original_rejected(self, base_column):
        other = ColumnDescriptor(name="z", type="INT")
        with pytest.raises(ValidationError, match="comes from 'c'"):
            build_clause(other, base_column, IndexMembership())

    def test_auto_increment_without_index_warns(self, caplog):
        original = ColumnDescriptor(name="n", type="INT")
        desired = original.evolve(extra="AUTO_INCREMENT")

        with caplog.at_level(logging.WARNING, logger="schemashift.schema.alter"):
            clause = build_clause(original, desired, IndexMembership())

        assert clause.sql == "CHANGE `n` `n` INT NOT NULL AUTO_INCREMENT"
        assert "not covered by an index" in caplog.text

    def test_auto_increment_with_index_does_not_warn(self, caplog):
        original = ColumnDescriptor(name="n", type="INT")
        desired = original.evolve(extra="AUTO_INCREMENT")

        with caplog.at_level(logging.WARNING, logger="schemashift.schema.alter"):
            build_clause(original, desired, IndexMembership(primary=frozenset({"n"})))

        assert "not covered by an index" not in caplog.text


class TestCombineClauses:
    """Test statement assembly."""

    def test_combine(self):
        clauses = [
            AlterClause(column="a", original_name="a", sql="CHANGE `a` `a` INT NOT NULL"),
            AlterClause(column="b", original_name="b", sql="CHANGE `b` `b` INT NULL"),
        ]
        assert combine_clauses("t", clauses) == (
            "ALTER TABLE `t` CHANGE `a` `a` INT NOT NULL, CHANGE `b` `b` INT NULL"
        )

    def test_combine_with_online_hint(self):
        clauses = [AlterClause(column="a", original_name="a", sql="CHANGE `a` `a` INT NOT NULL")]
        assert combine_clauses("t", clauses, online_algorithm_hint=True) == (
            "ALTER TABLE `t` CHANGE `a` `a` INT NOT NULL, ALGORITHM=INPLACE, LOCK=NONE"
        )
