"""
Column diff and CHANGE clause builder for schemashift.

Compares a captured column with its desired definition and renders the
``CHANGE`` fragment of an ALTER TABLE statement that gets from one to
the other.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..database.introspection import IndexMembership, ServerInfo
from ..exceptions import ValidationError
from .columns import UNSIZED_TYPES, ColumnDescriptor, DefaultKind
from .sql import alter_table, quote_identifier, quote_string


logger = logging.getLogger(__name__)

# Facets compared to decide whether a column needs altering, besides the
# name and the move target.
TRACKED_FIELDS = (
    "type",
    "length",
    "attribute",
    "collation",
    "nullable",
    "default_kind",
    "default_value",
    "extra",
    "comment",
    "virtuality",
    "expression",
)

ONLINE_ALGORITHM_HINT = "ALGORITHM=INPLACE, LOCK=NONE"

_BOOLEAN_TRUE_RE = re.compile(r"^(1|T|TRUE|YES)$", re.IGNORECASE)
_BOOLEAN_FALSE_RE = re.compile(r"^(0|F|FALSE|NO)$", re.IGNORECASE)
_AUTO_INCREMENT_RE = re.compile(r"\bAUTO_INCREMENT\b", re.IGNORECASE)


@dataclass(frozen=True)
class AlterClause:
    """One CHANGE fragment of an ALTER TABLE statement."""

    column: str
    original_name: str
    sql: str
    changed_fields: Sequence[str] = ()

    def __str__(self) -> str:
        return self.sql


def _normalized(column: ColumnDescriptor, field_name: str):
    value = getattr(column, field_name)
    if field_name == "type":
        return value.upper()
    return value


def changed_fields(original: ColumnDescriptor, desired: ColumnDescriptor) -> List[str]:
    """Name every facet in which the desired column differs from the original."""
    changed = []
    if desired.name != original.name:
        changed.append("name")
    for field_name in TRACKED_FIELDS:
        if _normalized(desired, field_name) != _normalized(original, field_name):
            changed.append(field_name)
    if desired.move_to is not None:
        changed.append("move_to")
    return changed


def _charset_part(collation: str, server: ServerInfo, generated: bool) -> str:
    charset = collation.split("_", 1)[0]
    if generated and server.is_mariadb:
        return f" CHARACTER SET {charset}"
    return f" CHARACTER SET {charset} COLLATE {collation}"


def _default_part(column: ColumnDescriptor) -> str:
    kind = column.default_kind
    value = column.default_value
    base_type = column.base_type

    if kind == DefaultKind.USER_DEFINED:
        if base_type == "TIMESTAMP" and value == "0":
            # TIMESTAMP rejects DEFAULT '0' but accepts DEFAULT 0
            return " DEFAULT 0"
        if base_type == "BIT":
            bits = re.sub(r"[^01]", "0", value.removeprefix("b'").removesuffix("'"))
            return f" DEFAULT b'{bits}'"
        if base_type == "BOOLEAN":
            if _BOOLEAN_TRUE_RE.match(value):
                return " DEFAULT TRUE"
            if _BOOLEAN_FALSE_RE.match(value):
                return " DEFAULT FALSE"
        return f" DEFAULT {quote_string(value)}"

    if kind == DefaultKind.NULL:
        if not column.nullable:
            return ""
        return " DEFAULT NULL"

    if kind == DefaultKind.CURRENT_TIMESTAMP:
        if column.is_temporal and column.length:
            return f" DEFAULT CURRENT_TIMESTAMP({column.length})"
        return " DEFAULT CURRENT_TIMESTAMP"

    if kind == DefaultKind.EXPRESSION:
        return f" DEFAULT ({value})"

    return ""


def render_column_definition(
    column: ColumnDescriptor,
    server: Optional[ServerInfo] = None,
) -> str:
    """Render ``<name> <type>...`` for a column, without the CHANGE prefix."""
    server = server or ServerInfo()
    generated = column.is_generated
    base_type = column.base_type

    parts = [f"{quote_identifier(column.name)} {base_type}"]

    if column.length and base_type not in UNSIZED_TYPES:
        parts.append(f"({column.length})")

    if column.attribute:
        parts.append(f" {column.attribute}")
        if (
            column.is_temporal
            and column.length
            and column.attribute.upper().endswith("CURRENT_TIMESTAMP")
        ):
            parts.append(f"({column.length})")

    if column.collation and column.collation.upper() != "NULL" and column.is_text:
        parts.append(_charset_part(column.collation, server, generated))

    if generated:
        parts.append(f" AS ({column.expression}) {column.virtuality}")

    # MariaDB generated columns take no NULL or extra clauses
    if not generated or not server.is_mariadb:
        parts.append(" NULL" if column.nullable else " NOT NULL")

        if not generated:
            parts.append(_default_part(column))

        extra = column.extra
        if generated:
            extra = _AUTO_INCREMENT_RE.sub("", extra).strip()
        if extra:
            parts.append(f" {extra}")

    if column.comment:
        parts.append(f" COMMENT {quote_string(column.comment)}")

    if column.move_to is not None:
        parts.append(f" {column.move_to.to_sql()}")

    return "".join(parts)


def render_change(
    source_name: str,
    column: ColumnDescriptor,
    server: Optional[ServerInfo] = None,
) -> str:
    """Render a full ``CHANGE <source> <definition>`` fragment."""
    return f"CHANGE {quote_identifier(source_name)} {render_column_definition(column, server)}"


def build_clause(
    original: ColumnDescriptor,
    desired: ColumnDescriptor,
    index_membership: IndexMembership,
    server: Optional[ServerInfo] = None,
) -> Optional[AlterClause]:
    """Build the CHANGE clause for one column, or None if nothing differs.

    Index membership is only consulted, never changed here: index
    changes go out as statements of their own.
    """
    if desired.original_name != original.name:
        raise ValidationError(
            f"Desired column '{desired.name}' comes from '{desired.original_name}', "
            f"not '{original.name}'"
        )

    changed = changed_fields(original, desired)
    if not changed:
        return None

    if (
        _AUTO_INCREMENT_RE.search(desired.extra)
        and not index_membership.covers(original.name)
    ):
        logger.warning(
            f"Column '{desired.name}' is AUTO_INCREMENT but not covered by an index; "
            f"the store will reject it unless an index is added"
        )

    return AlterClause(
        column=desired.name,
        original_name=original.name,
        sql=render_change(original.name, desired, server),
        changed_fields=tuple(changed),
    )


def combine_clauses(
    table: str,
    clauses: Sequence[AlterClause],
    online_algorithm_hint: bool = False,
) -> str:
    """Combine column clauses into one ALTER TABLE statement."""
    fragments = [clause.sql for clause in clauses]
    if online_algorithm_hint:
        fragments.append(ONLINE_ALGORITHM_HINT)
    return alter_table(table, fragments)
