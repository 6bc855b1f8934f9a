"""
Column model for schemashift.

Typed column descriptors, the ordered name-unique ColumnSet that holds
them, and the conversion from raw store metadata to descriptors.
"""

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional

from ..database.introspection import ColumnInfo, ServerInfo
from ..exceptions import ValidationError
from .sql import quote_identifier


TEMPORAL_TYPES = frozenset({"TIMESTAMP", "DATETIME"})

TEXT_TYPES = frozenset({
    "TINYTEXT", "TEXT", "MEDIUMTEXT", "LONGTEXT", "VARCHAR", "CHAR", "ENUM", "SET",
})

# Types that never take a length/spec in brackets
UNSIZED_TYPES = frozenset({
    "DATE", "TINYBLOB", "TINYTEXT", "BLOB", "TEXT", "MEDIUMBLOB", "MEDIUMTEXT",
    "LONGBLOB", "LONGTEXT", "SERIAL", "BOOLEAN", "UUID", "JSON",
})

VIRTUAL_EXTRAS = ("VIRTUAL", "PERSISTENT", "VIRTUAL GENERATED", "STORED GENERATED")

_NOW_MARKER_RE = re.compile(r"^current_timestamp(\(\d*\))?$", re.IGNORECASE)
_ON_UPDATE_RE = re.compile(r"^on update current_timestamp(\(\d*\))?$", re.IGNORECASE)
_DEFAULT_GENERATED_RE = re.compile(r"\bDEFAULT_GENERATED\b\s*", re.IGNORECASE)


class DefaultKind(str, Enum):
    """Where a column's default comes from."""

    NONE = "NONE"
    NULL = "NULL"
    CURRENT_TIMESTAMP = "CURRENT_TIMESTAMP"
    USER_DEFINED = "USER_DEFINED"
    EXPRESSION = "EXPRESSION"


@dataclass(frozen=True)
class MoveTarget:
    """Requested position of a column: FIRST, or AFTER another column."""

    after: Optional[str] = None

    @classmethod
    def first(cls) -> "MoveTarget":
        return cls(None)

    @classmethod
    def after_column(cls, name: str) -> "MoveTarget":
        return cls(name)

    @property
    def is_first(self) -> bool:
        return self.after is None

    def to_sql(self) -> str:
        if self.is_first:
            return "FIRST"
        return f"AFTER {quote_identifier(self.after)}"


@dataclass(frozen=True)
class ColumnDescriptor:
    """Full definition of one column, as captured or as desired."""

    name: str
    type: str
    original_name: str = ""
    length: str = ""
    attribute: str = ""
    collation: str = ""
    nullable: bool = False
    default_kind: DefaultKind = DefaultKind.NONE
    default_value: str = ""
    extra: str = ""
    comment: str = ""
    virtuality: str = ""
    expression: str = ""
    move_to: Optional[MoveTarget] = None

    def __post_init__(self):
        if not self.original_name:
            object.__setattr__(self, "original_name", self.name)
        object.__setattr__(self, "default_kind", DefaultKind(self.default_kind))

    @property
    def base_type(self) -> str:
        return self.type.upper()

    @property
    def is_generated(self) -> bool:
        return bool(self.virtuality)

    @property
    def is_text(self) -> bool:
        return self.base_type in TEXT_TYPES

    @property
    def is_temporal(self) -> bool:
        return self.base_type in TEMPORAL_TYPES

    @property
    def is_renamed(self) -> bool:
        return self.name != self.original_name

    def evolve(self, **changes) -> "ColumnDescriptor":
        """Copy with changes; the copy keeps pointing at this column's original."""
        changes.setdefault("original_name", self.original_name)
        return replace(self, **changes)


class ColumnSet:
    """Ordered, name-unique collection of column descriptors.

    Iteration order is physical column order.
    """

    def __init__(self, columns: Iterable[ColumnDescriptor] = ()):
        self._columns: Dict[str, ColumnDescriptor] = {}
        for column in columns:
            if column.name in self._columns:
                raise ValidationError(
                    f"Duplicate column name '{column.name}'", {"column": column.name}
                )
            self._columns[column.name] = column

    def __iter__(self) -> Iterator[ColumnDescriptor]:
        return iter(self._columns.values())

    def __len__(self) -> int:
        return len(self._columns)

    def __contains__(self, name: object) -> bool:
        return name in self._columns

    def __getitem__(self, name: str) -> ColumnDescriptor:
        return self._columns[name]

    def __repr__(self) -> str:
        return f"ColumnSet({self.names()!r})"

    def get(self, name: str) -> Optional[ColumnDescriptor]:
        return self._columns.get(name)

    def names(self) -> List[str]:
        return list(self._columns)

    def check_sources(self, originals: "ColumnSet") -> None:
        """Validate this desired set against the captured originals.

        Every desired column must come from an existing column, and no
        existing column may be the source of two desired columns.
        """
        seen: Dict[str, str] = {}
        for column in self:
            if column.original_name not in originals:
                raise ValidationError(
                    f"Column '{column.original_name}' does not exist",
                    {"column": column.name},
                )
            if column.original_name in seen:
                raise ValidationError(
                    f"Column '{column.original_name}' is the source of both "
                    f"'{seen[column.original_name]}' and '{column.name}'"
                )
            seen[column.original_name] = column.name


@dataclass(frozen=True)
class ColumnSpec:
    """A raw column type split into its parts."""

    type: str
    length: str = ""
    attribute: str = ""


def extract_column_spec(column_type: str) -> ColumnSpec:
    """Split a raw type such as ``int(10) unsigned zerofill``."""
    spec = column_type.strip()
    open_pos = spec.find("(")

    if open_pos > 0:
        close_pos = spec.rfind(")")
        base = spec[:open_pos]
        length = spec[open_pos + 1:close_pos].rstrip()
        tail = spec[close_pos + 1:]
    else:
        base, _, tail = spec.partition(" ")
        length = ""

    tail = tail.lower()
    if "zerofill" in tail:
        attribute = "UNSIGNED ZEROFILL"
    elif "unsigned" in tail:
        attribute = "UNSIGNED"
    elif "binary" in tail:
        attribute = "BINARY"
    else:
        attribute = ""

    return ColumnSpec(type=base.strip().upper(), length=length, attribute=attribute)


def is_now_marker(value: Optional[str]) -> bool:
    """Check whether a captured default is the store's current-time marker."""
    return value is not None and bool(_NOW_MARKER_RE.match(value.strip()))


def descriptor_from_info(
    info: ColumnInfo,
    server: ServerInfo,
    expression: Optional[str] = None,
) -> ColumnDescriptor:
    """Build a descriptor that reproduces a column exactly as the store reports it.

    Generated columns need their expression passed in, because plain
    column metadata does not carry it.
    """
    spec = extract_column_spec(info.type)
    attribute = spec.attribute
    # MySQL 8 marks expression defaults, now-markers included, as DEFAULT_GENERATED
    expression_default = bool(_DEFAULT_GENERATED_RE.search(info.extra or ""))
    extra = _DEFAULT_GENERATED_RE.sub("", info.extra or "").strip()

    if _ON_UPDATE_RE.match(extra):
        attribute = extra
        extra = ""

    current_timestamp = spec.type in TEMPORAL_TYPES and is_now_marker(info.default)

    if info.nullable and info.default in (None, server.null_default_literal):
        default_kind, default_value = DefaultKind.NULL, ""
    elif current_timestamp:
        default_kind, default_value = DefaultKind.CURRENT_TIMESTAMP, ""
    elif info.default is None:
        default_kind, default_value = DefaultKind.NONE, ""
    elif expression_default:
        default_kind, default_value = DefaultKind.EXPRESSION, info.default
    else:
        default_kind, default_value = DefaultKind.USER_DEFINED, info.default

    virtuality = ""
    if extra.upper() in VIRTUAL_EXTRAS:
        if expression is None:
            raise ValidationError(
                f"Generation expression of column '{info.name}' is unknown",
                {"column": info.name},
            )
        virtuality = extra.upper().replace(" GENERATED", "")
        extra = ""

    return ColumnDescriptor(
        name=info.name,
        original_name=info.name,
        type=spec.type,
        length=spec.length,
        attribute=attribute,
        collation=info.collation or "",
        nullable=info.nullable,
        default_kind=default_kind,
        default_value=default_value,
        extra=extra,
        comment=info.comment or "",
        virtuality=virtuality,
        expression=(expression or "") if virtuality else "",
    )


def is_generated_info(info: ColumnInfo) -> bool:
    extra = _DEFAULT_GENERATED_RE.sub("", info.extra or "").strip().upper()
    return extra in VIRTUAL_EXTRAS
