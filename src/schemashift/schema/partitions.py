"""
Partition definitions for schemashift.

Three steps, kept apart so each can be used and tested on its own:

- ``parse_definition`` reads the partition clause out of a table's
  ``SHOW CREATE TABLE`` text into plain parse records.
- ``extract_partition_descriptor`` turns those records into an immutable
  ``PartitionDescriptor``, synthesizing default slots for positions the
  definition does not spell out.
- ``render_partition_definition`` serializes a descriptor back into the
  clause of an ALTER TABLE statement.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ..exceptions import PartitionParseError
from .sql import quote_identifier, quote_string, unescape_string


logger = logging.getLogger(__name__)

# Only LIST and RANGE partitions take boundary values and allow subpartitions
VALUE_METHODS = frozenset({"RANGE", "RANGE COLUMNS", "LIST", "LIST COLUMNS"})

MAXVALUE = "MAXVALUE"
MAXVALUE_SUFFIX = " MAXVALUE"

OPTION_KEYS = (
    "ENGINE",
    "COMMENT",
    "DATA DIRECTORY",
    "INDEX DIRECTORY",
    "MAX_ROWS",
    "MIN_ROWS",
    "TABLESPACE",
    "NODEGROUP",
)


# ============================================================================
# Parse records
# ============================================================================

@dataclass(frozen=True)
class ParsedSubpartition:
    """A SUBPARTITION definition as written in the table definition."""

    name: str
    options: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ParsedPartition:
    """A PARTITION definition as written in the table definition."""

    name: str
    type: str = ""
    expr: str = ""
    options: Dict[str, str] = field(default_factory=dict)
    subpartitions: Tuple[ParsedSubpartition, ...] = ()


@dataclass(frozen=True)
class ParsedPartitionClause:
    """The partition clause of a table definition."""

    partition_by: str
    partitions_num: Optional[int] = None
    subpartition_by: str = ""
    subpartitions_num: Optional[int] = None
    partitions: Tuple[ParsedPartition, ...] = ()


# ============================================================================
# Descriptors
# ============================================================================

@dataclass(frozen=True)
class SubpartitionSlot:
    """One subpartition of a partition."""

    name: str
    engine: str = ""
    comment: str = ""
    data_directory: str = ""
    index_directory: str = ""
    max_rows: str = ""
    min_rows: str = ""
    tablespace: str = ""
    node_group: str = ""


@dataclass(frozen=True)
class PartitionSlot:
    """One partition of a table."""

    name: str
    value_type: str = ""
    value: str = ""
    engine: str = ""
    comment: str = ""
    data_directory: str = ""
    index_directory: str = ""
    max_rows: str = ""
    min_rows: str = ""
    tablespace: str = ""
    node_group: str = ""
    subpartitions: Tuple[SubpartitionSlot, ...] = ()

    @property
    def is_maxvalue(self) -> bool:
        return self.value_type.endswith(MAXVALUE_SUFFIX)


@dataclass(frozen=True)
class PartitionDescriptor:
    """Partitioning of a table. An empty method means no partitioning."""

    method: str = ""
    expression: str = ""
    count: int = 0
    subpartition_method: str = ""
    subpartition_expression: str = ""
    subpartition_count: int = 0
    slots: Tuple[PartitionSlot, ...] = ()

    @property
    def is_partitioned(self) -> bool:
        return bool(self.method)

    @property
    def values_enabled(self) -> bool:
        return self.method.upper() in VALUE_METHODS

    @property
    def can_have_subpartitions(self) -> bool:
        return self.count > 1 and self.values_enabled


# ============================================================================
# Parser
# ============================================================================

_TOKEN_RE = re.compile(
    r"""
      (?P<ws>\s+)
    | (?P<string>'(?:[^'\\]|\\.|'')*'|"(?:[^"\\]|\\.|"")*")
    | (?P<ident>`(?:[^`]|``)*`)
    | (?P<number>\d+(?:\.\d+)?)
    | (?P<word>[A-Za-z_$][A-Za-z0-9_$]*)
    | (?P<punct>[(),=;])
    | (?P<other>.)
    """,
    re.VERBOSE | re.DOTALL,
)


@dataclass(frozen=True)
class _Token:
    kind: str
    value: str
    start: int
    end: int

    @property
    def upper(self) -> str:
        return self.value.upper()

    def is_word(self, *words: str) -> bool:
        return self.kind == "word" and self.upper in words

    def is_punct(self, char: str) -> bool:
        return self.kind == "punct" and self.value == char


def _blank_comments(text: str) -> str:
    """Unwrap ``/*!50100 ... */`` comments and blank out plain ones.

    Character positions are preserved so token spans map back to the text.
    """
    out = list(text)
    i, n = 0, len(text)
    quote = None
    in_versioned = False

    while i < n:
        ch = text[i]
        if quote:
            if ch == "\\" and quote != "`":
                i += 2
                continue
            if ch == quote:
                quote = None
            i += 1
            continue

        if ch in ("'", '"', "`"):
            quote = ch
            i += 1
        elif text.startswith("/*!", i):
            j = i + 3
            while j < n and text[j].isdigit():
                j += 1
            out[i:j] = " " * (j - i)
            in_versioned = True
            i = j
        elif text.startswith("/*", i):
            j = text.find("*/", i + 2)
            j = n if j < 0 else j + 2
            out[i:j] = " " * (j - i)
            i = j
        elif in_versioned and text.startswith("*/", i):
            out[i:i + 2] = "  "
            in_versioned = False
            i += 2
        else:
            i += 1

    return "".join(out)


def _tokenize(text: str) -> List[_Token]:
    tokens = []
    for match in _TOKEN_RE.finditer(text):
        kind = match.lastgroup
        if kind == "ws":
            continue
        tokens.append(_Token(kind, match.group(), match.start(), match.end()))
    return tokens


def _unquote_identifier(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == "`":
        return value[1:-1].replace("``", "`")
    return value


class _ClauseParser:
    """Recursive-descent parser for the partition clause of a definition."""

    def __init__(self, text: str):
        self.text = _blank_comments(text)
        self.tokens = _tokenize(self.text)
        self.pos = 0

    # -- token helpers ------------------------------------------------------

    def _peek(self, offset: int = 0) -> Optional[_Token]:
        index = self.pos + offset
        return self.tokens[index] if index < len(self.tokens) else None

    def _next(self, expected: str) -> _Token:
        token = self._peek()
        if token is None:
            raise PartitionParseError(f"Unexpected end of definition, expected {expected}")
        self.pos += 1
        return token

    def _fail(self, expected: str) -> PartitionParseError:
        token = self._peek()
        if token is None:
            return PartitionParseError(f"Unexpected end of definition, expected {expected}")
        return PartitionParseError(
            f"Unexpected '{token.value}', expected {expected}", position=token.start
        )

    def _at_word(self, *words: str) -> bool:
        token = self._peek()
        return token is not None and token.is_word(*words)

    def _at_punct(self, char: str) -> bool:
        token = self._peek()
        return token is not None and token.is_punct(char)

    def _expect_word(self, *words: str) -> _Token:
        if not self._at_word(*words):
            raise self._fail(" or ".join(words))
        return self._next(words[0])

    def _expect_punct(self, char: str) -> _Token:
        if not self._at_punct(char):
            raise self._fail(f"'{char}'")
        return self._next(char)

    def _skip_equals(self) -> None:
        if self._at_punct("="):
            self.pos += 1

    def _group_end(self) -> _Token:
        """Consume a balanced parenthesized group, returning its closing token."""
        self._expect_punct("(")
        depth = 1
        while depth:
            token = self._next("')'")
            if token.is_punct("("):
                depth += 1
            elif token.is_punct(")"):
                depth -= 1
        return self.tokens[self.pos - 1]

    # -- grammar ------------------------------------------------------------

    def _find_partition_by(self) -> Optional[int]:
        depth = 0
        for index, token in enumerate(self.tokens[:-1]):
            if token.is_punct("("):
                depth += 1
            elif token.is_punct(")"):
                depth -= 1
            elif depth == 0 and token.is_word("PARTITION") and self.tokens[index + 1].is_word("BY"):
                return index
        return None

    def _method_clause(self) -> str:
        """Read ``<method tokens> (<expr>)`` and return its source text."""
        first = self._peek()
        if first is None or first.is_punct("("):
            raise self._fail("partitioning method")
        while not self._at_punct("("):
            token = self._next("'('")
            if token.is_punct(")") or token.is_punct(","):
                raise PartitionParseError(
                    f"Unexpected '{token.value}' in partitioning method", position=token.start
                )
        close = self._group_end()
        return self.text[first.start:close.end]

    def _optional_count(self, keyword: str) -> Optional[int]:
        if not self._at_word(keyword):
            return None
        self.pos += 1
        token = self._next("a number")
        if token.kind != "number" or not token.value.isdigit():
            raise PartitionParseError(
                f"{keyword} must be followed by a number", position=token.start
            )
        return int(token.value)

    def _name(self) -> str:
        token = self._next("a name")
        if token.kind not in ("word", "ident", "number"):
            raise PartitionParseError(f"Invalid name '{token.value}'", position=token.start)
        return _unquote_identifier(token.value)

    def _option_value(self) -> str:
        token = self._next("an option value")
        if token.kind == "ident":
            return _unquote_identifier(token.value)
        if token.kind in ("word", "number", "string"):
            return token.value
        raise PartitionParseError(f"Invalid option value '{token.value}'", position=token.start)

    def _options(self) -> Dict[str, str]:
        options: Dict[str, str] = {}
        while True:
            token = self._peek()
            if token is None or token.kind == "punct":
                return options

            if token.is_word("STORAGE"):
                self.pos += 1
                self._expect_word("ENGINE")
                key = "ENGINE"
            elif token.is_word("DATA", "INDEX"):
                self.pos += 1
                self._expect_word("DIRECTORY")
                key = f"{token.upper} DIRECTORY"
            elif token.is_word(*OPTION_KEYS):
                self.pos += 1
                key = token.upper
            else:
                raise self._fail("a partition option")

            self._skip_equals()
            options[key] = self._option_value()

    def _values(self) -> Tuple[str, str]:
        if not self._at_word("VALUES"):
            return "", ""
        self.pos += 1

        if self._at_word("IN"):
            self.pos += 1
            value_type = "IN"
        else:
            self._expect_word("LESS")
            self._expect_word("THAN")
            value_type = "LESS THAN"

        if self._at_word(MAXVALUE):
            self.pos += 1
            return value_type, MAXVALUE

        start = self._peek()
        if start is None or not start.is_punct("("):
            raise self._fail("'(' or MAXVALUE")
        close = self._group_end()
        return value_type, self.text[start.start:close.end]

    def _subpartition(self) -> ParsedSubpartition:
        self._expect_word("SUBPARTITION")
        name = self._name()
        return ParsedSubpartition(name=name, options=self._options())

    def _partition(self) -> ParsedPartition:
        self._expect_word("PARTITION")
        name = self._name()
        value_type, expr = self._values()
        options = self._options()

        subpartitions: List[ParsedSubpartition] = []
        if self._at_punct("("):
            self.pos += 1
            while True:
                subpartitions.append(self._subpartition())
                if self._at_punct(","):
                    self.pos += 1
                    continue
                self._expect_punct(")")
                break

        return ParsedPartition(
            name=name,
            type=value_type,
            expr=expr,
            options=options,
            subpartitions=tuple(subpartitions),
        )

    def parse(self) -> Optional[ParsedPartitionClause]:
        index = self._find_partition_by()
        if index is None:
            return None
        self.pos = index + 2

        partition_by = self._method_clause()
        partitions_num = self._optional_count("PARTITIONS")

        subpartition_by = ""
        subpartitions_num = None
        if self._at_word("SUBPARTITION"):
            self.pos += 1
            self._expect_word("BY")
            subpartition_by = self._method_clause()
            subpartitions_num = self._optional_count("SUBPARTITIONS")

        partitions: List[ParsedPartition] = []
        if self._at_punct("("):
            self.pos += 1
            while True:
                partitions.append(self._partition())
                if self._at_punct(","):
                    self.pos += 1
                    continue
                self._expect_punct(")")
                break

        return ParsedPartitionClause(
            partition_by=partition_by,
            partitions_num=partitions_num,
            subpartition_by=subpartition_by,
            subpartitions_num=subpartitions_num,
            partitions=tuple(partitions),
        )


def parse_definition(text: str) -> Optional[ParsedPartitionClause]:
    """Parse the partition clause of a CREATE TABLE text.

    Returns None when the table is not partitioned.

    Raises:
        PartitionParseError: the partition clause is malformed
    """
    return _ClauseParser(text).parse()


# ============================================================================
# Extraction
# ============================================================================

def _split_method(clause: str) -> Tuple[str, str]:
    """Split ``RANGE COLUMNS (a, b)`` at its first '(' and last ')'."""
    open_pos = clause.find("(")
    close_pos = clause.rfind(")")
    if open_pos < 0 or close_pos < open_pos:
        return " ".join(clause.split()).upper(), ""
    method = " ".join(clause[:open_pos].split()).upper()
    return method, clause[open_pos + 1:close_pos].strip()


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return unescape_string(value[1:-1], value[0])
    return value


def _strip_outer_parens(expr: str) -> str:
    """Remove one pair of parentheses enclosing the whole expression."""
    expr = expr.strip()
    if not expr.startswith("("):
        return expr

    depth = 0
    quote = None
    for index, ch in enumerate(expr):
        if quote:
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"', "`"):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                if index == len(expr) - 1:
                    return expr[1:-1].strip()
                return expr
    return expr


def _slot_options(options: Dict[str, str]) -> Dict[str, str]:
    return {
        "engine": options.get("ENGINE", ""),
        "comment": _strip_quotes(options.get("COMMENT", "")),
        "data_directory": _strip_quotes(options.get("DATA DIRECTORY", "")),
        "index_directory": _strip_quotes(options.get("INDEX DIRECTORY", "")),
        "max_rows": options.get("MAX_ROWS", ""),
        "min_rows": options.get("MIN_ROWS", ""),
        "tablespace": options.get("TABLESPACE", ""),
        "node_group": options.get("NODEGROUP", ""),
    }


def _subpartition_slots(
    parent_name: str,
    declared: Tuple[ParsedSubpartition, ...],
    count: int,
) -> Tuple[SubpartitionSlot, ...]:
    slots = []
    for j in range(count):
        if j < len(declared):
            sub = declared[j]
            slots.append(SubpartitionSlot(name=sub.name, **_slot_options(sub.options)))
        else:
            slots.append(SubpartitionSlot(name=f"{parent_name}_s{j}"))
    return tuple(slots)


def _partition_slot(
    index: int,
    declared: Optional[ParsedPartition],
    subpartition_count: int,
) -> PartitionSlot:
    if declared is None:
        name = f"p{index}"
        value_type, value, options = "", "", {}
        sub_declared: Tuple[ParsedSubpartition, ...] = ()
    else:
        name = declared.name
        value_type = declared.type
        value = _strip_outer_parens(declared.expr)
        if value == MAXVALUE:
            value_type += MAXVALUE_SUFFIX
            value = ""
        options = _slot_options(declared.options)
        sub_declared = declared.subpartitions

    subpartitions: Tuple[SubpartitionSlot, ...] = ()
    if subpartition_count > 1:
        subpartitions = _subpartition_slots(name, sub_declared, subpartition_count)

    return PartitionSlot(
        name=name,
        value_type=value_type,
        value=value,
        subpartitions=subpartitions,
        **options,
    )


def extract_partition_descriptor(
    parsed: Optional[ParsedPartitionClause],
) -> PartitionDescriptor:
    """Build the descriptor of a parsed partition clause.

    Slot ``i`` comes from the definition when it is declared there and is
    synthesized as ``p<i>`` otherwise, so the slot list always has exactly
    ``count`` entries.
    """
    if parsed is None:
        return PartitionDescriptor()

    method, expression = _split_method(parsed.partition_by)
    count = (
        parsed.partitions_num
        if parsed.partitions_num is not None
        else len(parsed.partitions)
    )

    subpartition_method = subpartition_expression = ""
    subpartition_count = 0
    if parsed.subpartition_by:
        subpartition_method, subpartition_expression = _split_method(parsed.subpartition_by)
        if parsed.subpartitions_num is not None:
            subpartition_count = parsed.subpartitions_num
        elif parsed.partitions:
            subpartition_count = len(parsed.partitions[0].subpartitions)

    slots = tuple(
        _partition_slot(
            i,
            parsed.partitions[i] if i < len(parsed.partitions) else None,
            subpartition_count,
        )
        for i in range(count)
    )

    return PartitionDescriptor(
        method=method,
        expression=expression,
        count=count,
        subpartition_method=subpartition_method,
        subpartition_expression=subpartition_expression,
        subpartition_count=subpartition_count,
        slots=slots,
    )


def extract_from_definition(
    text: Optional[str],
    parser: Callable[[str], Optional[ParsedPartitionClause]] = parse_definition,
) -> PartitionDescriptor:
    """Extract the partitioning of a table definition.

    A missing definition, or one whose partition clause cannot be parsed,
    yields the empty descriptor.
    """
    if not text:
        return PartitionDescriptor()

    try:
        parsed = parser(text)
    except PartitionParseError as e:
        logger.warning(f"Could not parse partition clause, treating table as unpartitioned: {e}")
        return PartitionDescriptor()

    return extract_partition_descriptor(parsed)


# ============================================================================
# Serialization
# ============================================================================

def _render_options(slot) -> str:
    sql = ""
    if slot.engine:
        sql += f" ENGINE = {slot.engine}"
    if slot.comment:
        sql += f" COMMENT = {quote_string(slot.comment)}"
    if slot.data_directory:
        sql += f" DATA DIRECTORY = {quote_string(slot.data_directory)}"
    if slot.index_directory:
        sql += f" INDEX DIRECTORY = {quote_string(slot.index_directory)}"
    if slot.max_rows:
        sql += f" MAX_ROWS = {slot.max_rows}"
    if slot.min_rows:
        sql += f" MIN_ROWS = {slot.min_rows}"
    if slot.tablespace:
        sql += f" TABLESPACE = {slot.tablespace}"
    if slot.node_group:
        sql += f" NODEGROUP = {slot.node_group}"
    return sql


def _render_slot(slot: PartitionSlot) -> str:
    sql = f"PARTITION {quote_identifier(slot.name)}"

    if slot.value_type:
        if slot.is_maxvalue:
            sql += f" VALUES {slot.value_type}"
        else:
            sql += f" VALUES {slot.value_type} ({slot.value})"

    sql += _render_options(slot)

    if slot.subpartitions:
        subpartitions = ", ".join(
            f"SUBPARTITION {quote_identifier(sub.name)}{_render_options(sub)}"
            for sub in slot.subpartitions
        )
        sql += f" ({subpartitions})"

    return sql


def render_partition_definition(descriptor: PartitionDescriptor) -> str:
    """Serialize a descriptor into the partition clause of an ALTER TABLE."""
    if not descriptor.is_partitioned:
        return "REMOVE PARTITIONING"

    sql = f"PARTITION BY {descriptor.method} ({descriptor.expression})"
    if descriptor.count:
        sql += f" PARTITIONS {descriptor.count}"

    if descriptor.subpartition_method:
        sql += (
            f" SUBPARTITION BY {descriptor.subpartition_method} "
            f"({descriptor.subpartition_expression})"
        )
        if descriptor.subpartition_count:
            sql += f" SUBPARTITIONS {descriptor.subpartition_count}"

    if descriptor.slots:
        sql += " (" + ", ".join(_render_slot(slot) for slot in descriptor.slots) + ")"

    return sql
