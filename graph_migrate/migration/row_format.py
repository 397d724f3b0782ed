"""
Line-oriented row format shared by the exporter and the importers.

Every record is one physical line of comma-separated fields. Fields are
escaped on write, so a field may contain any character: backslash, comma,
parentheses, carriage return and newline are written as ``\\\\``, ``\\,``,
``\\(``, ``\\)``, ``\\r`` and ``\\n``. Relation rows additionally use unescaped
parentheses to group the players of each role::

    id,(role,player,player),(role,player)
"""

from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from graph_migrate.migration.exceptions import MalformedRowError
from graph_migrate.model.records import OwnershipRecord, RelationRecord
from graph_migrate.model.schema_types import RuleDefinition


_ESCAPES = {"\\": "\\\\", ",": "\\,", "(": "\\(", ")": "\\)", "\r": "\\r", "\n": "\\n"}
_UNESCAPES = {"\\": "\\", ",": ",", "(": "(", ")": ")", "r": "\r", "n": "\n"}
_DELIMITERS = ",()"

PathLike = Union[str, Path]


def escape_field(text: str) -> str:
    """Escape one field so it contains no bare delimiter or line break."""
    return "".join(_ESCAPES.get(ch, ch) for ch in text)


def _scan(line: str) -> Tuple[List[str], List[str]]:
    """
    Split a line at unescaped delimiters.

    Returns (texts, delimiters) where texts[i] is the unescaped text before
    delimiters[i]; there is always exactly one more text than delimiter.
    """
    texts: List[str] = []
    delimiters: List[str] = []
    buffer: List[str] = []
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == "\\":
            if i + 1 >= len(line):
                raise MalformedRowError("Dangling escape at end of row", line)
            escaped = line[i + 1]
            if escaped not in _UNESCAPES:
                raise MalformedRowError(f"Unknown escape sequence \\{escaped}", line)
            buffer.append(_UNESCAPES[escaped])
            i += 2
            continue
        if ch in _DELIMITERS:
            texts.append("".join(buffer))
            buffer = []
            delimiters.append(ch)
        else:
            buffer.append(ch)
        i += 1
    texts.append("".join(buffer))
    return texts, delimiters


def join_row(fields: Iterable[str]) -> str:
    return ",".join(escape_field(field) for field in fields)


def split_row(line: str, expected: Optional[int] = None, minimum: int = 1) -> List[str]:
    """
    Split a plain (non-relation) row into its unescaped fields.

    Args:
        line: Row text without the line terminator
        expected: Exact number of fields required, if any
        minimum: Smallest acceptable number of fields

    Raises:
        MalformedRowError: On a dangling escape, a bare parenthesis, or a
            field count that does not fit
    """
    texts, delimiters = _scan(line)
    if any(delimiter != "," for delimiter in delimiters):
        raise MalformedRowError("Unexpected parenthesis in row", line)
    if expected is not None and len(texts) != expected:
        raise MalformedRowError(f"Expected {expected} fields, found {len(texts)}", line)
    if len(texts) < minimum:
        raise MalformedRowError(f"Expected at least {minimum} fields, found {len(texts)}", line)
    return texts


def format_relation_row(relation_id: str, role_players: Dict[str, Iterable[str]]) -> str:
    """Format a relation instance; roles without players are left out."""
    parts = [escape_field(relation_id)]
    for role, players in role_players.items():
        players = list(players)
        if not players:
            continue
        parts.append("(" + join_row([role] + players) + ")")
    return ",".join(parts)


def parse_relation_row(line: str, type_label: str) -> RelationRecord:
    """
    Parse ``id,(role,player...),(role,player...)`` into a RelationRecord.

    A trailing comma after the last group is accepted.

    Raises:
        MalformedRowError: On unbalanced groups, empty roles or players, or
            text outside a group
    """
    texts, delimiters = _scan(line)
    relation_id = texts[0]
    if not relation_id:
        raise MalformedRowError("Relation row has no id", line)

    record = RelationRecord(original_id=relation_id, type_label=type_label)
    pos = 0
    while pos < len(delimiters):
        if delimiters[pos] != "," or texts[pos + 1]:
            raise MalformedRowError("Expected ',' before a role group", line)
        pos += 1
        if pos == len(delimiters):
            # trailing comma
            break
        if delimiters[pos] != "(":
            raise MalformedRowError("Expected '(' to open a role group", line)

        role = texts[pos + 1]
        pos += 1
        players = []
        while True:
            if pos >= len(delimiters):
                raise MalformedRowError("Unbalanced parenthesis in role group", line)
            delimiter = delimiters[pos]
            if delimiter == ",":
                players.append(texts[pos + 1])
                pos += 1
            elif delimiter == ")":
                if texts[pos + 1]:
                    raise MalformedRowError("Unexpected text after role group", line)
                pos += 1
                break
            else:
                raise MalformedRowError("Nested '(' in role group", line)

        if not role:
            raise MalformedRowError("Role group without a role label", line)
        if not players or not all(players):
            raise MalformedRowError(f"Role group '{role}' has an empty player id", line)
        record.role_players.setdefault(role, set()).update(players)

    return record


def format_ownership_row(ownership: OwnershipRecord) -> str:
    return join_row([ownership.attribute_id, ownership.owner_id])


def parse_ownership_row(line: str) -> OwnershipRecord:
    """
    Parse ``attribute id,owner id`` into an OwnershipRecord.

    Raises:
        MalformedRowError: Unless the row has exactly two non-empty fields
    """
    attribute_id, owner_id = split_row(line, expected=2)
    if not attribute_id or not owner_id:
        raise MalformedRowError("Ownership row has an empty id", line)
    return OwnershipRecord(attribute_id=attribute_id, owner_id=owner_id)


def read_rows(path: PathLike) -> Iterator[Tuple[int, str]]:
    """Yield (line number, row) for every non-blank line of a data file."""
    with open(path, "r", encoding="utf-8", newline="") as handle:
        for line_number, line in enumerate(handle, start=1):
            row = line.rstrip("\r\n")
            if row:
                yield line_number, row


def write_rows(path: PathLike, rows: Iterable[str]) -> int:
    """Write already-formatted rows, one per line. Returns the number written."""
    count = 0
    with open(path, "w", encoding="utf-8", newline="") as handle:
        for row in rows:
            handle.write(row + "\n")
            count += 1
    return count


def format_rule(rule: RuleDefinition) -> List[str]:
    """A rule spans three rows: name, precondition, conclusion."""
    return [escape_field(rule.name), escape_field(rule.when), escape_field(rule.then)]


def read_rules(path: PathLike) -> Iterator[Tuple[int, RuleDefinition]]:
    """Yield (line number of the name row, rule) from a rule file."""
    rows = list(read_rows(path))
    if len(rows) % 3:
        raise MalformedRowError(f"Rule file {path} has {len(rows)} rows, expected a multiple of 3")
    for index in range(0, len(rows), 3):
        (line_number, name), (_, when), (_, then) = rows[index:index + 3]
        yield line_number, RuleDefinition(
            name=split_row(name, expected=1)[0],
            when=split_row(when, expected=1)[0],
            then=split_row(then, expected=1)[0],
        )
