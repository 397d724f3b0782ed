"""
Type hierarchy codec.

Exports a store's type hierarchy as parent/child rows and rebuilds it in a
target store. Export walks each category root with an explicit worklist, so a
child row is always written after the row that defined its parent; import
replays those rows in file order and treats any rejected row as fatal.

Layout under ``<data root>/schema``::

    role        child,parent
    attribute   child,parent,valueKind
    entity      child,parent
    relation    child,parent,role1,role2,...
    has         owner,attribute
    plays       player,role
    abstract    label
    rule        name / precondition / conclusion (three rows per rule)
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple, Union

from graph_migrate.migration.exceptions import MalformedRowError, SchemaImportError
from graph_migrate.migration.row_format import (
    format_rule,
    join_row,
    read_rows,
    read_rules,
    split_row,
    write_rows,
)
from graph_migrate.model.schema_types import (
    Category,
    RuleDefinition,
    TypeNode,
    UnsupportedValueKindError,
    ValueKind,
)
from graph_migrate.storage.interfaces.typed_graph_store_interface import (
    SourceStoreInterface,
    StoreError,
    TargetStoreInterface,
)

logger = logging.getLogger(__name__)

SCHEMA_DIR = "schema"
HAS_FILE = "has"
PLAYS_FILE = "plays"
RULE_FILE = "rule"
ABSTRACT_FILE = "abstract"

# Export order of the hierarchy files
HIERARCHY_ORDER = (Category.ROLE, Category.ATTRIBUTE, Category.ENTITY, Category.RELATION)


@dataclass
class SchemaSnapshot:
    """Everything export_schema wrote, kept for rendering the schema text."""

    hierarchy: Dict[Category, List[TypeNode]] = field(default_factory=dict)
    relates: Dict[str, List[str]] = field(default_factory=dict)
    has: List[Tuple[str, str]] = field(default_factory=list)
    plays: List[Tuple[str, str]] = field(default_factory=list)
    abstract: List[str] = field(default_factory=list)
    rules: List[RuleDefinition] = field(default_factory=list)

    def types(self) -> List[TypeNode]:
        return [node for category in HIERARCHY_ORDER for node in self.hierarchy.get(category, [])]

    def type_count(self) -> int:
        return len(self.types())


async def walk_hierarchy(store: SourceStoreInterface, root_label: str) -> List[TypeNode]:
    """
    Collect every non-implicit type below root_label, parents before children.

    Uses a deque as a stack: a popped label's direct subtypes are emitted and
    pushed, so a type is only ever discovered through an already-emitted parent.
    """
    ordered: List[TypeNode] = []
    worklist = deque([root_label])
    while worklist:
        label = worklist.pop()
        for child in await store.get_direct_subtypes(label):
            if child.implicit:
                continue
            ordered.append(child)
            worklist.append(child.label)
    return ordered


async def export_schema(store: SourceStoreInterface, data_root: Union[str, Path]) -> SchemaSnapshot:
    """
    Write the schema files of a source store.

    Args:
        store: Source store
        data_root: The ``data`` directory of the export

    Returns:
        SchemaSnapshot of what was written
    """
    schema_dir = Path(data_root) / SCHEMA_DIR
    schema_dir.mkdir(parents=True, exist_ok=True)
    snapshot = SchemaSnapshot()

    for category in HIERARCHY_ORDER:
        nodes = await walk_hierarchy(store, category.value)
        rows = []
        for node in nodes:
            fields = [node.label, node.parent]
            if category == Category.ATTRIBUTE:
                if node.value_kind is None:
                    raise UnsupportedValueKindError(f"Attribute type '{node.label}' has no value kind")
                fields.append(node.value_kind.value)
            elif category == Category.RELATION:
                roles = await store.get_related_roles(node.label)
                snapshot.relates[node.label] = roles
                fields.extend(roles)
            rows.append(join_row(fields))
        write_rows(schema_dir / category.value, rows)
        snapshot.hierarchy[category] = nodes
        logger.info(f"Exported {len(rows)} {category.value} types")

    exported = {node.label for node in snapshot.types()}
    for node in snapshot.types():
        if node.category == Category.ROLE:
            continue
        for attribute in await store.get_owned_attribute_types(node.label):
            if attribute in exported:
                snapshot.has.append((node.label, attribute))
        for role in await store.get_played_roles(node.label):
            # implicit roles are recreated by the target store itself
            if role in exported:
                snapshot.plays.append((node.label, role))
        if node.abstract:
            snapshot.abstract.append(node.label)
    for node in snapshot.hierarchy.get(Category.ROLE, []):
        if node.abstract:
            snapshot.abstract.append(node.label)

    write_rows(schema_dir / HAS_FILE, (join_row(edge) for edge in snapshot.has))
    write_rows(schema_dir / PLAYS_FILE, (join_row(edge) for edge in snapshot.plays))
    write_rows(schema_dir / ABSTRACT_FILE, (join_row([label]) for label in snapshot.abstract))

    snapshot.rules = list(await store.get_rules())
    write_rows(schema_dir / RULE_FILE, (row for rule in snapshot.rules for row in format_rule(rule)))

    logger.info(
        f"Exported schema: {snapshot.type_count()} types, {len(snapshot.has)} has edges, "
        f"{len(snapshot.plays)} plays edges, {len(snapshot.rules)} rules"
    )
    return snapshot


class _SchemaFileReader:
    """Reads one schema file and turns every row failure into a SchemaImportError."""

    def __init__(self, schema_dir: Path, file_name: str, required: bool = True):
        self.path = schema_dir / file_name
        self.file_name = f"{SCHEMA_DIR}/{file_name}"
        self.required = required

    def rows(self):
        if not self.path.exists():
            if self.required:
                raise SchemaImportError("Missing schema file", self.file_name)
            return
        try:
            yield from read_rows(self.path)
        except OSError as e:
            raise SchemaImportError(f"Cannot read schema file: {e}", self.file_name) from e

    def fail(self, error: Exception, line_number: int, row: str) -> SchemaImportError:
        return SchemaImportError(str(error), self.file_name, line_number, row)


_ROW_ERRORS = (MalformedRowError, StoreError, UnsupportedValueKindError)


async def _import_hierarchy(store: TargetStoreInterface, schema_dir: Path, category: Category) -> int:
    reader = _SchemaFileReader(schema_dir, category.value)
    count = 0
    for line_number, row in reader.rows():
        try:
            if category == Category.ATTRIBUTE:
                label, parent, token = split_row(row, expected=3)
                await store.define_type(label, category, parent, ValueKind.from_token(token))
            elif category == Category.RELATION:
                label, parent, *roles = split_row(row, minimum=2)
                await store.define_type(label, category, parent)
                for role in roles:
                    await store.define_relates(label, role)
            else:
                label, parent = split_row(row, expected=2)
                await store.define_type(label, category, parent)
        except _ROW_ERRORS as e:
            raise reader.fail(e, line_number, row) from e
        count += 1
    logger.info(f"Imported {count} {category.value} types")
    return count


async def _import_edges(store: TargetStoreInterface, schema_dir: Path, file_name: str) -> int:
    reader = _SchemaFileReader(schema_dir, file_name)
    define = store.define_has if file_name == HAS_FILE else store.define_plays
    count = 0
    for line_number, row in reader.rows():
        try:
            source, target = split_row(row, expected=2)
            await define(source, target)
        except _ROW_ERRORS as e:
            raise reader.fail(e, line_number, row) from e
        count += 1
    logger.info(f"Imported {count} {file_name} edges")
    return count


async def _import_abstract(store: TargetStoreInterface, schema_dir: Path) -> int:
    reader = _SchemaFileReader(schema_dir, ABSTRACT_FILE, required=False)
    count = 0
    for line_number, row in reader.rows():
        try:
            (label,) = split_row(row, expected=1)
            await store.set_abstract(label)
        except _ROW_ERRORS as e:
            raise reader.fail(e, line_number, row) from e
        count += 1
    return count


async def _import_rules(store: TargetStoreInterface, schema_dir: Path) -> int:
    reader = _SchemaFileReader(schema_dir, RULE_FILE)
    if not reader.path.exists():
        raise SchemaImportError("Missing schema file", reader.file_name)
    count = 0
    try:
        for line_number, rule in read_rules(reader.path):
            try:
                await store.define_rule(rule.name, rule.when, rule.then)
            except StoreError as e:
                raise reader.fail(e, line_number, rule.name) from e
            count += 1
    except MalformedRowError as e:
        raise SchemaImportError(str(e), reader.file_name) from e
    except OSError as e:
        raise SchemaImportError(f"Cannot read schema file: {e}", reader.file_name) from e
    logger.info(f"Imported {count} rules")
    return count


async def import_schema(store: TargetStoreInterface, data_root: Union[str, Path]) -> Dict[str, int]:
    """
    Rebuild the exported schema in a target store.

    Roles and relations are defined in one transaction, since relation rows
    declare the roles they relate. Attributes, entities, has/plays edges,
    rules and abstract markers follow, one transaction each.

    Returns:
        Number of rows applied per schema file

    Raises:
        SchemaImportError: On the first row the store rejects, or a missing file
    """
    schema_dir = Path(data_root) / SCHEMA_DIR
    counts: Dict[str, int] = {}

    async with store.transaction():
        counts[Category.ROLE.value] = await _import_hierarchy(store, schema_dir, Category.ROLE)
        counts[Category.RELATION.value] = await _import_hierarchy(store, schema_dir, Category.RELATION)

    async with store.transaction():
        counts[Category.ATTRIBUTE.value] = await _import_hierarchy(store, schema_dir, Category.ATTRIBUTE)

    async with store.transaction():
        counts[Category.ENTITY.value] = await _import_hierarchy(store, schema_dir, Category.ENTITY)

    async with store.transaction():
        counts[HAS_FILE] = await _import_edges(store, schema_dir, HAS_FILE)
        counts[PLAYS_FILE] = await _import_edges(store, schema_dir, PLAYS_FILE)

    async with store.transaction():
        counts[RULE_FILE] = await _import_rules(store, schema_dir)

    async with store.transaction():
        counts[ABSTRACT_FILE] = await _import_abstract(store, schema_dir)

    return counts
