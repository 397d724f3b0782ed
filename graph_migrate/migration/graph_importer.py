"""
Instance importer with deferred relation linking.

The target store mints every identifier, and relations may play roles in
other relations (cycles included), so no creation order can guarantee that a
relation's players exist before it does. Import therefore runs in fixed
phases, each to completion before the next:

1. entities, then attributes: created and remapped, no dependencies
2. relations whose players are all remapped: created and linked at once;
   the rest are deferred
3. ownerships whose owner is remapped: attached; the rest are deferred
4. placeholders: deferred relations that reference an id never imported
   fail first, then a bare instance is created and remapped for the rest
5. linking: every placeholder gets its players through the complete remap
6. deferred ownerships: attached through the complete remap

Existence is decoupled from linkage in step 4, which is what breaks cycles of
any length with exactly two extra passes.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from graph_migrate.config.config_manager import ErrorPolicy
from graph_migrate.migration.exceptions import (
    DuplicateIdentifierError,
    MalformedRowError,
    MigrationError,
    SchemaImportError,
    UnresolvedReferenceError,
)
from graph_migrate.migration.id_remap import IdentifierRemap
from graph_migrate.migration.instance_exporter import OWNERSHIP_DIR
from graph_migrate.migration.row_format import parse_ownership_row, parse_relation_row, read_rows, split_row
from graph_migrate.model.records import (
    PendingOwnership,
    PendingRelation,
    RelationState,
)
from graph_migrate.model.schema_types import Category, TypeNode, UnsupportedValueKindError
from graph_migrate.monitoring.structured_logger import OperationLogger, get_logger
from graph_migrate.storage.interfaces.typed_graph_store_interface import (
    StoreError,
    TargetStoreInterface,
)

# Failures that concern a single record; anything else aborts the run
ROW_ERRORS = (
    MalformedRowError,
    UnresolvedReferenceError,
    DuplicateIdentifierError,
    StoreError,
    ValueError,
)

_TRANSITIONS = {
    RelationState.UNSEEN: {RelationState.RESOLVED, RelationState.DEFERRED, RelationState.FAILED},
    RelationState.DEFERRED: {RelationState.PLACEHOLDER_CREATED, RelationState.FAILED},
    RelationState.PLACEHOLDER_CREATED: {RelationState.LINKED, RelationState.FAILED},
}


@dataclass
class RowFailure:
    """One record that could not be imported."""

    phase: str
    type_label: str
    original_id: Optional[str]
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "type_label": self.type_label,
            "original_id": self.original_id,
            "reason": self.reason,
        }

    def __str__(self) -> str:
        return f"[{self.phase}] {self.type_label} {self.original_id or '-'}: {self.reason}"


@dataclass
class ImportStats:
    """Counters of one import run."""

    entities: int = 0
    attributes: int = 0
    relations_resolved: int = 0
    relations_deferred: int = 0
    relations_linked: int = 0
    ownerships_attached: int = 0
    ownerships_deferred: int = 0
    failures: List[RowFailure] = field(default_factory=list)

    @property
    def relations(self) -> int:
        return self.relations_resolved + self.relations_linked

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entities": self.entities,
            "attributes": self.attributes,
            "relations_resolved": self.relations_resolved,
            "relations_deferred": self.relations_deferred,
            "relations_linked": self.relations_linked,
            "ownerships_attached": self.ownerships_attached,
            "ownerships_deferred": self.ownerships_deferred,
            "failures": [failure.to_dict() for failure in self.failures],
        }


class ImportContext:
    """
    State of one import run, threaded through every phase.

    Holds the identifier remap, the deferred relations and ownerships, and
    the state of each relation record. Nothing here outlives the run.
    """

    def __init__(self):
        self.remap = IdentifierRemap()
        self.pending_relations: List[PendingRelation] = []
        self.pending_ownerships: List[PendingOwnership] = []
        self.relation_states: Dict[str, RelationState] = {}
        self.stats = ImportStats()

    @property
    def failures(self) -> List[RowFailure]:
        return self.stats.failures

    def relation_state(self, original_id: str) -> RelationState:
        return self.relation_states.get(original_id, RelationState.UNSEEN)

    def set_relation_state(self, original_id: str, state: RelationState) -> None:
        current = self.relation_state(original_id)
        if state not in _TRANSITIONS.get(current, set()):
            raise MigrationError(
                f"Relation {original_id} cannot move from {current.value} to {state.value}"
            )
        self.relation_states[original_id] = state

    def check_new_record(self, original_id: str) -> None:
        """Raise DuplicateIdentifierError if original_id was already seen in this run."""
        self.remap.check_unmapped(original_id)
        if self.relation_state(original_id) != RelationState.UNSEEN:
            raise DuplicateIdentifierError(original_id, f"a {self.relation_state(original_id).value} relation")


class GraphRelinkImporter:
    """
    Loads exported instance files into a target store.

    Every creation or linking step runs in its own transaction, so a failing
    record never leaves a half-linked instance behind and never corrupts the
    remap. How a failing record is handled depends on the error policy:
    ``best_effort`` records a RowFailure and carries on, ``fail_fast``
    re-raises. Unknown types and value kinds abort the run under both.
    """

    def __init__(
        self,
        store: TargetStoreInterface,
        error_policy: ErrorPolicy = ErrorPolicy.BEST_EFFORT,
        progress_interval: int = 10000,
    ):
        self.store = store
        self.error_policy = error_policy
        self.progress_interval = progress_interval
        self.logger = logging.getLogger(__name__)
        self.structured_logger = get_logger(__name__, component="importer")

    async def import_instances(self, data_root: Union[str, Path]) -> ImportStats:
        """
        Import every data file under data_root.

        Args:
            data_root: The ``data`` directory of an export

        Returns:
            ImportStats of the run, failures included

        Raises:
            SchemaImportError: If a data file names a type the store does not know
            UnsupportedValueKindError: If an attribute type has no usable value kind
        """
        data_root = Path(data_root)
        context = ImportContext()

        phases = [
            ("entities", self._import_entities),
            ("attributes", self._import_attributes),
            ("relations", self._import_relations),
            ("ownerships", self._import_ownerships),
            ("placeholders", self._create_placeholders),
            ("linking", self._link_placeholders),
            ("pending_ownerships", self._attach_pending_ownerships),
        ]
        for name, phase in phases:
            with OperationLogger(self.structured_logger, f"import_{name}"):
                await phase(data_root, context)

        self._log_summary(context)
        return context.stats

    # Helpers
    def _type_files(self, data_root: Path, directory_name: str) -> Iterator[Tuple[str, Path]]:
        directory = data_root / directory_name
        if not directory.is_dir():
            self.logger.warning(f"No {directory_name} directory under {data_root}")
            return
        for path in sorted(directory.iterdir()):
            if path.is_file():
                yield path.name, path

    async def _require_type(self, type_label: str, category: Category) -> TypeNode:
        node = await self.store.get_type(type_label)
        if node is None or node.category != category:
            raise SchemaImportError(f"Data file names unknown {category.value} type '{type_label}'")
        return node

    def _record_failure(
        self,
        context: ImportContext,
        phase: str,
        type_label: str,
        original_id: Optional[str],
        error: Exception,
    ) -> None:
        failure = RowFailure(phase, type_label, original_id, f"{type(error).__name__}: {error}")
        context.failures.append(failure)
        self.logger.error(f"Failed to import {failure}")
        if self.error_policy == ErrorPolicy.FAIL_FAST:
            raise error

    def _progress(self, phase: str, type_label: str, count: int) -> None:
        if count % self.progress_interval == 0:
            self.logger.info(f"{phase}: processed {count} rows of {type_label}")

    def _rows(self, context: ImportContext, phase: str, type_label: str, path: Path):
        """Rows of one data file; an unreadable file is one failure, not a fatal error."""
        try:
            for count, (line_number, row) in enumerate(read_rows(path), start=1):
                yield line_number, row
                self._progress(phase, type_label, count)
        except OSError as e:
            self._record_failure(context, phase, type_label, None, e)

    # Phase 1
    async def _import_entities(self, data_root: Path, context: ImportContext) -> None:
        for type_label, path in self._type_files(data_root, Category.ENTITY.value):
            await self._require_type(type_label, Category.ENTITY)
            for _, row in self._rows(context, "entities", type_label, path):
                original_id = None
                try:
                    (original_id,) = split_row(row, expected=1)
                    context.check_new_record(original_id)
                    async with self.store.transaction():
                        new_id = await self.store.create_instance(type_label)
                    context.remap.put(original_id, new_id)
                    context.stats.entities += 1
                except ROW_ERRORS as e:
                    self._record_failure(context, "entities", type_label, original_id, e)

    # Phase 2
    async def _import_attributes(self, data_root: Path, context: ImportContext) -> None:
        for type_label, path in self._type_files(data_root, Category.ATTRIBUTE.value):
            node = await self._require_type(type_label, Category.ATTRIBUTE)
            if node.value_kind is None:
                raise UnsupportedValueKindError(f"Attribute type '{type_label}' has no value kind")
            parse_value = node.value_kind.parser

            for _, row in self._rows(context, "attributes", type_label, path):
                original_id = None
                try:
                    original_id, text = split_row(row, expected=2)
                    value = parse_value(text)
                    context.check_new_record(original_id)
                    async with self.store.transaction():
                        new_id = await self.store.create_attribute(type_label, value)
                    context.remap.put(original_id, new_id)
                    context.stats.attributes += 1
                except ROW_ERRORS as e:
                    self._record_failure(context, "attributes", type_label, original_id, e)

    # Phase 3
    async def _import_relations(self, data_root: Path, context: ImportContext) -> None:
        for type_label, path in self._type_files(data_root, Category.RELATION.value):
            await self._require_type(type_label, Category.RELATION)
            for _, row in self._rows(context, "relations", type_label, path):
                original_id = None
                try:
                    record = parse_relation_row(row, type_label)
                    original_id = record.original_id
                    context.check_new_record(original_id)
                except ROW_ERRORS as e:
                    self._record_failure(context, "relations", type_label, original_id, e)
                    continue

                if context.remap.missing(record.player_ids()):
                    context.pending_relations.append(PendingRelation.from_record(record))
                    context.set_relation_state(original_id, RelationState.DEFERRED)
                    context.stats.relations_deferred += 1
                    continue

                try:
                    async with self.store.transaction():
                        new_id = await self.store.create_instance(type_label)
                        for role, players in record.role_players.items():
                            for player in sorted(players):
                                await self.store.assign_role_player(
                                    new_id, role, context.remap.resolve(player)
                                )
                    context.remap.put(original_id, new_id)
                    context.set_relation_state(original_id, RelationState.RESOLVED)
                    context.stats.relations_resolved += 1
                except ROW_ERRORS as e:
                    context.set_relation_state(original_id, RelationState.FAILED)
                    self._record_failure(context, "relations", type_label, original_id, e)

    # Phase 4
    async def _import_ownerships(self, data_root: Path, context: ImportContext) -> None:
        for type_label, path in self._type_files(data_root, OWNERSHIP_DIR):
            await self._require_type(type_label, Category.ATTRIBUTE)
            for _, row in self._rows(context, "ownerships", type_label, path):
                ownership = None
                try:
                    ownership = parse_ownership_row(row)
                    if ownership.owner_id not in context.remap:
                        context.pending_ownerships.append(
                            PendingOwnership(
                                owner_id=ownership.owner_id,
                                attribute_id=ownership.attribute_id,
                                attribute_type=type_label,
                            )
                        )
                        context.stats.ownerships_deferred += 1
                        continue

                    await self._attach(context, ownership.owner_id, ownership.attribute_id, type_label)
                except ROW_ERRORS as e:
                    attribute_id = ownership.attribute_id if ownership else None
                    self._record_failure(context, "ownerships", type_label, attribute_id, e)

    async def _attach(self, context: ImportContext, owner_id: str, attribute_id: str, type_label: str) -> None:
        new_attribute_id = context.remap.resolve(attribute_id, f"{type_label} owned by {owner_id}")
        new_owner_id = context.remap.resolve(owner_id, f"owner of {type_label} {attribute_id}")
        async with self.store.transaction():
            await self.store.attach_attribute(new_owner_id, new_attribute_id)
        context.stats.ownerships_attached += 1

    # Phase 5
    def _fail_unresolvable(self, context: ImportContext) -> None:
        """
        Fail every deferred relation that can never be linked.

        A player must be remapped already or be another deferred relation that
        is still viable. Failing one relation can strand the relations that
        reference it, so this repeats until nothing changes.
        """
        viable = {pending.original_id: pending for pending in context.pending_relations}
        changed = True
        while changed:
            changed = False
            for original_id, pending in list(viable.items()):
                missing = [
                    player
                    for player in context.remap.missing(pending.player_ids())
                    if player not in viable
                ]
                if not missing:
                    continue
                del viable[original_id]
                changed = True
                context.set_relation_state(original_id, RelationState.FAILED)
                error = UnresolvedReferenceError(
                    missing[0], f"player of {pending.type_label} {original_id}"
                )
                self._record_failure(context, "placeholders", pending.type_label, original_id, error)

    async def _create_placeholders(self, data_root: Path, context: ImportContext) -> None:
        self._fail_unresolvable(context)

        created = 0
        for pending in context.pending_relations:
            if context.relation_state(pending.original_id) != RelationState.DEFERRED:
                continue
            try:
                async with self.store.transaction():
                    new_id = await self.store.create_instance(pending.type_label)
                pending.save_placeholder(new_id)
                context.remap.put(pending.original_id, new_id)
                context.set_relation_state(pending.original_id, RelationState.PLACEHOLDER_CREATED)
                created += 1
            except ROW_ERRORS as e:
                context.set_relation_state(pending.original_id, RelationState.FAILED)
                self._record_failure(context, "placeholders", pending.type_label, pending.original_id, e)

        self.logger.info(f"Created {created} placeholder relations")

    # Phase 6
    async def _link_placeholders(self, data_root: Path, context: ImportContext) -> None:
        for pending in context.pending_relations:
            if context.relation_state(pending.original_id) != RelationState.PLACEHOLDER_CREATED:
                continue
            try:
                # Resolve every player before assigning any, so a missing one links nothing
                resolved = {
                    role: [
                        context.remap.resolve(
                            player, f"{role} player of {pending.type_label} {pending.original_id}"
                        )
                        for player in sorted(players)
                    ]
                    for role, players in pending.role_players.items()
                }
                async with self.store.transaction():
                    for role, players in resolved.items():
                        for player in players:
                            await self.store.assign_role_player(pending.new_id, role, player)
                context.set_relation_state(pending.original_id, RelationState.LINKED)
                context.stats.relations_linked += 1
            except ROW_ERRORS as e:
                context.set_relation_state(pending.original_id, RelationState.FAILED)
                self._record_failure(context, "linking", pending.type_label, pending.original_id, e)

    # Phase 7
    async def _attach_pending_ownerships(self, data_root: Path, context: ImportContext) -> None:
        for pending in context.pending_ownerships:
            try:
                await self._attach(context, pending.owner_id, pending.attribute_id, pending.attribute_type)
            except ROW_ERRORS as e:
                self._record_failure(
                    context, "pending_ownerships", pending.attribute_type, pending.attribute_id, e
                )

    def _log_summary(self, context: ImportContext) -> None:
        stats = context.stats
        self.logger.info(
            f"Imported {stats.entities} entities, {stats.attributes} attributes, "
            f"{stats.relations} relations ({stats.relations_deferred} deferred), "
            f"{stats.ownerships_attached} ownerships"
        )
        if not stats.failures:
            return

        by_phase: Dict[str, int] = {}
        for failure in stats.failures:
            by_phase[failure.phase] = by_phase.get(failure.phase, 0) + 1
        self.logger.warning(
            f"{len(stats.failures)} records failed to import: "
            + ", ".join(f"{phase}={count}" for phase, count in by_phase.items())
        )
