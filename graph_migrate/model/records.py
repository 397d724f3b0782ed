"""
Instance-level records exchanged between export and import.

RelationRecord and OwnershipRecord are produced by parsing export rows and are
consumed once by the importer. The Pending* records only live inside a single
import run.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Set


@dataclass
class RelationRecord:
    """An exported relation instance: its original id and role players."""

    original_id: str
    type_label: str
    role_players: Dict[str, Set[str]] = field(default_factory=dict)

    def player_ids(self) -> Iterator[str]:
        """Iterate every referenced original player id (roles flattened)."""
        for players in self.role_players.values():
            yield from players

    def player_count(self) -> int:
        return sum(len(players) for players in self.role_players.values())


@dataclass(frozen=True)
class OwnershipRecord:
    """An exported attribute ownership, flattened to (attribute, owner)."""

    attribute_id: str
    owner_id: str


class RelationState(Enum):
    """Lifecycle of a relation record during one import run."""

    UNSEEN = "unseen"
    RESOLVED = "resolved"
    DEFERRED = "deferred"
    PLACEHOLDER_CREATED = "placeholder_created"
    LINKED = "linked"
    FAILED = "failed"


@dataclass
class PendingRelation:
    """A relation deferred because some role player did not exist yet."""

    type_label: str
    original_id: str
    role_players: Dict[str, Set[str]]
    new_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: RelationRecord) -> "PendingRelation":
        return cls(
            type_label=record.type_label,
            original_id=record.original_id,
            role_players={role: set(players) for role, players in record.role_players.items()},
        )

    def player_ids(self) -> Iterator[str]:
        for players in self.role_players.values():
            yield from players

    def save_placeholder(self, new_id: str) -> None:
        self.new_id = new_id


@dataclass(frozen=True)
class PendingOwnership:
    """An ownership deferred because its owner was a pending relation."""

    owner_id: str
    attribute_id: str
    attribute_type: Optional[str] = None


@dataclass
class InstanceCounts:
    """Aggregate instance counts, in checksum-file order."""

    entity: int = 0
    relation: int = 0
    attribute: int = 0

    CATEGORIES = ("entity", "relation", "attribute")

    def __sub__(self, other: "InstanceCounts") -> "InstanceCounts":
        return InstanceCounts(
            entity=self.entity - other.entity,
            relation=self.relation - other.relation,
            attribute=self.attribute - other.attribute,
        )

    def as_list(self) -> List[int]:
        return [self.entity, self.relation, self.attribute]

    def to_lines(self) -> List[str]:
        return [str(count) for count in self.as_list()]

    @classmethod
    def from_lines(cls, lines: List[str]) -> "InstanceCounts":
        values = [line.strip() for line in lines if line.strip()]
        if len(values) != 3:
            raise ValueError(f"Expected 3 checksum lines, found {len(values)}")
        entity, relation, attribute = (int(value) for value in values)
        return cls(entity=entity, relation=relation, attribute=attribute)
