"""
Original-to-new identifier table of one import run.
"""

from typing import Dict, Iterable, Iterator, List, Optional

from graph_migrate.migration.exceptions import DuplicateIdentifierError, UnresolvedReferenceError


class IdentifierRemap:
    """
    Append-only mapping from exported ids to ids minted by the target store.

    One instance belongs to one import run: the importer creates it when the
    run starts and drops it when the run ends. Keys are write-once.
    """

    def __init__(self):
        self._mapping: Dict[str, str] = {}

    def put(self, original_id: str, new_id: str) -> None:
        """
        Record the new id of an original id.

        Raises:
            DuplicateIdentifierError: If original_id is already mapped
        """
        existing = self._mapping.get(original_id)
        if existing is not None:
            raise DuplicateIdentifierError(original_id, existing, new_id)
        self._mapping[original_id] = new_id

    def check_unmapped(self, original_id: str) -> None:
        """Raise DuplicateIdentifierError if original_id already has a mapping."""
        existing = self._mapping.get(original_id)
        if existing is not None:
            raise DuplicateIdentifierError(original_id, existing)

    def get(self, original_id: str) -> Optional[str]:
        return self._mapping.get(original_id)

    def resolve(self, original_id: str, context: str = "") -> str:
        """
        New id of original_id.

        Raises:
            UnresolvedReferenceError: If original_id was never mapped
        """
        new_id = self._mapping.get(original_id)
        if new_id is None:
            raise UnresolvedReferenceError(original_id, context)
        return new_id

    def missing(self, original_ids: Iterable[str]) -> List[str]:
        """The ids among original_ids that have no mapping yet, sorted."""
        return sorted({original_id for original_id in original_ids if original_id not in self._mapping})

    def __contains__(self, original_id: str) -> bool:
        return original_id in self._mapping

    def __len__(self) -> int:
        return len(self._mapping)

    def __iter__(self) -> Iterator[str]:
        return iter(self._mapping)
