"""
Errors raised while exporting or importing a graph.
"""

from typing import Optional


class MigrationError(Exception):
    """Base class for migration failures."""

    pass


class MalformedRowError(MigrationError):
    """Raised when a data-file row does not follow the row grammar."""

    def __init__(self, message: str, row: Optional[str] = None):
        super().__init__(message if row is None else f"{message}: {row!r}")
        self.row = row


class SchemaImportError(MigrationError):
    """Raised when a schema row cannot be applied to the target store. Always fatal."""

    def __init__(self, message: str, file_name: Optional[str] = None, line_number: Optional[int] = None, row: Optional[str] = None):
        location = ""
        if file_name is not None:
            location = f" [{file_name}" + (f":{line_number}" if line_number is not None else "") + "]"
        super().__init__(f"{message}{location}" + (f": {row!r}" if row is not None else ""))
        self.file_name = file_name
        self.line_number = line_number
        self.row = row


class UnresolvedReferenceError(MigrationError):
    """Raised when an original id has no mapping when one is required."""

    def __init__(self, original_id: str, context: str = ""):
        detail = f" ({context})" if context else ""
        super().__init__(f"No imported instance for original id {original_id}{detail}")
        self.original_id = original_id
        self.context = context


class DuplicateIdentifierError(MigrationError):
    """Raised when an original id is mapped twice in one run."""

    def __init__(self, original_id: str, existing_id: str, new_id: Optional[str] = None):
        super().__init__(f"Original id {original_id} is already mapped to {existing_id}")
        self.original_id = original_id
        self.existing_id = existing_id
        self.new_id = new_id
