"""
Schema-level model for typed property-graph stores.

This module defines the four fixed type categories, the closed set of
attribute value kinds, and the type and rule records that the schema codec
serializes and rebuilds.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional


class UnsupportedValueKindError(Exception):
    """Raised when a value-kind token or value type cannot be interpreted."""

    pass


class Category(Enum):
    """Type categories. Each value doubles as the label of the category root."""

    ROLE = "role"
    ATTRIBUTE = "attribute"
    ENTITY = "entity"
    RELATION = "relation"

    @classmethod
    def root_labels(cls):
        return {category.value for category in cls}


def _parse_integer(text: str) -> int:
    return int(text)


def _parse_float(text: str) -> float:
    return float(text)


def _parse_string(text: str) -> str:
    return text


def _parse_boolean(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise ValueError(f"Invalid boolean literal: {text!r}")


def _parse_datetime(text: str) -> datetime:
    return datetime.fromisoformat(text)


def _format_boolean(value: bool) -> str:
    return "true" if value else "false"


def _format_float(value: float) -> str:
    return repr(float(value))


def _format_datetime(value: datetime) -> str:
    return value.isoformat()


class ValueKind(Enum):
    """
    Closed set of attribute value kinds.

    Every member carries its own parser and canonical formatter, so callers
    resolve the conversion once per attribute type and then apply it per value.
    """

    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    BOOLEAN = "boolean"
    DATETIME = "datetime"

    @classmethod
    def from_token(cls, token: str) -> "ValueKind":
        """
        Resolve a value-kind token as written in the schema files.

        Raises:
            UnsupportedValueKindError: If the token names no known value kind
        """
        try:
            return cls(token.strip().lower())
        except ValueError:
            raise UnsupportedValueKindError(f"Unhandled attribute value kind: {token!r}")

    @classmethod
    def for_value(cls, value: Any) -> "ValueKind":
        """Infer the value kind of a Python value."""
        # bool is a subclass of int, so it has to be checked first
        if isinstance(value, bool):
            return cls.BOOLEAN
        if isinstance(value, int):
            return cls.INTEGER
        if isinstance(value, float):
            return cls.FLOAT
        if isinstance(value, str):
            return cls.STRING
        if isinstance(value, datetime):
            return cls.DATETIME
        raise UnsupportedValueKindError(f"Unhandled value type: {type(value).__name__}")

    @property
    def parser(self) -> Callable[[str], Any]:
        return _PARSERS[self]

    @property
    def formatter(self) -> Callable[[Any], str]:
        return _FORMATTERS[self]

    def parse(self, text: str) -> Any:
        """Parse canonical text into a Python value of this kind."""
        return self.parser(text)

    def format(self, value: Any) -> str:
        """Format a Python value into its canonical text form."""
        return self.formatter(value)

    def accepts(self, value: Any) -> bool:
        """Check whether a Python value belongs to this kind."""
        try:
            return ValueKind.for_value(value) is self
        except UnsupportedValueKindError:
            return False


_PARSERS = {
    ValueKind.INTEGER: _parse_integer,
    ValueKind.FLOAT: _parse_float,
    ValueKind.STRING: _parse_string,
    ValueKind.BOOLEAN: _parse_boolean,
    ValueKind.DATETIME: _parse_datetime,
}

_FORMATTERS = {
    ValueKind.INTEGER: str,
    ValueKind.FLOAT: _format_float,
    ValueKind.STRING: str,
    ValueKind.BOOLEAN: _format_boolean,
    ValueKind.DATETIME: _format_datetime,
}


@dataclass
class TypeNode:
    """
    A single type in the hierarchy.

    The hierarchy is a forest rooted at the four category roots; ``parent`` is
    either a root label or the label of a previously defined type.
    """

    label: str
    category: Category
    parent: Optional[str]
    value_kind: Optional[ValueKind] = None
    abstract: bool = False
    implicit: bool = False

    @property
    def is_root(self) -> bool:
        return self.label == self.category.value

    def to_dict(self):
        return {
            "label": self.label,
            "category": self.category.value,
            "parent": self.parent,
            "value_kind": self.value_kind.value if self.value_kind else None,
            "abstract": self.abstract,
            "implicit": self.implicit,
        }


@dataclass(frozen=True)
class RuleDefinition:
    """A named inference rule: precondition and conclusion pattern text."""

    name: str
    when: str
    then: str
