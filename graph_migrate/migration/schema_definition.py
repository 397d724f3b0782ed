"""
Render an exported schema as a ``define`` block.

The text is for people reading an export; import never reads it back. All
sections are sorted so that two exports of the same schema render identically.
"""

from typing import Dict, List, Set

from graph_migrate.migration.schema_codec import SchemaSnapshot
from graph_migrate.model.schema_types import Category, TypeNode, ValueKind

INDENT = "    "

_VALUE_KEYWORDS = {
    ValueKind.INTEGER: "long",
    ValueKind.FLOAT: "double",
    ValueKind.STRING: "string",
    ValueKind.BOOLEAN: "boolean",
    ValueKind.DATETIME: "datetime",
}


def _index(edges) -> Dict[str, Set[str]]:
    index: Dict[str, Set[str]] = {}
    for source, target in edges:
        index.setdefault(source, set()).add(target)
    return index


def _statement(clauses: List[str]) -> str:
    return f",\n{INDENT}".join(clauses) + ";"


def _type_statement(node: TypeNode, snapshot: SchemaSnapshot, plays, has, abstract) -> str:
    clauses = [f"{node.label} sub {node.parent}"]
    if node.label in abstract:
        clauses.append("abstract")
    if node.category == Category.ATTRIBUTE:
        clauses.append(f"value {_VALUE_KEYWORDS[node.value_kind]}")
    if node.category == Category.RELATION:
        clauses.extend(f"relates {role}" for role in sorted(snapshot.relates.get(node.label, [])))
    clauses.extend(f"plays {role}" for role in sorted(plays.get(node.label, ())))
    clauses.extend(f"has {attribute}" for attribute in sorted(has.get(node.label, ())))
    return _statement(clauses)


def _indent_block(text: str, depth: int) -> str:
    prefix = INDENT * depth
    return "\n".join(prefix + line.strip() for line in text.strip().splitlines())


def render_schema(snapshot: SchemaSnapshot) -> str:
    """Render roles, attributes, entities, relations and rules, in that order."""
    plays = _index(snapshot.plays)
    has = _index(snapshot.has)
    abstract = set(snapshot.abstract)

    sections = []
    for category in (Category.ROLE, Category.ATTRIBUTE, Category.ENTITY, Category.RELATION):
        nodes = sorted(snapshot.hierarchy.get(category, []), key=lambda node: node.label)
        statements = [_type_statement(node, snapshot, plays, has, abstract) for node in nodes]
        if statements:
            sections.append("\n".join(statements))

    rules = []
    for rule in sorted(snapshot.rules, key=lambda rule: rule.name):
        rules.append(
            f"{rule.name} sub rule,\n"
            f"{INDENT}when {{\n{_indent_block(rule.when, 2)}\n{INDENT}}}, "
            f"then {{\n{_indent_block(rule.then, 2)}\n{INDENT}}};"
        )
    if rules:
        sections.append("\n\n".join(rules))

    return "define\n\n" + "\n\n".join(sections) + "\n"
