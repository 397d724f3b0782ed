"""
Tests for the line-oriented row format.
"""

import pytest

from graph_migrate.migration.exceptions import MalformedRowError
from graph_migrate.migration.row_format import (
    escape_field,
    format_ownership_row,
    format_relation_row,
    format_rule,
    join_row,
    parse_ownership_row,
    parse_relation_row,
    read_rows,
    read_rules,
    split_row,
    write_rows,
)
from graph_migrate.model.records import OwnershipRecord
from graph_migrate.model.schema_types import RuleDefinition


class TestEscaping:
    """Test field escaping."""

    def test_plain_text_is_unchanged(self):
        assert escape_field("Alice Smith") == "Alice Smith"

    def test_delimiters_are_escaped(self):
        assert escape_field("a,b") == "a\\,b"
        assert escape_field("(x)") == "\\(x\\)"
        assert escape_field("back\\slash") == "back\\\\slash"

    def test_line_breaks_are_escaped(self):
        escaped = escape_field("line one\r\nline two")
        assert "\n" not in escaped
        assert "\r" not in escaped
        assert escaped == "line one\\r\\nline two"

    def test_split_restores_escaped_fields(self):
        fields = ["V1", "Smith, John (Jr.)\nc\\o"]
        assert split_row(join_row(fields)) == fields

    def test_empty_field_survives(self):
        assert split_row(join_row(["V1", ""])) == ["V1", ""]


class TestSplitRow:
    """Test plain row splitting."""

    def test_expected_field_count(self):
        assert split_row("V1,42", expected=2) == ["V1", "42"]

        with pytest.raises(MalformedRowError):
            split_row("V1,42,extra", expected=2)

    def test_minimum_field_count(self):
        with pytest.raises(MalformedRowError):
            split_row("lonely", minimum=2)

    def test_bare_parenthesis_is_malformed(self):
        with pytest.raises(MalformedRowError):
            split_row("V1,(oops")

    def test_dangling_escape_is_malformed(self):
        with pytest.raises(MalformedRowError):
            split_row("V1,abc\\")

    def test_unknown_escape_is_malformed(self):
        with pytest.raises(MalformedRowError):
            split_row("V1,\\t")


class TestRelationRows:
    """Test relation row formatting and parsing."""

    def test_format(self):
        row = format_relation_row("V7", {"subordinate": ["V1"], "supervisor": ["V2", "V3"]})
        assert row == "V7,(subordinate,V1),(supervisor,V2,V3)"

    def test_roles_without_players_are_left_out(self):
        row = format_relation_row("V7", {"subordinate": ["V1"], "supervisor": []})
        assert row == "V7,(subordinate,V1)"

    def test_parse(self):
        record = parse_relation_row("V7,(subordinate,V1),(supervisor,V2,V3)", "Reports_to")

        assert record.original_id == "V7"
        assert record.type_label == "Reports_to"
        assert record.role_players == {"subordinate": {"V1"}, "supervisor": {"V2", "V3"}}
        assert record.player_count() == 3

    def test_parse_accepts_trailing_comma(self):
        record = parse_relation_row("V7,(subordinate,V1),(supervisor,V2),", "Reports_to")
        assert set(record.role_players) == {"subordinate", "supervisor"}

    def test_parse_relation_without_players(self):
        record = parse_relation_row("V7", "Reports_to")
        assert record.role_players == {}

    def test_same_player_in_two_roles(self):
        record = parse_relation_row("V9,(subordinate,V3),(supervisor,V3)", "Reports_to")
        assert sorted(record.player_ids()) == ["V3", "V3"]

    def test_escaped_ids_round_trip(self):
        row = format_relation_row("id,1", {"role(a)": ["p\\1", "p,2"]})
        record = parse_relation_row(row, "T")

        assert record.original_id == "id,1"
        assert record.role_players == {"role(a)": {"p\\1", "p,2"}}

    @pytest.mark.parametrize(
        "row",
        [
            "V7,(subordinate,V1",
            "V7,(subordinate)",
            "V7,(,V1)",
            "V7,(subordinate,,V1)",
            "V7,subordinate,V1",
            "V7,(subordinate,(V1))",
            "V7,(subordinate,V1)x",
            ",(subordinate,V1)",
        ],
    )
    def test_malformed_rows(self, row):
        with pytest.raises(MalformedRowError):
            parse_relation_row(row, "Reports_to")


class TestOwnershipRows:
    """Test attribute ownership rows."""

    def test_format(self):
        assert format_ownership_row(OwnershipRecord("V7", "V1")) == "V7,V1"

    def test_parse_escaped_ids(self):
        row = format_ownership_row(OwnershipRecord("a,1", "owner(2)"))

        assert parse_ownership_row(row) == OwnershipRecord(attribute_id="a,1", owner_id="owner(2)")

    @pytest.mark.parametrize("row", ["V7", "V7,V1,V2", ",V1", "V7,", "V7,(V1)"])
    def test_malformed_rows(self, row):
        with pytest.raises(MalformedRowError):
            parse_ownership_row(row)


class TestFiles:
    """Test reading and writing data files."""

    def test_blank_lines_are_skipped(self, tmp_path):
        path = tmp_path / "Person"
        path.write_text("V1\n\nV2\r\n", encoding="utf-8")

        assert list(read_rows(path)) == [(1, "V1"), (3, "V2")]

    def test_write_rows_counts(self, tmp_path):
        path = tmp_path / "Person"
        assert write_rows(path, ["V1", "V2"]) == 2
        assert path.read_text(encoding="utf-8") == "V1\nV2\n"

    def test_rules_round_trip(self, tmp_path):
        rules = [
            RuleDefinition("transitive-reports", "{ (subordinate: $a, supervisor: $b) isa Reports_to; }", "{ $a has age 1; }"),
            RuleDefinition("multi\nline", "a,b", "(c)"),
        ]
        path = tmp_path / "rule"
        write_rows(path, [row for rule in rules for row in format_rule(rule)])

        assert [rule for _, rule in read_rules(path)] == rules
        assert [line for line, _ in read_rules(path)] == [1, 4]

    def test_incomplete_rule_is_malformed(self, tmp_path):
        path = tmp_path / "rule"
        write_rows(path, ["only-a-name", "when"])

        with pytest.raises(MalformedRowError):
            list(read_rules(path))
