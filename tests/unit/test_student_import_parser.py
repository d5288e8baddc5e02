# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the student import payload parser."""

from datetime import date

import pytest

from src.domains.student_import.parser import (
    detect_delimiter,
    is_valid_email,
    normalize_header,
    parse_date,
    parse_rows,
)


class TestNormalizeHeader:
    """Tests for normalize_header."""

    def test_lowercase_and_underscores(self) -> None:
        """Test case folding and whitespace replacement."""
        assert normalize_header(" Full Name ") == "full_name"

    def test_strips_bom(self) -> None:
        """Test that a byte order mark is removed."""
        assert normalize_header("\ufefffull_name") == "full_name"

    def test_parent_aliases(self) -> None:
        """Test that parent_* columns map to guardian_* columns."""
        assert normalize_header("Parent First Name") == "guardian_first_name"
        assert normalize_header("parent_last_name") == "guardian_last_name"
        assert normalize_header("existing_parent_email") == "existing_guardian_email"


class TestDetectDelimiter:
    """Tests for detect_delimiter."""

    def test_comma_by_default(self) -> None:
        assert detect_delimiter("full_name,contact_email\nA,b@c.d") == ","

    def test_semicolon_when_dominant(self) -> None:
        assert detect_delimiter("full_name;contact_email;class_code\n") == ";"


class TestValueHelpers:
    """Tests for email and date helpers."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("alice@example.com", True),
            ("a.b+c@sub.example.org", True),
            ("no-at-sign.example.com", False),
            ("missing@tld", False),
            ("spaces in@example.com", False),
            ("", False),
            (None, False),
        ],
    )
    def test_is_valid_email(self, value, expected) -> None:
        assert is_valid_email(value) is expected

    def test_parse_valid_date(self) -> None:
        assert parse_date("2012-04-30") == date(2012, 4, 30)

    @pytest.mark.parametrize("value", ["30/04/2012", "2012-4-30", "2012-02-30", "yesterday"])
    def test_parse_invalid_date(self, value: str) -> None:
        assert parse_date(value) is None


class TestParseRows:
    """Tests for parse_rows."""

    def test_parses_known_columns(self) -> None:
        """Test that recognized columns are mapped and trimmed."""
        payload = (
            "full_name,contact_email,class_code,date_of_birth\n"
            " Dupont Alice , alice.parent@example.com ,3A,2012-04-30\n"
        )

        rows = parse_rows(payload)

        assert len(rows) == 1
        row = rows[0]
        assert row.row_number == 2
        assert row.full_name == "Dupont Alice"
        assert row.contact_email == "alice.parent@example.com"
        assert row.class_code == "3A"
        assert row.date_of_birth == "2012-04-30"
        assert row.login_email is None

    def test_semicolon_payload_with_bom(self) -> None:
        """Test a spreadsheet export with BOM and semicolons."""
        payload = "\ufeffFull Name;Contact Email;Parent First Name;Parent Last Name\nMartin Paul;p@example.com;Anne;Martin\n"

        rows = parse_rows(payload)

        assert rows[0].full_name == "Martin Paul"
        assert rows[0].guardian_first_name == "Anne"
        assert rows[0].guardian_last_name == "Martin"

    def test_quoted_fields(self) -> None:
        """Test that quoted cells may contain delimiters and quotes."""
        payload = 'full_name,contact_email,class_label\n"Dupont, Alice","a@example.com","Classe ""verte"""\n'

        rows = parse_rows(payload)

        assert rows[0].full_name == "Dupont, Alice"
        assert rows[0].class_label == 'Classe "verte"'

    def test_blank_rows_skipped_but_counted(self) -> None:
        """Test that blank lines are dropped without renumbering."""
        payload = "full_name,contact_email\nA B,a@example.com\n,\n\nC D,c@example.com\n"

        rows = parse_rows(payload)

        assert [row.row_number for row in rows] == [2, 5]

    def test_empty_cells_become_none(self) -> None:
        """Test that blank optional cells are None."""
        payload = "full_name,contact_email,login_email\nA B,a@example.com,   \n"

        rows = parse_rows(payload)

        assert rows[0].login_email is None

    def test_unknown_columns_ignored(self) -> None:
        """Test that extra columns do not break parsing."""
        payload = "full_name,contact_email,favourite_colour\nA B,a@example.com,blue\n"

        rows = parse_rows(payload)

        assert rows[0].full_name == "A B"

    @pytest.mark.parametrize("payload", ["", "   \n  ", "full_name,contact_email\n"])
    def test_no_data_rows(self, payload: str) -> None:
        """Test payloads without any data row."""
        assert parse_rows(payload) == []
