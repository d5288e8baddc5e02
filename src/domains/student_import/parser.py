# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tabular student payload parsing.

Turns the raw CSV text of a bulk import into ImportRow objects. The parser
only reads: it normalizes headers, picks the delimiter and drops fully
blank lines. Size limits and row validation belong to the import service.
"""

import csv
import io
import re
from dataclasses import dataclass, field
from datetime import date

from src.models.student_import import ImportRowStatus

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

COLUMN_ALIASES = {
    "parent_first_name": "guardian_first_name",
    "parent_last_name": "guardian_last_name",
    "existing_parent_email": "existing_guardian_email",
}

KNOWN_COLUMNS = (
    "full_name",
    "contact_email",
    "login_email",
    "student_number",
    "date_of_birth",
    "class_code",
    "class_label",
    "existing_guardian_email",
    "guardian_first_name",
    "guardian_last_name",
)


@dataclass
class ImportRow:
    """One data line of an import payload, plus its validation state."""

    row_number: int
    full_name: str | None = None
    contact_email: str | None = None
    login_email: str | None = None
    student_number: str | None = None
    date_of_birth: str | None = None
    class_code: str | None = None
    class_label: str | None = None
    existing_guardian_email: str | None = None
    guardian_first_name: str | None = None
    guardian_last_name: str | None = None

    # Filled in during validation
    parsed_date_of_birth: date | None = None
    class_id: str | None = None
    existing_guardian_id: str | None = None
    status: ImportRowStatus = ImportRowStatus.OK
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


def normalize_header(name: str) -> str:
    """Normalize a header cell: no BOM, lowercase, underscores for spaces."""
    cleaned = re.sub(r"\s+", "_", name.replace("\ufeff", "").strip().lower())
    return COLUMN_ALIASES.get(cleaned, cleaned)


def detect_delimiter(payload: str) -> str:
    """Use ';' when the header line has more semicolons than commas."""
    first_line = payload.split("\n", 1)[0]
    return ";" if first_line.count(";") > first_line.count(",") else ","


def is_valid_email(value: str | None) -> bool:
    return bool(value) and EMAIL_PATTERN.match(value) is not None


def parse_date(value: str) -> date | None:
    """Parse a YYYY-MM-DD date, returning None for any other shape."""
    if not DATE_PATTERN.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def _cell(record: dict[str, str], column: str) -> str | None:
    value = (record.get(column) or "").strip()
    return value or None


def parse_rows(payload: str) -> list[ImportRow]:
    """Parse a CSV payload into rows.

    The first line is the header. Row numbers follow the payload lines, so
    the first data line is row 2 and skipped blank lines still count.

    Args:
        payload: Raw CSV text, comma or semicolon separated.

    Returns:
        One ImportRow per non-blank data line, in payload order.
    """
    text = payload.lstrip("\ufeff")
    if not text.strip():
        return []

    reader = csv.reader(io.StringIO(text), delimiter=detect_delimiter(text))
    try:
        header = next(reader)
    except StopIteration:
        return []
    columns = [normalize_header(name) for name in header]

    rows: list[ImportRow] = []
    for index, values in enumerate(reader, start=2):
        if not any(value.strip() for value in values):
            continue
        record = dict(zip(columns, values))
        rows.append(
            ImportRow(
                row_number=index,
                **{column: _cell(record, column) for column in KNOWN_COLUMNS},
            )
        )
    return rows
