# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bulk student import domain.

Parses a tabular payload of students, validates every row and creates the
valid ones one by one through the student account service.
"""

from src.domains.student_import.parser import ImportRow, parse_rows
from src.domains.student_import.service import (
    EmptyImportError,
    ImportPayloadTooLargeError,
    ImportTooManyRowsError,
    InvalidDefaultClassError,
    StudentImportError,
    StudentImportService,
)

__all__ = [
    "ImportRow",
    "parse_rows",
    "StudentImportService",
    "StudentImportError",
    "ImportPayloadTooLargeError",
    "ImportTooManyRowsError",
    "EmptyImportError",
    "InvalidDefaultClassError",
]
