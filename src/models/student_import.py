# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bulk student import schemas."""

from enum import Enum

from pydantic import BaseModel, Field

from src.models.provisioning import ActorContext


class ImportRowStatus(str, Enum):
    """Outcome of one import row."""

    OK = "OK"
    WARNING = "WARNING"
    ERROR = "ERROR"


class StudentImportRequest(BaseModel):
    """A CSV payload to import into one establishment."""

    csv_data: str
    establishment_id: str
    default_class_id: str | None = None
    send_invitations: bool = True
    dry_run: bool = False
    actor: ActorContext | None = None


class ImportRowResult(BaseModel):
    """Per-row echo of the normalized input and its outcome."""

    row_number: int = Field(description="Line number in the payload; the header is row 1.")
    full_name: str | None = None
    contact_email: str | None = None
    login_email: str | None = None
    student_number: str | None = None
    date_of_birth: str | None = None
    class_code: str | None = None
    class_label: str | None = None
    class_id: str | None = None
    existing_guardian_email: str | None = None
    existing_guardian_id: str | None = None
    guardian_first_name: str | None = None
    guardian_last_name: str | None = None
    status: ImportRowStatus
    created: bool = False
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None
    account_id: str | None = None
    generated_login_email: str | None = None


class ImportSummary(BaseModel):
    """Aggregate counts over all rows."""

    total: int = 0
    ok: int = 0
    warnings: int = 0
    errors: int = 0
    created_count: int = 0


class StudentImportResult(BaseModel):
    """Full import report."""

    dry_run: bool
    summary: ImportSummary
    rows: list[ImportRowResult] = Field(default_factory=list)
