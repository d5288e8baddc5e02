# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student provisioning schemas.

This module defines the request, result and pending side-effect models
exchanged by the account provisioner, the guardian linker and the deferred
dispatcher.

Guardian descriptor fields left as None mean "not provided": on an existing
profile or link they keep the stored value instead of overwriting it.
"""

from datetime import date
from typing import Any

from pydantic import BaseModel, Field


class ActorContext(BaseModel):
    """Who triggered the operation, recorded on audit events."""

    user_id: str | None = None
    role: str | None = None
    name: str | None = None


class GuardianDescriptor(BaseModel):
    """Guardian to create or reuse and link to a student."""

    first_name: str | None = None
    last_name: str | None = None
    full_name: str | None = Field(
        default=None,
        description="Display name. Defaults to 'first last'.",
    )
    email: str | None = Field(
        default=None,
        description="Login email of an existing guardian, or of the guardian to create.",
    )
    phone: str | None = None
    address: str | None = None
    relation_type: str | None = None
    is_primary: bool | None = None
    can_view_grades: bool | None = None
    can_view_attendance: bool | None = None
    receive_notifications: bool | None = None
    contact_email: str | None = Field(
        default=None,
        description="Address invitations are sent to instead of the login email.",
    )

    @property
    def has_name(self) -> bool:
        """Check whether the descriptor carries at least one name part."""
        return bool((self.first_name or "").strip() or (self.last_name or "").strip())

    @property
    def display_name(self) -> str:
        """Full name used for the guardian account."""
        if self.full_name and self.full_name.strip():
            return self.full_name.strip()
        parts = [(self.first_name or "").strip(), (self.last_name or "").strip()]
        return " ".join(part for part in parts if part)


class CreateStudentRequest(BaseModel):
    """Input of a single student creation."""

    establishment_id: str
    full_name: str = Field(min_length=1)
    class_id: str | None = None
    date_of_birth: date | None = None
    student_number: str | None = Field(
        default=None,
        description="Explicit student number. Allocated when omitted.",
    )
    contact_email: str | None = None
    login_email: str | None = Field(
        default=None,
        description="Explicit login email, used verbatim. Derived from the name when omitted.",
    )
    reserved_login_emails: list[str] = Field(
        default_factory=list,
        description="Logins a derived login email must avoid even though no account holds them yet.",
    )
    guardians: list[GuardianDescriptor] = Field(default_factory=list)
    existing_guardian_id: str | None = None
    auto_derive_guardian_from_contact: bool = True
    send_invitations: bool = True
    dry_run: bool = False
    strict: bool = True
    actor: ActorContext | None = None


class AccountRecord(BaseModel):
    """Snapshot of an account row."""

    id: str
    email: str
    full_name: str
    role: str
    establishment_id: str | None
    is_active: bool
    must_change_password: bool


class StudentRecord(BaseModel):
    """Snapshot of a student profile row."""

    account_id: str
    establishment_id: str
    student_number: str
    contact_email: str | None
    date_of_birth: date | None
    class_id: str | None


class GuardianSummary(BaseModel):
    """Guardian resolved for a student."""

    account_id: str
    full_name: str
    email: str
    is_new_account: bool
    contact_email_override: str | None = None


class CreateStudentResult(BaseModel):
    """Outcome of a single student creation.

    ``created`` is False for dry runs. Warnings never imply failure: a
    failed creation raises instead of returning a result.
    """

    created: bool
    warnings: list[str] = Field(default_factory=list)
    student: StudentRecord
    account: AccountRecord
    contact_email: str | None = None
    student_invite_url: str | None = None
    guardian_invite_urls: list[str] = Field(default_factory=list)
    guardian_login_emails: list[str] = Field(default_factory=list)
    guardians: list[GuardianSummary] = Field(default_factory=list)
    linked_existing_guardian: GuardianSummary | None = None


class PendingInvitation(BaseModel):
    """Invitation to send once the creating unit has committed."""

    account_id: str
    role: str
    login_email: str
    recipient_address: str
    establishment_id: str
    establishment_display_name: str
    locale: str = "fr"
    actor: ActorContext | None = None


class PendingAuditEvent(BaseModel):
    """Audit entry to record once the creating unit has committed."""

    establishment_id: str
    actor: ActorContext | None = None
    action: str
    entity_type: str
    entity_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProvisioningOutcome(BaseModel):
    """Provisioner result plus the side effects it deferred."""

    result: CreateStudentResult
    invitations: list[PendingInvitation] = Field(default_factory=list)
    audit_events: list[PendingAuditEvent] = Field(default_factory=list)
