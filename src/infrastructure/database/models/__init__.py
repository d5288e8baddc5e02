# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""ORM models for the provisioning schema.

Importing this package registers every table on Base.metadata.
"""

from src.infrastructure.database.models.account import Account, AccountRole
from src.infrastructure.database.models.audit import AuditLog
from src.infrastructure.database.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, new_uuid
from src.infrastructure.database.models.establishment import Establishment, SchoolClass
from src.infrastructure.database.models.guardian import (
    FALLBACK_GUARDIAN_PHONE,
    GuardianProfile,
    StudentGuardianLink,
)
from src.infrastructure.database.models.identifier import IdentifierCounter
from src.infrastructure.database.models.invitation import InvitationToken
from src.infrastructure.database.models.student import ClassEnrollment, StudentProfile

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "new_uuid",
    # Organization
    "Establishment",
    "SchoolClass",
    # Accounts
    "Account",
    "AccountRole",
    "StudentProfile",
    "ClassEnrollment",
    "GuardianProfile",
    "StudentGuardianLink",
    "FALLBACK_GUARDIAN_PHONE",
    # Identifiers
    "IdentifierCounter",
    # Side effects
    "AuditLog",
    "InvitationToken",
]
