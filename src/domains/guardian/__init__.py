# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Guardian domain package.

This package provides guardian account management for student provisioning:
- Resolving or creating guardian accounts from descriptors
- Merging guardian profiles and student-guardian links
- Recomputing guardian active status
"""

from src.domains.guardian.service import (
    CrossEstablishmentConflictError,
    EmailInUseByOtherRoleError,
    GuardianLinker,
    GuardianLinkError,
    normalize_email,
)

__all__ = [
    "GuardianLinker",
    "GuardianLinkError",
    "EmailInUseByOtherRoleError",
    "CrossEstablishmentConflictError",
    "normalize_email",
]
