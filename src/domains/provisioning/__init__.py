# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student provisioning domain.

This package creates student accounts with their profile, class enrollment
and guardians as one consistent unit of work, and runs the resulting
invitations and audit events only after the unit has committed.
"""

from src.domains.provisioning.dispatch import DeferredDispatcher
from src.domains.provisioning.service import (
    AccountProvisioner,
    ClassNotFoundError,
    EmailAlreadyExistsError,
    PreexistingGuardianNotFoundError,
    PreexistingGuardianOtherEstablishmentError,
    ProvisioningError,
    StorageConstraintError,
    guardian_warning,
)
from src.domains.provisioning.student_accounts import StudentAccountService

__all__ = [
    "AccountProvisioner",
    "DeferredDispatcher",
    "StudentAccountService",
    "ProvisioningError",
    "EmailAlreadyExistsError",
    "PreexistingGuardianNotFoundError",
    "PreexistingGuardianOtherEstablishmentError",
    "ClassNotFoundError",
    "StorageConstraintError",
    "guardian_warning",
]
