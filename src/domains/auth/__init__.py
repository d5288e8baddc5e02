# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication helpers for provisioned accounts.

Exports:
    PasswordHasher: bcrypt hashing of one-time passwords.
    generate_temporary_password: Random one-time password generator.
    InvitationTokenService: Activation tokens embedded in invitation links.
"""

from src.domains.auth.invitation import (
    InvalidInvitationTokenError,
    InvitationTokenError,
    InvitationTokenService,
)
from src.domains.auth.password import PasswordHasher, generate_temporary_password

__all__ = [
    "PasswordHasher",
    "generate_temporary_password",
    "InvitationTokenService",
    "InvitationTokenError",
    "InvalidInvitationTokenError",
]
