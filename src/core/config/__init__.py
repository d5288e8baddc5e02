# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for the provisioning engine.

Example:
    >>> from src.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.provisioning.login_email_base_domain)
    'school.local'
"""

from src.core.config.settings import (
    DatabaseSettings,
    InvitationSettings,
    ProvisioningSettings,
    Settings,
    SMTPSettings,
    StudentImportSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "DatabaseSettings",
    "ProvisioningSettings",
    "StudentImportSettings",
    "InvitationSettings",
    "SMTPSettings",
]
