# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Construction of the provisioning services.

Every service is built once from the settings and shares one session
factory, hence one connection pool.

Example:
    >>> settings = get_settings()
    >>> await init_database(settings)
    >>> services = build_provisioning_services(settings, get_sessionmaker())
    >>> result = await services.student_accounts.create_student(request)
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config.settings import Settings
from src.domains.audit.service import AuditRecorder
from src.domains.auth.invitation import InvitationTokenService
from src.domains.auth.password import PasswordHasher
from src.domains.guardian.service import GuardianLinker
from src.domains.identifier.service import IdentifierAllocator
from src.domains.provisioning.dispatch import DeferredDispatcher
from src.domains.provisioning.service import AccountProvisioner
from src.domains.provisioning.student_accounts import StudentAccountService
from src.domains.student_import.service import StudentImportService
from src.infrastructure.notifications.channels.base import BaseChannel
from src.infrastructure.notifications.channels.email import EmailInvitationChannel
from src.infrastructure.notifications.channels.log import LoggingInvitationChannel

logger = logging.getLogger(__name__)


@dataclass
class ProvisioningServices:
    """Wired provisioning services."""

    allocator: IdentifierAllocator
    linker: GuardianLinker
    provisioner: AccountProvisioner
    dispatcher: DeferredDispatcher
    student_accounts: StudentAccountService
    importer: StudentImportService


def build_invitation_channel(settings: Settings) -> BaseChannel:
    """Pick the email channel when SMTP is configured, the log channel otherwise."""
    if settings.smtp.is_configured:
        return EmailInvitationChannel(settings.smtp)

    logger.warning("SMTP is not configured, invitations will only be logged")
    return LoggingInvitationChannel()


def build_provisioning_services(
    settings: Settings,
    sessionmaker: async_sessionmaker[AsyncSession],
    channel: BaseChannel | None = None,
) -> ProvisioningServices:
    """Build the provisioning services.

    Args:
        settings: Application settings.
        sessionmaker: Session factory bound to the shared engine.
        channel: Invitation channel override. Defaults to the one
            selected from the SMTP settings.

    Returns:
        The wired services.
    """
    hasher = PasswordHasher(rounds=settings.provisioning.bcrypt_rounds)
    allocator = IdentifierAllocator(settings.provisioning)
    linker = GuardianLinker(allocator, hasher, settings.provisioning)
    provisioner = AccountProvisioner(
        sessionmaker,
        allocator,
        linker,
        hasher,
        settings.provisioning,
    )
    dispatcher = DeferredDispatcher(
        sessionmaker,
        InvitationTokenService(settings.invitation),
        channel or build_invitation_channel(settings),
        AuditRecorder(sessionmaker),
    )
    student_accounts = StudentAccountService(provisioner, dispatcher)
    importer = StudentImportService(sessionmaker, student_accounts, settings.student_import)

    return ProvisioningServices(
        allocator=allocator,
        linker=linker,
        provisioner=provisioner,
        dispatcher=dispatcher,
        student_accounts=student_accounts,
        importer=importer,
    )
