# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student account creation: provision, then dispatch.

StudentAccountService is the entry point for creating one student outside
any caller transaction. It lets the provisioner commit its own unit of
work and only then runs the deferred invitations and audit events, so no
email is ever sent for a student that was not durably saved.

Callers that provision inside their own transaction use AccountProvisioner
directly and call DeferredDispatcher.dispatch() after their commit.
"""

import logging

from src.domains.provisioning.dispatch import DeferredDispatcher
from src.domains.provisioning.service import AccountProvisioner
from src.models.provisioning import CreateStudentRequest, CreateStudentResult

logger = logging.getLogger(__name__)


class StudentAccountService:
    """Creates students and runs their post-commit side effects."""

    def __init__(
        self,
        provisioner: AccountProvisioner,
        dispatcher: DeferredDispatcher,
    ) -> None:
        """Initialize the service.

        Args:
            provisioner: Account provisioner.
            dispatcher: Deferred side-effect dispatcher.
        """
        self._provisioner = provisioner
        self._dispatcher = dispatcher

    async def create_student(self, request: CreateStudentRequest) -> CreateStudentResult:
        """Create one student in its own transaction.

        Args:
            request: Student creation request.

        Returns:
            The creation result. For a committed creation it carries the
            invitation links and any side-effect warnings.

        Raises:
            ProvisioningError: On a fatal provisioning failure.
            GuardianLinkError: On a guardian conflict with ``strict`` set.
        """
        outcome = await self._provisioner.provision(request)

        if not outcome.result.created:
            return outcome.result

        logger.debug(
            "Dispatching %d invitations and %d audit events for %s",
            len(outcome.invitations),
            len(outcome.audit_events),
            outcome.result.account.email,
        )
        return await self._dispatcher.dispatch(outcome)
