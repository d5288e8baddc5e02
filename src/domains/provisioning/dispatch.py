# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Deferred side-effect dispatch.

Runs the invitations and audit events a provisioning unit returned, after
that unit has committed. Dispatch is sequential and best-effort: every
failure is logged and turned into a warning on the result, nothing is
retried, and nothing unwinds the committed creation.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domains.audit.service import AuditActions, AuditRecorder
from src.domains.auth.invitation import InvitationTokenService
from src.infrastructure.database.models.account import AccountRole
from src.infrastructure.notifications.channels.base import BaseChannel, InvitationPayload
from src.models.provisioning import (
    CreateStudentResult,
    PendingAuditEvent,
    PendingInvitation,
    ProvisioningOutcome,
)

logger = logging.getLogger(__name__)


class DeferredDispatcher:
    """Executes pending invitations, then pending audit events.

    Attributes:
        _sessionmaker: Factory for the short sessions issuing tokens.
        _tokens: Activation token service.
        _channel: Invitation delivery channel.
        _audit: Audit recorder.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        tokens: InvitationTokenService,
        channel: BaseChannel,
        audit: AuditRecorder,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            sessionmaker: Session factory bound to the shared engine.
            tokens: Activation token service.
            channel: Channel invitations are sent through.
            audit: Audit recorder.
        """
        self._sessionmaker = sessionmaker
        self._tokens = tokens
        self._channel = channel
        self._audit = audit

    async def dispatch(self, outcome: ProvisioningOutcome) -> CreateStudentResult:
        """Run every pending side effect of a committed outcome.

        Args:
            outcome: Outcome returned by the provisioner. Must describe a
                durable (committed) creation.

        Returns:
            A copy of the result carrying the invitation links, the guardian
            login emails that were invited, and one warning per failure.
        """
        result = outcome.result
        warnings = list(result.warnings)
        student_invite_url = result.student_invite_url
        guardian_invite_urls = list(result.guardian_invite_urls)
        guardian_login_emails = list(result.guardian_login_emails)
        audit_events = list(outcome.audit_events)

        for invitation in outcome.invitations:
            try:
                link, sent_event = await self._send_invitation(invitation, warnings)
            except Exception:
                logger.exception("Invitation for %s failed", invitation.login_email)
                warnings.append(f"Invitation for {invitation.login_email} could not be sent")
                continue

            if invitation.role == AccountRole.STUDENT.value:
                student_invite_url = link
            else:
                guardian_invite_urls.append(link)
                guardian_login_emails.append(invitation.login_email)
            if sent_event is not None:
                audit_events.append(sent_event)

        for event in audit_events:
            try:
                await self._audit.record(event)
            except Exception:
                logger.exception("Audit event %s for %s failed", event.action, event.entity_id)
                warnings.append(f"Audit event {event.action} could not be recorded")

        return result.model_copy(
            update={
                "warnings": warnings,
                "student_invite_url": student_invite_url,
                "guardian_invite_urls": guardian_invite_urls,
                "guardian_login_emails": guardian_login_emails,
            }
        )

    async def _send_invitation(
        self,
        invitation: PendingInvitation,
        warnings: list[str],
    ) -> tuple[str, PendingAuditEvent | None]:
        """Issue the activation link and hand the invitation to the channel.

        Returns:
            Tuple of (activation link, INVITE_SENT event or None when the
            channel did not send).
        """
        async with self._sessionmaker() as session:
            link = await self._tokens.issue(session, invitation.account_id)
            await session.commit()

        channel_result = await self._channel.send(
            InvitationPayload(
                recipient_address=invitation.recipient_address,
                login_identifier=invitation.login_email,
                role=invitation.role,
                establishment_display_name=invitation.establishment_display_name,
                activation_link=link,
                locale=invitation.locale,
            )
        )

        if not channel_result.is_sent:
            logger.warning(
                "Invitation for %s not delivered (%s): %s",
                invitation.login_email,
                channel_result.status.value,
                channel_result.error_message,
            )
            warnings.append(
                f"Invitation for {invitation.login_email} was not delivered: "
                f"{channel_result.error_message or channel_result.status.value}"
            )
            return link, None

        return link, PendingAuditEvent(
            establishment_id=invitation.establishment_id,
            actor=invitation.actor,
            action=AuditActions.INVITE_SENT,
            entity_type="user",
            entity_id=invitation.account_id,
            metadata={
                "role_target": invitation.role,
                "login_email": invitation.login_email,
                "to_email": invitation.recipient_address,
            },
        )
