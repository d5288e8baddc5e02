# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Audit recorder.

Writes audit events to the ``audit_logs`` table. Each event is written in
its own short-lived session, after the operation it describes has
committed; a failure here never affects that operation.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.infrastructure.database.models.audit import AuditLog
from src.models.provisioning import PendingAuditEvent

logger = logging.getLogger(__name__)


class AuditActions:
    """Audit action names emitted by provisioning."""

    STUDENT_CREATED = "STUDENT_CREATED"
    GUARDIAN_CREATED = "GUARDIAN_CREATED"
    GUARDIAN_LINKED_TO_STUDENT = "GUARDIAN_LINKED_TO_STUDENT"
    INVITE_SENT = "INVITE_SENT"


class AuditRecorder:
    """Persists audit events.

    Attributes:
        _sessionmaker: Factory for the recorder's own sessions.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        """Initialize the audit recorder.

        Args:
            sessionmaker: Session factory bound to the shared engine.
        """
        self._sessionmaker = sessionmaker

    async def record(self, event: PendingAuditEvent) -> str:
        """Write one audit event and commit it.

        Args:
            event: The event to record.

        Returns:
            ID of the created audit log row.
        """
        actor = event.actor
        log = AuditLog(
            establishment_id=event.establishment_id,
            actor_id=actor.user_id if actor else None,
            actor_role=actor.role if actor else None,
            actor_name=actor.name if actor else None,
            action=event.action,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            details=dict(event.metadata),
        )

        async with self._sessionmaker() as session:
            session.add(log)
            await session.commit()

        logger.debug("Audit %s recorded for %s %s", event.action, event.entity_type, event.entity_id)
        return log.id
