# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Logging invitation channel.

Used when SMTP is not configured: the invitation is written to the
application log so that an operator can forward the activation link.
"""

from src.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    InvitationPayload,
)


class LoggingInvitationChannel(BaseChannel):
    """Invitation channel that only logs the invitation."""

    @property
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        return ChannelType.LOG

    async def send(self, payload: InvitationPayload) -> ChannelResult:
        """Log the invitation instead of delivering it."""
        self.logger.info(
            "Invitation for %s (%s) to %s: %s",
            payload.login_identifier,
            payload.role,
            payload.recipient_address,
            payload.activation_link,
        )
        return self.create_success_result(metadata={"recipient": payload.recipient_address})
