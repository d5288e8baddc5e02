# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Invitation channels.

This package provides channel implementations for delivering account
invitations:

- EmailInvitationChannel: Sends invitations via SMTP
- LoggingInvitationChannel: Writes invitations to the application log

Usage:
    from src.infrastructure.notifications.channels import (
        EmailInvitationChannel,
        InvitationPayload,
    )

    channel = EmailInvitationChannel(settings.smtp)
    result = await channel.send(
        InvitationPayload(
            recipient_address="alice.parent@example.com",
            login_identifier="dupont.alice@lycee-a.school.local",
            role="student",
            establishment_display_name="Lycée A",
            activation_link="https://school.example/first-login?token=...",
        )
    )
"""

from src.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    InvitationPayload,
)
from src.infrastructure.notifications.channels.email import EmailInvitationChannel
from src.infrastructure.notifications.channels.log import LoggingInvitationChannel

__all__ = [
    # Base types
    "BaseChannel",
    "ChannelResult",
    "ChannelType",
    "DeliveryStatus",
    "InvitationPayload",
    # Channels
    "EmailInvitationChannel",
    "LoggingInvitationChannel",
]
