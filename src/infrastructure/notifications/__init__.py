# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Invitation delivery for provisioned accounts.

Invitations are sent after the creating transaction has committed, one per
newly created account, through a single channel chosen at startup:
- EmailInvitationChannel when SMTP is configured
- LoggingInvitationChannel otherwise

Configuration (environment variables):
- SMTP_HOST: SMTP server hostname
- SMTP_PORT: SMTP server port (default: 587)
- SMTP_USERNAME: SMTP authentication username
- SMTP_PASSWORD: SMTP authentication password
- SMTP_FROM_EMAIL: Sender email address
- SMTP_FROM_NAME: Sender display name
"""

from src.infrastructure.notifications.channels import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    EmailInvitationChannel,
    InvitationPayload,
    LoggingInvitationChannel,
)

__all__ = [
    "BaseChannel",
    "ChannelResult",
    "ChannelType",
    "DeliveryStatus",
    "InvitationPayload",
    "EmailInvitationChannel",
    "LoggingInvitationChannel",
]
