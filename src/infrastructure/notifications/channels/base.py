# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base classes for invitation channels.

This module defines the abstract base class and shared types
for all invitation channels. Each channel handles delivery
through a specific medium (SMTP, application log).

Channels report failures through their ChannelResult instead of raising,
and never retry: a failed invitation is reported to the caller as a
warning.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from src.utils.datetime import utc_now


class ChannelType(str, Enum):
    """Available invitation channel types."""

    EMAIL = "email"
    LOG = "log"


class DeliveryStatus(str, Enum):
    """Delivery status for a channel."""

    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class InvitationPayload:
    """Payload for sending an account invitation.

    Attributes:
        recipient_address: Address the invitation is delivered to.
        login_identifier: Login email of the invited account.
        role: Role of the invited account ("student", "guardian").
        establishment_display_name: Establishment shown to the recipient.
        activation_link: One-time link to set a password.
        locale: Content language ("fr" or "en").
    """

    recipient_address: str
    login_identifier: str
    role: str
    establishment_display_name: str
    activation_link: str
    locale: str = "fr"


@dataclass
class ChannelResult:
    """Result of a channel send operation.

    Attributes:
        channel: Which channel was used.
        status: Delivery status.
        message_id: External message ID (if available).
        error_message: Error message if failed or skipped.
        sent_at: When the send was attempted.
        metadata: Additional result metadata.
    """

    channel: ChannelType
    status: DeliveryStatus
    message_id: str | None = None
    error_message: str | None = None
    sent_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_sent(self) -> bool:
        """Check whether the invitation left through the channel."""
        return self.status == DeliveryStatus.SENT


class BaseChannel(ABC):
    """Abstract base class for invitation channels.

    Attributes:
        channel_type: The type of this channel.
    """

    def __init__(self) -> None:
        """Initialize the channel."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    @abstractmethod
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        ...

    @abstractmethod
    async def send(self, payload: InvitationPayload) -> ChannelResult:
        """Send an invitation through this channel.

        Args:
            payload: The invitation payload to send.

        Returns:
            ChannelResult with delivery status.
        """
        ...

    def create_success_result(
        self,
        message_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ChannelResult:
        """Create a successful channel result."""
        return ChannelResult(
            channel=self.channel_type,
            status=DeliveryStatus.SENT,
            message_id=message_id,
            sent_at=utc_now(),
            metadata=metadata or {},
        )

    def create_failure_result(
        self,
        error_message: str,
        metadata: dict[str, Any] | None = None,
    ) -> ChannelResult:
        """Create a failed channel result."""
        return ChannelResult(
            channel=self.channel_type,
            status=DeliveryStatus.FAILED,
            error_message=error_message,
            sent_at=utc_now(),
            metadata=metadata or {},
        )

    def create_skipped_result(self, reason: str) -> ChannelResult:
        """Create a skipped channel result."""
        return ChannelResult(
            channel=self.channel_type,
            status=DeliveryStatus.SKIPPED,
            error_message=reason,
            sent_at=utc_now(),
        )
