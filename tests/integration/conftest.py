# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest fixtures for provisioning integration tests.

Provides the wired services on top of the SQLite database fixtures and a
channel that records invitations instead of sending them.
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.bootstrap import ProvisioningServices, build_provisioning_services
from src.core.config.settings import Settings
from src.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    InvitationPayload,
)


class RecordingChannel(BaseChannel):
    """Channel keeping every payload it is asked to send."""

    def __init__(self) -> None:
        super().__init__()
        self.sent: list[InvitationPayload] = []

    @property
    def channel_type(self) -> ChannelType:
        return ChannelType.LOG

    async def send(self, payload: InvitationPayload) -> ChannelResult:
        self.sent.append(payload)
        return self.create_success_result()


@pytest.fixture
def recording_channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def services(
    test_settings: Settings,
    db_sessionmaker: async_sessionmaker[AsyncSession],
    recording_channel: RecordingChannel,
) -> ProvisioningServices:
    """Build every provisioning service on the test database."""
    return build_provisioning_services(test_settings, db_sessionmaker, channel=recording_channel)


@pytest.fixture
def count_rows(db_sessionmaker: async_sessionmaker[AsyncSession]):
    """Provide a helper counting rows of a model in a fresh session."""

    async def _count(model, *criteria) -> int:
        async with db_sessionmaker() as session:
            stmt = select(func.count()).select_from(model)
            if criteria:
                stmt = stmt.where(*criteria)
            result = await session.execute(stmt)
            return result.scalar_one()

    return _count
