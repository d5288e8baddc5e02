# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identifier counter model.

One row per (establishment, role, period). The row is only ever written by
a single INSERT ... ON CONFLICT DO UPDATE statement.
"""

from sqlalchemy import ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base


class IdentifierCounter(Base):
    """Last issued sequence number for an (establishment, role, period)."""

    __tablename__ = "identifier_counters"

    establishment_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("establishments.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role: Mapped[str] = mapped_column(String(20), primary_key=True)
    period: Mapped[int] = mapped_column(Integer, primary_key=True)
    current_value: Mapped[int] = mapped_column(Integer, nullable=False)
