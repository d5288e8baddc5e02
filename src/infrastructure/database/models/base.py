# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Declarative base and shared mixins for ORM models.

Primary keys are string UUIDs generated client-side so that identifiers are
known before the first flush and remain plain strings in every DTO.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.utils.datetime import utc_now


def new_uuid() -> str:
    """Generate a new string UUID for primary keys."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Declarative base for all provisioning tables."""


class UUIDPrimaryKeyMixin:
    """Adds a string UUID primary key column named ``id``."""

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=new_uuid,
    )


class TimestampMixin:
    """Adds created_at and updated_at columns maintained by the ORM."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )
