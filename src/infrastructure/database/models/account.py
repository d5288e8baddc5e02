# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Account model: the login identity of every person."""

from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, String, Uuid, false, true
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class AccountRole(str, Enum):
    """Role tag carried by an account."""

    STUDENT = "student"
    GUARDIAN = "guardian"
    TEACHER = "teacher"
    STAFF = "staff"
    ADMIN = "admin"


class Account(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Login identity.

    Emails are stored lowercase; uniqueness is enforced by the storage so a
    racing insert surfaces as an IntegrityError.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        Index("ix_accounts_establishment_role", "establishment_id", "role"),
    )

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    establishment_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("establishments.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    must_change_password: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    email_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
