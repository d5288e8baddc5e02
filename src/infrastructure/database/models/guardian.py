# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Guardian profile and student-guardian link models."""

from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint, Uuid, false, true
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

# phone is NOT NULL in storage
FALLBACK_GUARDIAN_PHONE = "+0000000000"


class GuardianProfile(TimestampMixin, Base):
    """Contact and permission details, 1:1 with a guardian account."""

    __tablename__ = "guardian_profiles"

    account_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    relation_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_primary_contact: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    can_view_grades: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    can_view_attendance: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)


class StudentGuardianLink(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Many-to-many join between student and guardian accounts."""

    __tablename__ = "student_guardian_links"
    __table_args__ = (
        UniqueConstraint(
            "student_id",
            "guardian_id",
            name="uq_student_guardian_links_pair",
        ),
    )

    student_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    guardian_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    relation_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_primary: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    receive_notifications: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
