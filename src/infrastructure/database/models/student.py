# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student profile and class enrollment models."""

from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from src.utils.datetime import utc_now


class StudentProfile(TimestampMixin, Base):
    """Academic profile, 1:1 with a student account.

    The student number embeds the academic period, so uniqueness per
    establishment covers uniqueness per (establishment, period).
    """

    __tablename__ = "student_profiles"
    __table_args__ = (
        UniqueConstraint(
            "establishment_id",
            "student_number",
            name="uq_student_profiles_establishment_number",
        ),
    )

    account_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    establishment_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("establishments.id", ondelete="CASCADE"),
        nullable=False,
    )
    student_number: Mapped[str] = mapped_column(String(50), nullable=False)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    class_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("classes.id", ondelete="SET NULL"),
        nullable=True,
    )


class ClassEnrollment(UUIDPrimaryKeyMixin, Base):
    """Membership of a student in a class."""

    __tablename__ = "class_enrollments"
    __table_args__ = (
        UniqueConstraint("class_id", "student_id", name="uq_class_enrollments_class_student"),
    )

    class_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
    )
    student_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
