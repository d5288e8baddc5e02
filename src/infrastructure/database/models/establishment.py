# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Establishment and class models.

An establishment is the tenant scope that partitions every other record.
"""

from sqlalchemy import ForeignKey, Index, SmallInteger, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Establishment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A school or organization.

    Attributes:
        code: Short unique code, also the source of the login domain slug.
        name: Legal or usual name.
        display_name: Name shown in invitations; falls back to name.
        login_email_domain: Explicit domain for generated login emails.
        default_locale: Locale used for invitation content.
        academic_year_start_month: Month (1-12) at which the academic
            year rolls over. None uses the configured default.
    """

    __tablename__ = "establishments"

    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    login_email_domain: Mapped[str | None] = mapped_column(String(255), nullable=True)
    default_locale: Mapped[str] = mapped_column(String(10), nullable=False, default="fr")
    academic_year_start_month: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)

    @property
    def invitation_name(self) -> str:
        """Name used when addressing invitation recipients."""
        return self.display_name or self.name


class SchoolClass(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A class (homeroom) inside an establishment."""

    __tablename__ = "classes"
    __table_args__ = (
        Index("ix_classes_establishment_code", "establishment_id", "code"),
    )

    establishment_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("establishments.id", ondelete="CASCADE"),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
