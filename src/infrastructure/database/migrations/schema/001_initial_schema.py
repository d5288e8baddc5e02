# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial provisioning schema.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2025-01-15

This migration creates all provisioning tables based on the
SQLAlchemy models in src/infrastructure/database/models/.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_UUID = sa.Uuid(as_uuid=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    ]


def upgrade() -> None:
    """Create provisioning tables."""
    # ==========================================================================
    # 1. establishments / classes
    # ==========================================================================
    op.create_table(
        "establishments",
        sa.Column("id", _UUID, primary_key=True),
        sa.Column("code", sa.String(50), unique=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("login_email_domain", sa.String(255), nullable=True),
        sa.Column("default_locale", sa.String(10), nullable=False, server_default="fr"),
        sa.Column("academic_year_start_month", sa.SmallInteger, nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "academic_year_start_month IS NULL "
            "OR academic_year_start_month BETWEEN 1 AND 12",
            name="valid_academic_year_start_month",
        ),
    )

    op.create_table(
        "classes",
        sa.Column("id", _UUID, primary_key=True),
        sa.Column(
            "establishment_id",
            _UUID,
            sa.ForeignKey("establishments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("label", sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_classes_establishment_code", "classes", ["establishment_id", "code"])

    # ==========================================================================
    # 2. accounts
    # ==========================================================================
    op.create_table(
        "accounts",
        sa.Column("id", _UUID, primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column(
            "establishment_id",
            _UUID,
            sa.ForeignKey("establishments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("must_change_password", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("email_verified", sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint(
            "role IN ('student', 'guardian', 'teacher', 'staff', 'admin')",
            name="valid_account_role",
        ),
    )
    op.create_index("ix_accounts_establishment_role", "accounts", ["establishment_id", "role"])

    # ==========================================================================
    # 3. student_profiles / class_enrollments
    # ==========================================================================
    op.create_table(
        "student_profiles",
        sa.Column(
            "account_id",
            _UUID,
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "establishment_id",
            _UUID,
            sa.ForeignKey("establishments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("student_number", sa.String(50), nullable=False),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("date_of_birth", sa.Date, nullable=True),
        sa.Column(
            "class_id",
            _UUID,
            sa.ForeignKey("classes.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
        sa.UniqueConstraint(
            "establishment_id",
            "student_number",
            name="uq_student_profiles_establishment_number",
        ),
    )

    op.create_table(
        "class_enrollments",
        sa.Column("id", _UUID, primary_key=True),
        sa.Column(
            "class_id",
            _UUID,
            sa.ForeignKey("classes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "student_id",
            _UUID,
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column(
            "enrolled_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("class_id", "student_id", name="uq_class_enrollments_class_student"),
    )

    # ==========================================================================
    # 4. guardian_profiles / student_guardian_links
    # ==========================================================================
    op.create_table(
        "guardian_profiles",
        sa.Column(
            "account_id",
            _UUID,
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("phone", sa.String(50), nullable=False),
        sa.Column("address", sa.Text, nullable=True),
        sa.Column("relation_type", sa.String(50), nullable=True),
        sa.Column("is_primary_contact", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("can_view_grades", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("can_view_attendance", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("contact_email", sa.String(255), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "student_guardian_links",
        sa.Column("id", _UUID, primary_key=True),
        sa.Column(
            "student_id",
            _UUID,
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "guardian_id",
            _UUID,
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("relation_type", sa.String(50), nullable=True),
        sa.Column("is_primary", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("receive_notifications", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("student_id", "guardian_id", name="uq_student_guardian_links_pair"),
    )
    op.create_index(
        "ix_student_guardian_links_guardian", "student_guardian_links", ["guardian_id"]
    )

    # ==========================================================================
    # 5. identifier_counters
    # ==========================================================================
    op.create_table(
        "identifier_counters",
        sa.Column(
            "establishment_id",
            _UUID,
            sa.ForeignKey("establishments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("period", sa.Integer, nullable=False),
        sa.Column("current_value", sa.Integer, nullable=False),
        sa.PrimaryKeyConstraint("establishment_id", "role", "period"),
        sa.CheckConstraint("current_value > 0", name="positive_current_value"),
    )

    # ==========================================================================
    # 6. invitation_tokens / audit_logs
    # ==========================================================================
    op.create_table(
        "invitation_tokens",
        sa.Column("id", _UUID, primary_key=True),
        sa.Column(
            "account_id",
            _UUID,
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(64), unique=True, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_invitation_tokens_account_id", "invitation_tokens", ["account_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", _UUID, primary_key=True),
        sa.Column("establishment_id", _UUID, nullable=True),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("actor_role", sa.String(20), nullable=True),
        sa.Column("actor_name", sa.String(255), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("metadata", sa.JSON, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])


def downgrade() -> None:
    """Drop provisioning tables."""
    op.drop_table("audit_logs")
    op.drop_table("invitation_tokens")
    op.drop_table("identifier_counters")
    op.drop_table("student_guardian_links")
    op.drop_table("guardian_profiles")
    op.drop_table("class_enrollments")
    op.drop_table("student_profiles")
    op.drop_table("accounts")
    op.drop_table("classes")
    op.drop_table("establishments")
