# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database migrations package.

Schema scripts live in ``schema/`` and are applied in order by the
programmatic runner in ``runner.py``. Scripts only use portable alembic
operations so they run against PostgreSQL and SQLite alike.
"""
