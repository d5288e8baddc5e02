# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database migration runner.

Applies the scripts of ``schema/`` in order, without the alembic CLI or an
env.py. The applied revision is tracked in the usual ``alembic_version``
table, so a database migrated here stays readable by alembic tooling.

Example:
    from src.infrastructure.database.migrations.runner import run_migrations

    applied = await run_migrations(settings.db.url)
"""

import importlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import ModuleType

from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext
from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)

# Applied in this order; append new revisions at the end
MIGRATIONS = [
    "001_initial_schema",
]

_MIGRATION_PACKAGE = "src.infrastructure.database.migrations.schema"

_VERSION_TABLE_DDL = """
    CREATE TABLE IF NOT EXISTS alembic_version (
        version_num VARCHAR(128) NOT NULL,
        CONSTRAINT alembic_version_pkc PRIMARY KEY (version_num)
    )
"""


class MigrationError(Exception):
    """Raised when a migration script cannot be loaded or applied."""

    pass


@asynccontextmanager
async def _tracked_engine(db_url: str) -> AsyncIterator[AsyncEngine]:
    """Open a throwaway engine whose database has a version table."""
    engine = create_async_engine(db_url, echo=False)
    try:
        async with engine.begin() as conn:
            await conn.execute(text(_VERSION_TABLE_DDL))
        yield engine
    finally:
        await engine.dispose()


async def _current_version(engine: AsyncEngine) -> str | None:
    async with engine.connect() as conn:
        result = await conn.execute(text("SELECT version_num FROM alembic_version"))
        return result.scalar_one_or_none()


def pending_revisions(current: str | None, target: str | None = None) -> list[str]:
    """List the revisions that lead from ``current`` to ``target``.

    An unknown current or target revision yields an empty list, so nothing
    is applied on top of a schema this runner does not recognize.
    """
    known = set(MIGRATIONS)
    if current is not None and current not in known:
        logger.warning("Current version %s not in known migrations list", current)
        return []
    if target is not None and target not in known:
        logger.warning("Target revision %s not found", target)
        return []

    start = MIGRATIONS.index(current) + 1 if current else 0
    end = MIGRATIONS.index(target) + 1 if target else len(MIGRATIONS)
    return MIGRATIONS[start:end]


def _load(revision: str) -> ModuleType:
    try:
        module = importlib.import_module(f"{_MIGRATION_PACKAGE}.{revision}")
    except ImportError as e:
        raise MigrationError(f"Cannot import migration {revision}: {e}") from e

    if not callable(getattr(module, "upgrade", None)):
        raise MigrationError(f"Migration {revision} has no upgrade() function")
    return module


def _upgrade(connection: Connection, module: ModuleType) -> None:
    # op.* resolves through the proxy bound by Operations.context
    context = MigrationContext.configure(connection)
    with Operations.context(context):
        module.upgrade()


async def run_migrations(db_url: str, target_revision: str | None = None) -> list[str]:
    """Apply the pending migrations, each in its own transaction.

    Args:
        db_url: Database URL (async driver).
        target_revision: Stop after this revision. None applies everything.

    Returns:
        The revisions applied by this call, in order.

    Raises:
        MigrationError: If a script is missing or has no upgrade().
    """
    async with _tracked_engine(db_url) as engine:
        current = await _current_version(engine)
        pending = pending_revisions(current, target_revision)
        logger.info("Database at %s, %d migrations pending", current or "empty", len(pending))

        for revision in pending:
            module = _load(revision)
            async with engine.begin() as conn:
                await conn.run_sync(_upgrade, module)
                await conn.execute(text("DELETE FROM alembic_version"))
                await conn.execute(
                    text("INSERT INTO alembic_version (version_num) VALUES (:revision)"),
                    {"revision": revision},
                )
            logger.info("Applied migration %s", revision)

        return pending


async def get_migration_status(db_url: str) -> dict:
    """Describe where the database stands relative to the known migrations."""
    async with _tracked_engine(db_url) as engine:
        current = await _current_version(engine)

    pending = pending_revisions(current)
    return {
        "current_version": current,
        "latest_version": MIGRATIONS[-1] if MIGRATIONS else None,
        "pending_count": len(pending),
        "pending_migrations": pending,
        "all_migrations": MIGRATIONS,
        "is_up_to_date": not pending,
    }


async def check_migrations_pending(db_url: str) -> bool:
    """Check whether at least one migration still has to be applied."""
    status = await get_migration_status(db_url)
    return status["pending_count"] > 0
