# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure.

This package provides SQLAlchemy async database access:
- connection: shared engine/pool and request-scoped sessions
- unit_of_work: transaction vs. savepoint scoping
- models: ORM models for the provisioning schema
- migrations: ordered schema scripts and their programmatic runner

Example:
    from src.infrastructure.database import get_session, UnitOfWork

    async with get_session() as session:
        async with UnitOfWork(session) as uow:
            ...
            await uow.commit()
"""

from src.infrastructure.database.connection import (
    DatabaseError,
    build_engine,
    build_sessionmaker,
    check_database_connection,
    close_database,
    enable_sqlite_savepoints,
    get_engine,
    get_session,
    get_sessionmaker,
    init_database,
)
from src.infrastructure.database.unit_of_work import UnitOfWork, UnitOfWorkError

__all__ = [
    # Connection
    "DatabaseError",
    "build_engine",
    "build_sessionmaker",
    "check_database_connection",
    "close_database",
    "enable_sqlite_savepoints",
    "get_engine",
    "get_session",
    "get_sessionmaker",
    "init_database",
    # Unit of work
    "UnitOfWork",
    "UnitOfWorkError",
]
