# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit of Work: one consistent write scope over an AsyncSession.

A UnitOfWork opens a real transaction when the session has none, and a
SAVEPOINT when the caller already owns an open transaction. Single and
bulk callers therefore share the same begin/commit/rollback bookkeeping:
a nested unit commits by releasing its savepoint and aborts by rolling
back to it, leaving the enclosing transaction usable.

Example:
    >>> async with UnitOfWork(session) as uow:
    ...     session.add(account)
    ...     async with uow.savepoint() as guardians:
    ...         ...
    ...         await guardians.commit()
    ...     await uow.commit()

A unit that exits its ``async with`` block without commit() is rolled back.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

logger = logging.getLogger(__name__)


class UnitOfWorkError(Exception):
    """Raised when a unit of work is used out of order."""

    pass


class UnitOfWork:
    """Transaction or savepoint scope over a session.

    Attributes:
        session: The session the unit writes through.
        is_nested: True when the unit is backed by a SAVEPOINT.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the unit of work.

        Args:
            session: Session to scope. Its current transaction state decides
                whether begin() opens a transaction or a savepoint.
        """
        self.session = session
        self.is_nested = False
        self._transaction: Optional[AsyncSessionTransaction] = None
        self._settled = False

    @property
    def is_open(self) -> bool:
        """Check whether the unit has begun and is not yet settled."""
        return self._transaction is not None and not self._settled

    async def begin(self) -> "UnitOfWork":
        """Open the transaction or savepoint.

        Returns:
            The unit itself, for chaining.

        Raises:
            UnitOfWorkError: If the unit was already begun.
        """
        if self._transaction is not None:
            raise UnitOfWorkError("Unit of work already begun")

        if self.session.in_transaction():
            self._transaction = await self.session.begin_nested()
            self.is_nested = True
        else:
            self._transaction = await self.session.begin()

        logger.debug("Unit of work opened (%s)", "savepoint" if self.is_nested else "transaction")
        return self

    async def commit(self) -> None:
        """Commit the transaction, or release the savepoint.

        Raises:
            UnitOfWorkError: If the unit is not open.
        """
        if not self.is_open:
            raise UnitOfWorkError("Cannot commit a unit of work that is not open")

        self._settled = True
        await self._transaction.commit()

    async def rollback(self) -> None:
        """Roll back the transaction, or roll back to the savepoint.

        Safe to call on a unit that has already been settled.
        """
        if not self.is_open:
            return

        self._settled = True
        await self._transaction.rollback()
        logger.debug("Unit of work rolled back (%s)", "savepoint" if self.is_nested else "transaction")

    def savepoint(self) -> "UnitOfWork":
        """Create a nested unit inside this one.

        Returns:
            A new, not yet begun, UnitOfWork on the same session.

        Raises:
            UnitOfWorkError: If this unit is not open.
        """
        if not self.is_open:
            raise UnitOfWorkError("Cannot open a savepoint outside an open unit of work")
        return UnitOfWork(self.session)

    async def __aenter__(self) -> "UnitOfWork":
        return await self.begin()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.rollback()
