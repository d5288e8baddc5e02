# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Invitation token service.

Issues the one-time activation tokens embedded in invitation links. The
plain token only ever leaves this module inside the link; storage keeps its
SHA-256 digest.

Example:
    >>> tokens = InvitationTokenService(settings.invitation)
    >>> link = await tokens.issue(session, account_id)
    >>> link
    'https://school.example/first-login?token=...'
"""

import hashlib
import logging
import secrets
from urllib.parse import urlencode

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config.settings import InvitationSettings
from src.infrastructure.database.models.invitation import InvitationToken
from src.utils.datetime import hours_from_now, is_expired, utc_now

logger = logging.getLogger(__name__)


class InvitationTokenError(Exception):
    """Base exception for invitation token operations."""

    pass


class InvalidInvitationTokenError(InvitationTokenError):
    """Raised when a token is unknown, expired or already used."""

    pass


class InvitationTokenService:
    """Issues and redeems activation tokens.

    Attributes:
        TOKEN_BYTES: Entropy of generated tokens.
    """

    TOKEN_BYTES = 32

    def __init__(self, settings: InvitationSettings) -> None:
        """Initialize the token service.

        Args:
            settings: Activation base URL and token lifetime.
        """
        self._settings = settings

    async def issue(self, session: AsyncSession, account_id: str) -> str:
        """Create a token for an account and return its activation link.

        Args:
            session: Session the token row is added to. The caller commits.
            account_id: Account to activate.

        Returns:
            Activation link carrying the plain token.
        """
        token = secrets.token_urlsafe(self.TOKEN_BYTES)
        session.add(
            InvitationToken(
                account_id=account_id,
                token_hash=self._hash_token(token),
                expires_at=hours_from_now(self._settings.token_ttl_hours),
            )
        )
        await session.flush()
        logger.debug("Issued invitation token for account %s", account_id)
        return self.build_link(token)

    async def redeem(self, session: AsyncSession, token: str) -> str:
        """Mark a token as used.

        Args:
            session: Session used for the lookup and update.
            token: Plain token taken from the activation link.

        Returns:
            The id of the account the token activates.

        Raises:
            InvalidInvitationTokenError: If the token is unknown, expired or
                already used.
        """
        stmt = select(InvitationToken).where(InvitationToken.token_hash == self._hash_token(token))
        result = await session.execute(stmt)
        record = result.scalar_one_or_none()

        if record is None:
            raise InvalidInvitationTokenError("Unknown invitation token")
        if record.used_at is not None:
            raise InvalidInvitationTokenError("Invitation token already used")
        if is_expired(record.expires_at):
            raise InvalidInvitationTokenError("Invitation token expired")

        record.used_at = utc_now()
        await session.flush()
        return record.account_id

    def build_link(self, token: str) -> str:
        """Append the token to the activation base URL."""
        base = self._settings.activation_base_url
        separator = "&" if "?" in base else "?"
        return f"{base}{separator}{urlencode({'token': token})}"

    @staticmethod
    def _hash_token(token: str) -> str:
        return hashlib.sha256(token.encode("utf-8")).hexdigest()
