# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Password utilities for provisioned accounts.

Provisioned accounts never receive a password chosen by a person: they get
a random one-time password, stored only as a bcrypt hash, and are flagged
``must_change_password`` until activated through their invitation link.

Example:
    >>> hasher = PasswordHasher(rounds=12)
    >>> temporary = generate_temporary_password()
    >>> hashed = hasher.hash(temporary)
    >>> hasher.verify(temporary, hashed)
    True
"""

import logging
import secrets
import string

import bcrypt

logger = logging.getLogger(__name__)

_TEMPORARY_PASSWORD_ALPHABET = string.ascii_letters + string.digits
_TEMPORARY_PASSWORD_SYMBOLS = "!@#$%*?"


def generate_temporary_password(length: int = 12) -> str:
    """Generate a random one-time password.

    The password always contains at least one lowercase letter, one
    uppercase letter, one digit and one symbol.

    Args:
        length: Password length, at least 8.

    Returns:
        The plain text password.

    Raises:
        ValueError: If length is below 8.
    """
    if length < 8:
        raise ValueError("Temporary passwords must be at least 8 characters")

    required = [
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.digits),
        secrets.choice(_TEMPORARY_PASSWORD_SYMBOLS),
    ]
    pool = _TEMPORARY_PASSWORD_ALPHABET + _TEMPORARY_PASSWORD_SYMBOLS
    chars = required + [secrets.choice(pool) for _ in range(length - len(required))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


class PasswordHasher:
    """Password hashing using bcrypt.

    Attributes:
        _rounds: Number of bcrypt rounds for hashing.
    """

    def __init__(self, rounds: int = 12) -> None:
        """Initialize the password hasher.

        Args:
            rounds: Number of bcrypt rounds. Tests lower it to 4.
        """
        self._rounds = rounds

    def hash(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain text password to hash.

        Returns:
            Bcrypt hash string with salt embedded.

        Raises:
            ValueError: If password is empty.
        """
        if not password:
            raise ValueError("Password cannot be empty")

        salt = bcrypt.gensalt(rounds=self._rounds)
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
        return hashed.decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password against a hash.

        Returns:
            True if password matches the hash, False otherwise.
        """
        if not password or not password_hash:
            return False

        try:
            return bcrypt.checkpw(
                password.encode("utf-8"),
                password_hash.encode("utf-8"),
            )
        except ValueError as e:
            logger.warning("Password verification failed: %s", str(e))
            return False

    def hash_temporary_password(self, length: int = 12) -> str:
        """Generate a one-time password and return only its hash.

        The plain text is discarded: provisioned accounts are activated
        through their invitation link, never with this password.
        """
        return self.hash(generate_temporary_password(length))
