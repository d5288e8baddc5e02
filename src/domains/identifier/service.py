# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identifier allocation service.

This module generates the two identifiers every provisioned account needs:

- a human-readable code (``STU-2025-00042``) drawn from a per
  (establishment, role, academic period) counter;
- a unique login email derived from the person's name and the
  establishment's login domain.

The counter is only ever advanced by one atomic
``INSERT ... ON CONFLICT DO UPDATE ... RETURNING`` statement, so concurrent
callers can never observe the same value. Login email uniqueness is
best-effort (check then create): a racing insert surfaces later as a
uniqueness violation from the storage.

Example:
    >>> allocator = IdentifierAllocator(settings.provisioning)
    >>> code = await allocator.generate_human_code(session, establishment_id, "student")
    >>> email = await allocator.generate_login_email(session, "Dupont Alice", establishment_id)
"""

import logging
import re
import unicodedata
from datetime import datetime
from typing import Callable, Collection

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config.settings import ProvisioningSettings
from src.infrastructure.database.models.account import Account
from src.infrastructure.database.models.establishment import Establishment
from src.infrastructure.database.models.identifier import IdentifierCounter
from src.utils.datetime import epoch_millis, utc_now

logger = logging.getLogger(__name__)

ROLE_PREFIXES: dict[str, str] = {
    "student": "STU",
    "teacher": "TCH",
    "staff": "STF",
}
DEFAULT_ROLE_PREFIX = "USR"

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


class IdentifierAllocationError(Exception):
    """Base exception for identifier allocation errors."""

    pass


class EstablishmentNotFoundError(IdentifierAllocationError):
    """Raised when the establishment scope does not exist."""

    pass


# =============================================================================
# Normalization helpers
# =============================================================================


def _strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def clean_segment(value: str) -> str:
    """Normalize one name part into an email local-part segment.

    Diacritics are stripped, the value is lowercased and every run of
    non-alphanumeric characters collapses to a single dot.

    Args:
        value: Raw name part (e.g. "Élise-Marie").

    Returns:
        Normalized segment (e.g. "elise.marie"), possibly empty.
    """
    return _NON_ALNUM_RE.sub(".", _strip_accents(value)).strip(".")


def slugify(value: str) -> str:
    """Build a DNS-friendly slug from an establishment code or name."""
    slug = _NON_ALNUM_RE.sub("-", _strip_accents(value)).strip("-")
    return slug or "establishment"


def split_full_name(full_name: str) -> tuple[str, list[str]]:
    """Split a full name into its last name and first names.

    The first token is the last name ("Dupont Alice Marie" ->
    ("Dupont", ["Alice", "Marie"])).
    """
    parts = full_name.split()
    if not parts:
        return "user", []
    return parts[0], parts[1:]


def academic_period(now: datetime, rollover_month: int) -> int:
    """Return the academic year bucket containing ``now``.

    Args:
        now: Reference instant.
        rollover_month: Month (1-12) at which a new academic year starts.

    Returns:
        The current year when the month is at or after the rollover month,
        the previous year otherwise.
    """
    return now.year if now.month >= rollover_month else now.year - 1


def clean_last_name(full_name: str) -> str:
    """Return the normalized last name segment of a full name."""
    last_name, _ = split_full_name(full_name)
    return clean_segment(last_name) or "user"


def login_candidates(full_name: str) -> tuple[str, list[str]]:
    """Build the ordered local-part candidates for a name.

    Returns:
        Tuple of (base local part used for numeric suffixes, candidates).
    """
    _, first_names = split_full_name(full_name)
    last = clean_last_name(full_name)
    firsts = [segment for segment in (clean_segment(name) for name in first_names) if segment]

    candidates: list[str] = []
    if len(firsts) >= 1:
        candidates.append(f"{last}.{firsts[0]}")
    if len(firsts) >= 2:
        candidates.append(f"{last}.{firsts[1]}")
        candidates.append(f"{last}.{firsts[0]}.{firsts[1]}")
    if not candidates:
        candidates.append(last)

    base = f"{last}.{firsts[0]}" if firsts else last
    return base, list(dict.fromkeys(candidates))


# =============================================================================
# Allocator
# =============================================================================


class IdentifierAllocator:
    """Allocates human-readable codes and login emails.

    The allocator holds no state of its own; every call runs on the
    caller's session, so allocations take part in the caller's transaction
    or savepoint.

    Attributes:
        _settings: Provisioning settings (base domain, limits, padding).
        _clock: Callable returning the current UTC time.
    """

    def __init__(
        self,
        settings: ProvisioningSettings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the allocator.

        Args:
            settings: Provisioning settings.
            clock: Time source, overridable in tests.
        """
        self._settings = settings
        self._clock = clock

    # =========================================================================
    # Human-readable codes
    # =========================================================================

    async def generate_human_code(
        self,
        session: AsyncSession,
        establishment_id: str,
        role: str,
    ) -> str:
        """Allocate the next code for (establishment, role, current period).

        Args:
            session: Session whose transaction the increment joins.
            establishment_id: Establishment scope.
            role: Account role ("student", "teacher", "staff", ...).

        Returns:
            Code formatted as ``{PREFIX}-{period}-{sequence}``.

        Raises:
            EstablishmentNotFoundError: If the establishment does not exist.
        """
        establishment = await self._get_establishment(session, establishment_id)
        period = self._current_period(establishment)

        insert = pg_insert if self._dialect_name(session) == "postgresql" else sqlite_insert
        stmt = (
            insert(IdentifierCounter)
            .values(
                establishment_id=establishment_id,
                role=role,
                period=period,
                current_value=1,
            )
            .on_conflict_do_update(
                index_elements=[
                    IdentifierCounter.establishment_id,
                    IdentifierCounter.role,
                    IdentifierCounter.period,
                ],
                set_={"current_value": IdentifierCounter.current_value + 1},
            )
            .returning(IdentifierCounter.current_value)
        )
        result = await session.execute(stmt)
        value = result.scalar_one()

        code = self.format_code(role, period, value)
        logger.debug("Allocated code %s for establishment %s", code, establishment_id)
        return code

    async def preview_human_code(
        self,
        session: AsyncSession,
        establishment_id: str,
        role: str,
    ) -> str:
        """Return the code the next allocation would produce, without writing.

        Used by dry runs so that previews never consume sequence numbers.
        """
        establishment = await self._get_establishment(session, establishment_id)
        period = self._current_period(establishment)

        stmt = select(IdentifierCounter.current_value).where(
            IdentifierCounter.establishment_id == establishment_id,
            IdentifierCounter.role == role,
            IdentifierCounter.period == period,
        )
        result = await session.execute(stmt)
        current = result.scalar_one_or_none() or 0
        return self.format_code(role, period, current + 1)

    def format_code(self, role: str, period: int, value: int) -> str:
        """Format a sequence value as a human-readable code."""
        prefix = ROLE_PREFIXES.get(role, DEFAULT_ROLE_PREFIX)
        return f"{prefix}-{period}-{value:0{self._settings.code_padding}d}"

    # =========================================================================
    # Login emails
    # =========================================================================

    async def generate_login_email(
        self,
        session: AsyncSession,
        full_name: str,
        establishment_id: str,
        domain_override: str | None = None,
        force_domain_suffix: str | None = None,
        exclude: Collection[str] = (),
    ) -> str:
        """Derive a login email that no account currently uses.

        Args:
            session: Session used for the collision checks.
            full_name: Person's name, last name first.
            establishment_id: Establishment whose domain is used.
            domain_override: Explicit domain, bypassing the establishment's.
            force_domain_suffix: Suffix appended to the domain when it does
                not already end with it (e.g. ".dz").
            exclude: Addresses treated as taken even without an account,
                such as logins previewed earlier in the same batch.

        Returns:
            A lowercase email address.

        Raises:
            EstablishmentNotFoundError: If the domain must be derived from a
                missing establishment.
        """
        domain = await self.resolve_domain(
            session, establishment_id, domain_override, force_domain_suffix
        )
        base, candidates = login_candidates(full_name)
        excluded = {email.strip().lower() for email in exclude}

        for local_part in candidates:
            candidate = f"{local_part}@{domain}"
            if not await self._is_taken(session, candidate, excluded):
                return candidate

        for suffix in range(2, self._settings.email_suffix_max_attempts):
            candidate = f"{base}.{suffix}@{domain}"
            if not await self._is_taken(session, candidate, excluded):
                return candidate

        fallback = f"{clean_last_name(full_name)}.{epoch_millis()}@{domain}"
        logger.warning("Login email candidates exhausted for %s, using %s", base, fallback)
        return fallback

    async def resolve_domain(
        self,
        session: AsyncSession,
        establishment_id: str,
        domain_override: str | None = None,
        force_domain_suffix: str | None = None,
    ) -> str:
        """Resolve the login domain for an establishment.

        Order: explicit override, establishment login domain, then
        ``{slug(code or name)}.{base domain}``.
        """
        if domain_override and domain_override.strip():
            domain = domain_override
        else:
            establishment = await self._get_establishment(session, establishment_id)
            if establishment.login_email_domain and establishment.login_email_domain.strip():
                domain = establishment.login_email_domain
            else:
                base_domain = (
                    self._settings.login_email_base_domain.strip().strip(".").lower()
                    or "school.local"
                )
                slug = slugify(establishment.code or establishment.name or "")
                domain = f"{slug}.{base_domain}"

        domain = domain.strip().strip(".").lower()

        if force_domain_suffix and force_domain_suffix.strip():
            suffix = force_domain_suffix.strip().lower()
            if not suffix.startswith("."):
                suffix = f".{suffix}"
            if not domain.endswith(suffix):
                domain = f"{domain}{suffix}"

        return domain

    async def email_exists(self, session: AsyncSession, email: str) -> bool:
        """Check case-insensitively whether an account uses ``email``."""
        stmt = (
            select(Account.id)
            .where(func.lower(Account.email) == email.strip().lower())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.first() is not None

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _is_taken(self, session: AsyncSession, email: str, excluded: set[str]) -> bool:
        return email in excluded or await self.email_exists(session, email)

    async def _get_establishment(
        self,
        session: AsyncSession,
        establishment_id: str,
    ) -> Establishment:
        establishment = await session.get(Establishment, establishment_id)
        if establishment is None:
            raise EstablishmentNotFoundError(f"Establishment {establishment_id} not found")
        return establishment

    def _current_period(self, establishment: Establishment) -> int:
        rollover = establishment.academic_year_start_month or self._settings.default_rollover_month
        return academic_period(self._clock(), rollover)

    @staticmethod
    def _dialect_name(session: AsyncSession) -> str:
        return session.get_bind().dialect.name
