# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Guardian linking service.

This module provides the GuardianLinker class for:
- Resolving guardian descriptors to existing or new guardian accounts
- Upserting guardian profiles and student-guardian links with merge semantics
- Linking a pre-validated existing guardian to a student
- Recomputing a guardian's active flag from its linked students

Every write goes through the caller's session; the linker never commits,
and never triggers side effects such as invitations.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config.settings import ProvisioningSettings
from src.domains.auth.password import PasswordHasher
from src.domains.identifier.service import IdentifierAllocator
from src.infrastructure.database.models.account import Account, AccountRole
from src.infrastructure.database.models.guardian import (
    FALLBACK_GUARDIAN_PHONE,
    GuardianProfile,
    StudentGuardianLink,
)
from src.models.provisioning import GuardianDescriptor, GuardianSummary

logger = logging.getLogger(__name__)

EXISTING_GUARDIAN_RELATION = "guardian"


class GuardianLinkError(Exception):
    """Base exception for guardian linking errors."""

    pass


class EmailInUseByOtherRoleError(GuardianLinkError):
    """Raised when a guardian email belongs to a non-guardian account.

    Attributes:
        email: The conflicting email.
    """

    def __init__(self, email: str) -> None:
        super().__init__(f"Email {email} is already used by a non-guardian account")
        self.email = email


class CrossEstablishmentConflictError(GuardianLinkError):
    """Raised when a guardian email belongs to another establishment.

    Attributes:
        email: The conflicting email.
    """

    def __init__(self, email: str) -> None:
        super().__init__(f"Guardian {email} belongs to another establishment")
        self.email = email


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def normalize_email(value: str | None) -> str | None:
    """Strip and lowercase an email, mapping blanks to None."""
    value = _clean(value)
    return value.lower() if value else None


class GuardianLinker:
    """Resolves, creates and links guardian accounts.

    Attributes:
        _allocator: Derives login emails for new guardians.
        _hasher: Hashes one-time passwords of new guardians.
        _settings: Provisioning settings (guardian domain suffix, password length).
    """

    def __init__(
        self,
        allocator: IdentifierAllocator,
        hasher: PasswordHasher,
        settings: ProvisioningSettings,
    ) -> None:
        """Initialize the guardian linker.

        Args:
            allocator: Identifier allocator for login emails.
            hasher: Password hasher.
            settings: Provisioning settings.
        """
        self._allocator = allocator
        self._hasher = hasher
        self._settings = settings

    async def sync_guardians(
        self,
        session: AsyncSession,
        student_account_id: str,
        establishment_id: str,
        descriptors: list[GuardianDescriptor],
    ) -> list[GuardianSummary]:
        """Resolve every descriptor to a guardian and link it to the student.

        Descriptors without any name part are ignored. When two descriptors
        resolve to the same account only the first one is applied.

        Args:
            session: Session whose transaction or savepoint receives the writes.
            student_account_id: Student to link guardians to.
            establishment_id: Establishment scope of the student.
            descriptors: Guardians to create or reuse.

        Returns:
            One summary per processed guardian, in descriptor order.

        Raises:
            EmailInUseByOtherRoleError: If an email belongs to a non-guardian.
            CrossEstablishmentConflictError: If an email belongs to a guardian
                of another establishment.
        """
        summaries: list[GuardianSummary] = []
        seen: set[str] = set()

        for descriptor in descriptors:
            if not descriptor.has_name:
                continue

            email = normalize_email(descriptor.email)
            account = None
            is_new_account = False

            if email:
                account = await self._find_guardian_by_email(session, email, establishment_id)

            if account is None:
                account = await self._create_guardian_account(
                    session, descriptor, email, establishment_id
                )
                is_new_account = True

            if account.id in seen:
                continue

            await self._upsert_profile(
                session,
                account.id,
                phone=_clean(descriptor.phone),
                address=_clean(descriptor.address),
                relation_type=_clean(descriptor.relation_type),
                is_primary_contact=descriptor.is_primary,
                can_view_grades=descriptor.can_view_grades,
                can_view_attendance=descriptor.can_view_attendance,
                contact_email=normalize_email(descriptor.contact_email),
            )
            await self._upsert_link(
                session,
                student_account_id,
                account.id,
                relation_type=_clean(descriptor.relation_type),
                is_primary=descriptor.is_primary,
                receive_notifications=descriptor.receive_notifications,
            )

            seen.add(account.id)
            summaries.append(
                GuardianSummary(
                    account_id=account.id,
                    full_name=account.full_name,
                    email=account.email,
                    is_new_account=is_new_account,
                    contact_email_override=normalize_email(descriptor.contact_email),
                )
            )

        logger.debug(
            "Synced %d guardians for student %s", len(summaries), student_account_id
        )
        return summaries

    async def link_existing_guardian(
        self,
        session: AsyncSession,
        student_account_id: str,
        guardian: Account,
    ) -> GuardianSummary:
        """Link an already validated guardian account to a student.

        The link is primary, with every visibility flag and notifications on.
        """
        await self._upsert_profile(
            session,
            guardian.id,
            relation_type=EXISTING_GUARDIAN_RELATION,
            is_primary_contact=True,
            can_view_grades=True,
            can_view_attendance=True,
        )
        await self._upsert_link(
            session,
            student_account_id,
            guardian.id,
            relation_type=EXISTING_GUARDIAN_RELATION,
            is_primary=True,
            receive_notifications=True,
        )
        return GuardianSummary(
            account_id=guardian.id,
            full_name=guardian.full_name,
            email=guardian.email,
            is_new_account=False,
        )

    async def recompute_guardian_active_status(
        self,
        session: AsyncSession,
        guardian_id: str,
    ) -> tuple[int, bool]:
        """Deactivate a guardian that no longer has an active linked student.

        Args:
            session: Session used for the count and update.
            guardian_id: Guardian account to recompute.

        Returns:
            Tuple of (active linked students, whether the guardian was
            deactivated by this call).
        """
        stmt = (
            select(func.count())
            .select_from(StudentGuardianLink)
            .join(Account, Account.id == StudentGuardianLink.student_id)
            .where(
                StudentGuardianLink.guardian_id == guardian_id,
                Account.is_active.is_(True),
            )
        )
        result = await session.execute(stmt)
        active_children = result.scalar_one()

        if active_children > 0:
            return active_children, False

        guardian = await session.get(Account, guardian_id)
        if guardian is None or not guardian.is_active:
            return 0, False

        guardian.is_active = False
        await session.flush()
        logger.info("Deactivated guardian %s: no active linked student", guardian_id)
        return 0, True

    # =========================================================================
    # Account resolution
    # =========================================================================

    async def _find_guardian_by_email(
        self,
        session: AsyncSession,
        email: str,
        establishment_id: str,
    ) -> Account | None:
        stmt = select(Account).where(func.lower(Account.email) == email).limit(1)
        result = await session.execute(stmt)
        account = result.scalar_one_or_none()

        if account is None:
            return None
        if account.role != AccountRole.GUARDIAN.value:
            raise EmailInUseByOtherRoleError(email)
        if account.establishment_id and account.establishment_id != establishment_id:
            raise CrossEstablishmentConflictError(email)
        return account

    async def _create_guardian_account(
        self,
        session: AsyncSession,
        descriptor: GuardianDescriptor,
        email: str | None,
        establishment_id: str,
    ) -> Account:
        first_name = _clean(descriptor.first_name)
        last_name = _clean(descriptor.last_name)

        if email:
            login_email = email
        else:
            login_name = f"{last_name or 'guardian'} {first_name or 'primary'}"
            login_email = await self._allocator.generate_login_email(
                session,
                login_name,
                establishment_id,
                force_domain_suffix=self._settings.guardian_domain_suffix,
            )

        account = Account(
            email=login_email,
            password_hash=self._hasher.hash_temporary_password(
                self._settings.temporary_password_length
            ),
            full_name=descriptor.display_name,
            role=AccountRole.GUARDIAN.value,
            establishment_id=establishment_id,
            is_active=True,
            must_change_password=True,
        )
        session.add(account)
        await session.flush()

        logger.info("Created guardian account %s (%s)", account.id, login_email)
        return account

    # =========================================================================
    # Upserts
    # =========================================================================

    async def _upsert_profile(
        self,
        session: AsyncSession,
        guardian_id: str,
        phone: str | None = None,
        address: str | None = None,
        relation_type: str | None = None,
        is_primary_contact: bool | None = None,
        can_view_grades: bool | None = None,
        can_view_attendance: bool | None = None,
        contact_email: str | None = None,
    ) -> GuardianProfile:
        """Create the profile, or overwrite only the provided fields."""
        existing = await session.get(GuardianProfile, guardian_id)

        if existing:
            if phone is not None:
                existing.phone = phone
            if address is not None:
                existing.address = address
            if relation_type is not None:
                existing.relation_type = relation_type
            if is_primary_contact is not None:
                existing.is_primary_contact = is_primary_contact
            if can_view_grades is not None:
                existing.can_view_grades = can_view_grades
            if can_view_attendance is not None:
                existing.can_view_attendance = can_view_attendance
            if contact_email is not None:
                existing.contact_email = contact_email
            await session.flush()
            return existing

        profile = GuardianProfile(
            account_id=guardian_id,
            phone=phone or FALLBACK_GUARDIAN_PHONE,
            address=address,
            relation_type=relation_type,
            is_primary_contact=bool(is_primary_contact),
            can_view_grades=True if can_view_grades is None else can_view_grades,
            can_view_attendance=True if can_view_attendance is None else can_view_attendance,
            contact_email=contact_email,
        )
        session.add(profile)
        await session.flush()
        return profile

    async def _upsert_link(
        self,
        session: AsyncSession,
        student_id: str,
        guardian_id: str,
        relation_type: str | None = None,
        is_primary: bool | None = None,
        receive_notifications: bool | None = None,
    ) -> StudentGuardianLink:
        """Create the (student, guardian) link, or merge into the existing one."""
        stmt = select(StudentGuardianLink).where(
            StudentGuardianLink.student_id == student_id,
            StudentGuardianLink.guardian_id == guardian_id,
        )
        result = await session.execute(stmt)
        existing = result.scalar_one_or_none()

        if existing:
            if relation_type is not None:
                existing.relation_type = relation_type
            if is_primary is not None:
                existing.is_primary = is_primary
            if receive_notifications is not None:
                existing.receive_notifications = receive_notifications
            await session.flush()
            return existing

        link = StudentGuardianLink(
            student_id=student_id,
            guardian_id=guardian_id,
            relation_type=relation_type,
            is_primary=bool(is_primary),
            receive_notifications=True if receive_notifications is None else receive_notifications,
        )
        session.add(link)
        await session.flush()
        return link
