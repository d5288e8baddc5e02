# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Account provisioning service.

This service creates one student (account, profile, class enrollment and
guardians) as one consistent unit. The unit is a real transaction when the
provisioner owns the session, and a SAVEPOINT when the caller passes a
session that already has a transaction open.

The provisioning flow:
1. Resolve the login email (explicit, collision-checked; or derived)
2. Resolve the student number (explicit; or allocated)
3. Insert account + profile + enrollment
4. Guardians:
   - descriptors (or one derived from the contact email) go through the
     linker inside their own savepoint
   - a pre-existing guardian is validated and linked directly
5. Roll back (dry run) or commit

Side effects (invitations, audit events) are never executed here: they are
returned as pending descriptors and run by the caller once the commit is
durable.

Example:
    >>> provisioner = AccountProvisioner(sessionmaker, allocator, linker, hasher, settings)
    >>> outcome = await provisioner.provision(request)
    >>> outcome.result.created
    True
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config.settings import ProvisioningSettings
from src.domains.audit.service import AuditActions
from src.domains.auth.password import PasswordHasher
from src.domains.guardian.service import (
    CrossEstablishmentConflictError,
    EmailInUseByOtherRoleError,
    GuardianLinker,
    GuardianLinkError,
    normalize_email,
)
from src.domains.identifier.service import (
    EstablishmentNotFoundError,
    IdentifierAllocator,
    split_full_name,
)
from src.infrastructure.database.models.account import Account, AccountRole
from src.infrastructure.database.models.establishment import Establishment, SchoolClass
from src.infrastructure.database.models.student import ClassEnrollment, StudentProfile
from src.infrastructure.database.unit_of_work import UnitOfWork
from src.models.provisioning import (
    AccountRecord,
    CreateStudentRequest,
    CreateStudentResult,
    GuardianDescriptor,
    GuardianSummary,
    PendingAuditEvent,
    PendingInvitation,
    ProvisioningOutcome,
    StudentRecord,
)

logger = logging.getLogger(__name__)

AUTO_GUARDIAN_FIRST_NAME = "Guardian"
AUTO_GUARDIAN_RELATION = "guardian"


class ProvisioningError(Exception):
    """Base exception for provisioning errors."""

    pass


class EmailAlreadyExistsError(ProvisioningError):
    """Raised when an explicit login email is already used.

    Attributes:
        email: The conflicting email.
    """

    def __init__(self, email: str) -> None:
        super().__init__(f"Login email {email} already exists")
        self.email = email


class PreexistingGuardianNotFoundError(ProvisioningError):
    """Raised when the referenced existing guardian does not exist.

    Attributes:
        guardian_id: The referenced guardian id.
    """

    def __init__(self, guardian_id: str) -> None:
        super().__init__(f"Guardian {guardian_id} not found")
        self.guardian_id = guardian_id


class PreexistingGuardianOtherEstablishmentError(ProvisioningError):
    """Raised when the referenced existing guardian belongs elsewhere.

    Attributes:
        guardian_id: The referenced guardian id.
        email: The guardian's login email.
    """

    def __init__(self, guardian_id: str, email: str) -> None:
        super().__init__(f"Guardian {email} belongs to another establishment")
        self.guardian_id = guardian_id
        self.email = email


class ClassNotFoundError(ProvisioningError):
    """Raised when the class does not exist in the establishment."""

    def __init__(self, class_id: str) -> None:
        super().__init__(f"Class {class_id} not found in this establishment")
        self.class_id = class_id


class StorageConstraintError(ProvisioningError):
    """Raised when the storage rejects a write for an unclassified reason.

    The message is generic; the original IntegrityError is chained.
    """

    def __init__(self) -> None:
        super().__init__("The student could not be saved because it conflicts with existing data")


def guardian_warning(error: GuardianLinkError) -> str:
    """Map a downgradable guardian error to a readable warning."""
    if isinstance(error, EmailInUseByOtherRoleError):
        return f"Guardian not linked: {error.email} is already used by a non-guardian account"
    if isinstance(error, CrossEstablishmentConflictError):
        return f"Guardian not linked: {error.email} belongs to another establishment"
    return f"Guardian not linked: {error}"


class AccountProvisioner:
    """Creates students and their guardians as one unit of work.

    Attributes:
        _sessionmaker: Factory for sessions owned by the provisioner.
        _allocator: Student numbers and login emails.
        _linker: Guardian resolution and linking.
        _hasher: One-time password hashing.
        _settings: Provisioning settings.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        allocator: IdentifierAllocator,
        linker: GuardianLinker,
        hasher: PasswordHasher,
        settings: ProvisioningSettings,
    ) -> None:
        """Initialize the provisioner.

        Args:
            sessionmaker: Session factory bound to the shared engine.
            allocator: Identifier allocator.
            linker: Guardian linker.
            hasher: Password hasher.
            settings: Provisioning settings.
        """
        self._sessionmaker = sessionmaker
        self._allocator = allocator
        self._linker = linker
        self._hasher = hasher
        self._settings = settings

    async def provision(
        self,
        request: CreateStudentRequest,
        session: AsyncSession | None = None,
    ) -> ProvisioningOutcome:
        """Create one student as one unit of work.

        Args:
            request: Student creation request.
            session: Optional caller-owned session. When it already has an
                open transaction the unit is a SAVEPOINT inside it, and the
                caller owns the final commit.

        Returns:
            ProvisioningOutcome with the result and the pending side effects
            (none for dry runs).

        Raises:
            EstablishmentNotFoundError: If the establishment does not exist.
            ClassNotFoundError: If the class is not in the establishment.
            EmailAlreadyExistsError: If the explicit login email is taken.
            PreexistingGuardianNotFoundError: If the existing guardian is unknown.
            PreexistingGuardianOtherEstablishmentError: If the existing
                guardian belongs to another establishment.
            GuardianLinkError: If guardian sync fails and ``strict`` is set.
            StorageConstraintError: If the storage rejects the writes.
        """
        if session is not None:
            return await self._provision_in_session(session, request)

        async with self._sessionmaker() as owned_session:
            return await self._provision_in_session(owned_session, request)

    async def _provision_in_session(
        self,
        session: AsyncSession,
        request: CreateStudentRequest,
    ) -> ProvisioningOutcome:
        async with UnitOfWork(session) as uow:
            try:
                outcome = await self._create_student(session, uow, request)
                if request.dry_run:
                    await uow.rollback()
                else:
                    await uow.commit()
            except IntegrityError as e:
                logger.warning(
                    "Storage constraint violated while creating %s: %s",
                    request.full_name,
                    e.orig,
                )
                raise StorageConstraintError() from e

        logger.info(
            "Student %s %s (%s)",
            outcome.result.account.email,
            "created" if outcome.result.created else "previewed",
            "savepoint" if uow.is_nested else "transaction",
        )
        return outcome

    async def _create_student(
        self,
        session: AsyncSession,
        uow: UnitOfWork,
        request: CreateStudentRequest,
    ) -> ProvisioningOutcome:
        establishment_id = request.establishment_id
        establishment = await session.get(Establishment, establishment_id)
        if establishment is None:
            raise EstablishmentNotFoundError(f"Establishment {establishment_id} not found")
        # Read before any savepoint so nothing is lazily reloaded afterwards
        display_name = establishment.invitation_name
        locale = establishment.default_locale

        if request.class_id:
            await self._check_class(session, establishment_id, request.class_id)

        full_name = " ".join(request.full_name.split())
        contact_email = normalize_email(request.contact_email)
        warnings: list[str] = []

        # 1. Login email
        login_email = normalize_email(request.login_email)
        if login_email:
            if await self._allocator.email_exists(session, login_email):
                raise EmailAlreadyExistsError(login_email)
        else:
            login_email = await self._allocator.generate_login_email(
                session,
                full_name,
                establishment_id,
                exclude=request.reserved_login_emails,
            )

        # 2. Student number
        student_number = (request.student_number or "").strip()
        if not student_number:
            if request.dry_run:
                student_number = await self._allocator.preview_human_code(
                    session, establishment_id, AccountRole.STUDENT.value
                )
            else:
                student_number = await self._allocator.generate_human_code(
                    session, establishment_id, AccountRole.STUDENT.value
                )

        # 3. Account + profile + enrollment
        account = Account(
            email=login_email,
            password_hash=self._hasher.hash_temporary_password(
                self._settings.temporary_password_length
            ),
            full_name=full_name,
            role=AccountRole.STUDENT.value,
            establishment_id=establishment_id,
            is_active=True,
            must_change_password=True,
        )
        session.add(account)
        await session.flush()

        profile = StudentProfile(
            account_id=account.id,
            establishment_id=establishment_id,
            student_number=student_number,
            contact_email=contact_email,
            date_of_birth=request.date_of_birth,
            class_id=request.class_id,
        )
        session.add(profile)
        if request.class_id:
            session.add(ClassEnrollment(class_id=request.class_id, student_id=account.id))
        await session.flush()

        account_record = AccountRecord(
            id=account.id,
            email=account.email,
            full_name=account.full_name,
            role=account.role,
            establishment_id=account.establishment_id,
            is_active=account.is_active,
            must_change_password=account.must_change_password,
        )
        student_record = StudentRecord(
            account_id=account.id,
            establishment_id=establishment_id,
            student_number=student_number,
            contact_email=contact_email,
            date_of_birth=request.date_of_birth,
            class_id=request.class_id,
        )

        # 4. Guardians
        linked_existing: GuardianSummary | None = None
        existing_guardian: Account | None = None
        if request.existing_guardian_id:
            existing_guardian = await self._get_existing_guardian(
                session, establishment_id, request.existing_guardian_id
            )

        descriptors = list(request.guardians)
        if (
            existing_guardian is None
            and not descriptors
            and contact_email
            and request.auto_derive_guardian_from_contact
        ):
            descriptors = [self._guardian_from_contact(full_name, contact_email)]

        guardians: list[GuardianSummary] = []
        if descriptors:
            try:
                async with uow.savepoint() as guardian_scope:
                    guardians = await self._linker.sync_guardians(
                        session, account_record.id, establishment_id, descriptors
                    )
                    await guardian_scope.commit()
            except (EmailInUseByOtherRoleError, CrossEstablishmentConflictError) as e:
                if request.strict:
                    raise
                logger.info("Guardian sync skipped for %s: %s", login_email, e)
                warnings.append(guardian_warning(e))
                guardians = []

        if existing_guardian is not None:
            linked_existing = await self._linker.link_existing_guardian(
                session, account_record.id, existing_guardian
            )

        result = CreateStudentResult(
            created=not request.dry_run,
            warnings=warnings,
            student=student_record,
            account=account_record,
            contact_email=contact_email,
            guardians=guardians + ([linked_existing] if linked_existing else []),
            linked_existing_guardian=linked_existing,
        )

        if request.dry_run:
            return ProvisioningOutcome(result=result)

        return ProvisioningOutcome(
            result=result,
            invitations=self._pending_invitations(
                request, display_name, locale, account_record, contact_email, guardians
            ),
            audit_events=self._pending_audit_events(
                request, student_record, guardians, linked_existing
            ),
        )

    # =========================================================================
    # Validation helpers
    # =========================================================================

    async def _check_class(
        self,
        session: AsyncSession,
        establishment_id: str,
        class_id: str,
    ) -> None:
        school_class = await session.get(SchoolClass, class_id)
        if school_class is None or school_class.establishment_id != establishment_id:
            raise ClassNotFoundError(class_id)

    async def _get_existing_guardian(
        self,
        session: AsyncSession,
        establishment_id: str,
        guardian_id: str,
    ) -> Account:
        guardian = await session.get(Account, guardian_id)
        if guardian is None or guardian.role != AccountRole.GUARDIAN.value:
            raise PreexistingGuardianNotFoundError(guardian_id)
        if guardian.establishment_id != establishment_id:
            raise PreexistingGuardianOtherEstablishmentError(guardian_id, guardian.email)
        return guardian

    @staticmethod
    def _guardian_from_contact(full_name: str, contact_email: str) -> GuardianDescriptor:
        """Describe the guardian implied by a student's contact email."""
        last_name, _ = split_full_name(full_name)
        return GuardianDescriptor(
            first_name=AUTO_GUARDIAN_FIRST_NAME,
            last_name=last_name,
            full_name=f"Guardian of {full_name}",
            relation_type=AUTO_GUARDIAN_RELATION,
            is_primary=True,
            can_view_grades=True,
            can_view_attendance=True,
            receive_notifications=True,
            contact_email=contact_email,
        )

    # =========================================================================
    # Pending side effects
    # =========================================================================

    def _pending_invitations(
        self,
        request: CreateStudentRequest,
        display_name: str,
        locale: str,
        account: AccountRecord,
        contact_email: str | None,
        guardians: list[GuardianSummary],
    ) -> list[PendingInvitation]:
        if not request.send_invitations:
            return []

        common = {
            "establishment_id": request.establishment_id,
            "establishment_display_name": display_name,
            "locale": locale,
            "actor": request.actor,
        }
        invitations = [
            PendingInvitation(
                account_id=account.id,
                role=AccountRole.STUDENT.value,
                login_email=account.email,
                recipient_address=contact_email or account.email,
                **common,
            )
        ]
        for guardian in guardians:
            if not guardian.is_new_account:
                continue
            invitations.append(
                PendingInvitation(
                    account_id=guardian.account_id,
                    role=AccountRole.GUARDIAN.value,
                    login_email=guardian.email,
                    recipient_address=guardian.contact_email_override or guardian.email,
                    **common,
                )
            )
        return invitations

    def _pending_audit_events(
        self,
        request: CreateStudentRequest,
        student: StudentRecord,
        guardians: list[GuardianSummary],
        linked_existing: GuardianSummary | None,
    ) -> list[PendingAuditEvent]:
        events = [
            PendingAuditEvent(
                establishment_id=request.establishment_id,
                actor=request.actor,
                action=AuditActions.GUARDIAN_CREATED,
                entity_type="user",
                entity_id=guardian.account_id,
                metadata={"student_id": student.account_id},
            )
            for guardian in guardians
            if guardian.is_new_account
        ]
        if linked_existing is not None:
            events.append(
                PendingAuditEvent(
                    establishment_id=request.establishment_id,
                    actor=request.actor,
                    action=AuditActions.GUARDIAN_LINKED_TO_STUDENT,
                    entity_type="user",
                    entity_id=linked_existing.account_id,
                    metadata={"student_id": student.account_id},
                )
            )
        events.append(
            PendingAuditEvent(
                establishment_id=request.establishment_id,
                actor=request.actor,
                action=AuditActions.STUDENT_CREATED,
                entity_type="user",
                entity_id=student.account_id,
                metadata={
                    "class_id": student.class_id,
                    "student_number": student.student_number,
                },
            )
        )
        return events
