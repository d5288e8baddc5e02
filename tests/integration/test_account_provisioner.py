# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for AccountProvisioner against SQLite."""

import re
from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy import select

from src.domains.audit.service import AuditActions
from src.domains.guardian.service import EmailInUseByOtherRoleError
from src.domains.provisioning.service import (
    ClassNotFoundError,
    EmailAlreadyExistsError,
    PreexistingGuardianNotFoundError,
    PreexistingGuardianOtherEstablishmentError,
    StorageConstraintError,
)
from src.infrastructure.database.models import (
    Account,
    ClassEnrollment,
    GuardianProfile,
    IdentifierCounter,
    StudentGuardianLink,
    StudentProfile,
)
from src.models.provisioning import ActorContext, CreateStudentRequest, GuardianDescriptor

pytestmark = pytest.mark.integration

STUDENT_NUMBER = re.compile(r"^STU-\d{4}-00001$")


def _request(seed, **overrides) -> CreateStudentRequest:
    values = {
        "establishment_id": seed.establishment_id,
        "full_name": "Dupont Alice",
        "class_id": seed.class_ids["3A"],
        "date_of_birth": date(2012, 4, 30),
        "contact_email": "Alice.Parent@Example.com",
        "actor": ActorContext(user_id="admin-1", role="admin", name="School Admin"),
    }
    values.update(overrides)
    return CreateStudentRequest(**values)


async def _add_account(sessionmaker, email: str, role: str, establishment_id: str | None) -> str:
    async with sessionmaker() as session:
        account = Account(
            email=email,
            password_hash="x",
            full_name="Existing Person",
            role=role,
            establishment_id=establishment_id,
        )
        session.add(account)
        await session.commit()
        return account.id


@pytest_asyncio.fixture
async def teacher_email(db_sessionmaker, seed) -> str:
    await _add_account(db_sessionmaker, "teacher@example.com", "teacher", seed.establishment_id)
    return "teacher@example.com"


class TestProvisionStudent:
    """Tests for a committed single creation."""

    @pytest.mark.asyncio
    async def test_creates_student_profile_enrollment_and_guardian(self, services, seed, db_session) -> None:
        """Test the full unit written for a new student."""
        outcome = await services.provisioner.provision(_request(seed))
        result = outcome.result

        assert result.created is True
        assert result.warnings == []
        assert result.account.email == "dupont.alice@hugo.example.org"
        assert result.account.must_change_password is True
        assert result.contact_email == "alice.parent@example.com"
        assert STUDENT_NUMBER.match(result.student.student_number)

        profile = await db_session.get(StudentProfile, result.account.id)
        assert profile.class_id == seed.class_ids["3A"]
        assert profile.date_of_birth == date(2012, 4, 30)
        enrollments = await db_session.execute(
            select(ClassEnrollment).where(ClassEnrollment.student_id == result.account.id)
        )
        assert len(enrollments.scalars().all()) == 1

        assert len(result.guardians) == 1
        guardian = result.guardians[0]
        assert guardian.is_new_account is True
        assert guardian.full_name == "Guardian of Dupont Alice"
        assert guardian.email == "dupont.guardian@hugo.example.org"
        assert guardian.contact_email_override == "alice.parent@example.com"
        guardian_profile = await db_session.get(GuardianProfile, guardian.account_id)
        assert guardian_profile.relation_type == "guardian"
        assert guardian_profile.contact_email == "alice.parent@example.com"

    @pytest.mark.asyncio
    async def test_pending_side_effects(self, services, seed) -> None:
        """Test the invitations and audit events deferred by a creation."""
        outcome = await services.provisioner.provision(_request(seed))

        roles = [(i.role, i.recipient_address) for i in outcome.invitations]
        assert roles == [
            ("student", "alice.parent@example.com"),
            ("guardian", "alice.parent@example.com"),
        ]
        assert outcome.invitations[0].establishment_display_name == "Lycée Victor Hugo"
        assert outcome.invitations[0].locale == "fr"
        assert [e.action for e in outcome.audit_events] == [
            AuditActions.GUARDIAN_CREATED,
            AuditActions.STUDENT_CREATED,
        ]
        assert outcome.audit_events[-1].actor.user_id == "admin-1"

    @pytest.mark.asyncio
    async def test_invitations_disabled(self, services, seed) -> None:
        """Test that no invitation is deferred when disabled."""
        outcome = await services.provisioner.provision(_request(seed, send_invitations=False))

        assert outcome.invitations == []
        assert outcome.audit_events

    @pytest.mark.asyncio
    async def test_student_without_contact_email_invites_login(self, services, seed) -> None:
        """Test that a student without contact is invited at the login email."""
        outcome = await services.provisioner.provision(_request(seed, contact_email=None))

        assert outcome.result.guardians == []
        assert [i.recipient_address for i in outcome.invitations] == [
            "dupont.alice@hugo.example.org"
        ]

    @pytest.mark.asyncio
    async def test_auto_derive_disabled(self, services, seed, count_rows) -> None:
        """Test that the contact guardian can be turned off."""
        outcome = await services.provisioner.provision(
            _request(seed, auto_derive_guardian_from_contact=False)
        )

        assert outcome.result.guardians == []
        assert await count_rows(Account, Account.role == "guardian") == 0

    @pytest.mark.asyncio
    async def test_explicit_descriptors_replace_auto_guardian(self, services, seed) -> None:
        """Test that provided guardians suppress the contact guardian."""
        outcome = await services.provisioner.provision(
            _request(
                seed,
                guardians=[
                    GuardianDescriptor(first_name="Anne", last_name="Dupont", email="anne@example.com"),
                    GuardianDescriptor(first_name="Marc", last_name="Dupont", relation_type="father"),
                ],
            )
        )

        assert [g.email for g in outcome.result.guardians] == [
            "anne@example.com",
            "dupont.marc@hugo.example.org",
        ]

    @pytest.mark.asyncio
    async def test_explicit_login_and_student_number(self, services, seed, count_rows) -> None:
        """Test that explicit identifiers are used and no counter moves."""
        outcome = await services.provisioner.provision(
            _request(seed, login_email="Alice.D@Hugo.example.org", student_number="EXT-42")
        )

        assert outcome.result.account.email == "alice.d@hugo.example.org"
        assert outcome.result.student.student_number == "EXT-42"
        assert await count_rows(IdentifierCounter) == 0

    @pytest.mark.asyncio
    async def test_second_homonym_gets_next_login(self, services, seed) -> None:
        """Test that a homonym gets the next free login email."""
        await services.provisioner.provision(_request(seed, contact_email=None))
        outcome = await services.provisioner.provision(_request(seed, contact_email=None))

        assert outcome.result.account.email == "dupont.alice.2@hugo.example.org"
        assert outcome.result.student.student_number.endswith("-00002")


class TestProvisionFailures:
    """Tests for fatal provisioning errors."""

    @pytest.mark.asyncio
    async def test_taken_login_email(self, services, seed, teacher_email, count_rows) -> None:
        """Test that an explicit login already in use aborts the creation."""
        with pytest.raises(EmailAlreadyExistsError) as exc_info:
            await services.provisioner.provision(_request(seed, login_email="TEACHER@example.com"))

        assert exc_info.value.email == "teacher@example.com"
        assert await count_rows(StudentProfile) == 0

    @pytest.mark.asyncio
    async def test_class_of_other_establishment(self, services, seed, count_rows) -> None:
        """Test that the class must belong to the establishment."""
        with pytest.raises(ClassNotFoundError):
            await services.provisioner.provision(_request(seed, class_id=seed.class_ids["other-3A"]))

        assert await count_rows(Account) == 0

    @pytest.mark.asyncio
    async def test_duplicate_student_number_is_storage_error(self, services, seed, count_rows) -> None:
        """Test that a constraint violation is translated and rolled back."""
        await services.provisioner.provision(_request(seed, student_number="EXT-1", contact_email=None))

        with pytest.raises(StorageConstraintError) as exc_info:
            await services.provisioner.provision(
                _request(seed, full_name="Martin Paul", student_number="EXT-1", contact_email=None)
            )

        assert "UNIQUE" not in str(exc_info.value)
        assert exc_info.value.__cause__ is not None
        assert await count_rows(Account) == 1

    @pytest.mark.asyncio
    async def test_unknown_existing_guardian(self, services, seed, count_rows) -> None:
        """Test that an unknown existing guardian id aborts the creation."""
        with pytest.raises(PreexistingGuardianNotFoundError):
            await services.provisioner.provision(
                _request(seed, existing_guardian_id="00000000-0000-4000-8000-000000000000")
            )

        assert await count_rows(Account) == 0

    @pytest.mark.asyncio
    async def test_existing_guardian_id_of_student(self, services, seed, db_sessionmaker) -> None:
        """Test that a non-guardian account is not accepted as guardian."""
        student_id = await _add_account(db_sessionmaker, "kid@example.com", "student", seed.establishment_id)

        with pytest.raises(PreexistingGuardianNotFoundError):
            await services.provisioner.provision(_request(seed, existing_guardian_id=student_id))

    @pytest.mark.asyncio
    async def test_existing_guardian_of_other_establishment(self, services, seed, db_sessionmaker) -> None:
        """Test that guardians of another establishment are rejected."""
        guardian_id = await _add_account(
            db_sessionmaker, "other@example.com", "guardian", seed.other_establishment_id
        )

        with pytest.raises(PreexistingGuardianOtherEstablishmentError) as exc_info:
            await services.provisioner.provision(_request(seed, existing_guardian_id=guardian_id))

        assert exc_info.value.email == "other@example.com"

    @pytest.mark.asyncio
    async def test_existing_guardian_without_establishment(self, services, seed, db_sessionmaker, count_rows) -> None:
        """Test that a guardian outside any establishment is rejected."""
        guardian_id = await _add_account(db_sessionmaker, "floating@example.com", "guardian", None)

        with pytest.raises(PreexistingGuardianOtherEstablishmentError) as exc_info:
            await services.provisioner.provision(_request(seed, existing_guardian_id=guardian_id))

        assert exc_info.value.guardian_id == guardian_id
        assert await count_rows(StudentGuardianLink) == 0
        assert await count_rows(Account, Account.role == "student") == 0


class TestGuardianConflicts:
    """Tests for strict and lenient guardian sync."""

    @pytest.mark.asyncio
    async def test_strict_conflict_aborts_everything(self, services, seed, teacher_email, count_rows) -> None:
        """Test that strict mode leaves no student behind."""
        request = _request(
            seed,
            guardians=[GuardianDescriptor(first_name="T", last_name="Eacher", email=teacher_email)],
            strict=True,
        )

        with pytest.raises(EmailInUseByOtherRoleError):
            await services.provisioner.provision(request)

        assert await count_rows(StudentProfile) == 0
        assert await count_rows(Account, Account.role == "student") == 0

    @pytest.mark.asyncio
    async def test_lenient_conflict_creates_student_with_warning(self, services, seed, teacher_email, count_rows) -> None:
        """Test that lenient mode keeps the student without guardians."""
        request = _request(
            seed,
            guardians=[
                GuardianDescriptor(first_name="Anne", last_name="Dupont", email="anne@example.com"),
                GuardianDescriptor(first_name="T", last_name="Eacher", email=teacher_email),
            ],
            strict=False,
        )

        outcome = await services.provisioner.provision(request)

        assert outcome.result.created is True
        assert outcome.result.guardians == []
        assert len(outcome.result.warnings) == 1
        assert teacher_email in outcome.result.warnings[0]
        assert await count_rows(StudentProfile) == 1
        # The guardian created before the conflict is rolled back with the savepoint
        assert await count_rows(Account, Account.role == "guardian") == 0
        assert await count_rows(StudentGuardianLink) == 0
        assert [i.role for i in outcome.invitations] == ["student"]


class TestExistingGuardian:
    """Tests for linking a pre-existing guardian."""

    @pytest.mark.asyncio
    async def test_links_existing_guardian(self, services, seed, db_sessionmaker, count_rows) -> None:
        """Test that an existing guardian is linked and not invited."""
        guardian_id = await _add_account(
            db_sessionmaker, "anne@example.com", "guardian", seed.establishment_id
        )

        outcome = await services.provisioner.provision(_request(seed, existing_guardian_id=guardian_id))

        assert outcome.result.linked_existing_guardian.account_id == guardian_id
        assert [g.account_id for g in outcome.result.guardians] == [guardian_id]
        assert [i.role for i in outcome.invitations] == ["student"]
        assert AuditActions.GUARDIAN_LINKED_TO_STUDENT in [e.action for e in outcome.audit_events]
        assert await count_rows(StudentGuardianLink, StudentGuardianLink.guardian_id == guardian_id) == 1


class TestDryRun:
    """Tests for dry runs."""

    @pytest.mark.asyncio
    async def test_dry_run_leaves_nothing(self, services, seed, count_rows) -> None:
        """Test that a preview writes nothing and defers nothing."""
        outcome = await services.provisioner.provision(_request(seed, dry_run=True))

        assert outcome.result.created is False
        assert outcome.result.account.email == "dupont.alice@hugo.example.org"
        assert STUDENT_NUMBER.match(outcome.result.student.student_number)
        assert len(outcome.result.guardians) == 1
        assert outcome.invitations == []
        assert outcome.audit_events == []
        for model in (Account, StudentProfile, ClassEnrollment, GuardianProfile, StudentGuardianLink, IdentifierCounter):
            assert await count_rows(model) == 0

    @pytest.mark.asyncio
    async def test_dry_run_with_guardian_conflict_leaves_nothing(self, services, seed, teacher_email, count_rows) -> None:
        """Test that a previewed recoverable failure writes nothing."""
        outcome = await services.provisioner.provision(
            _request(
                seed,
                guardians=[GuardianDescriptor(first_name="T", last_name="Eacher", email=teacher_email)],
                strict=False,
                dry_run=True,
            )
        )

        assert outcome.result.created is False
        assert len(outcome.result.warnings) == 1
        assert await count_rows(Account) == 1
        assert await count_rows(StudentProfile) == 0

    @pytest.mark.asyncio
    async def test_dry_run_does_not_consume_student_numbers(self, services, seed) -> None:
        """Test that previews never take a sequence number."""
        await services.provisioner.provision(_request(seed, dry_run=True, contact_email=None))
        await services.provisioner.provision(_request(seed, dry_run=True, contact_email=None))
        outcome = await services.provisioner.provision(_request(seed, contact_email=None))

        assert STUDENT_NUMBER.match(outcome.result.student.student_number)


class TestCallerTransaction:
    """Tests for provisioning inside a caller-owned transaction."""

    @pytest.mark.asyncio
    async def test_caller_commit_persists(self, services, seed, db_sessionmaker, count_rows) -> None:
        """Test that the unit becomes a savepoint released into the caller's transaction."""
        async with db_sessionmaker() as session:
            async with session.begin():
                await services.provisioner.provision(_request(seed), session=session)
                await services.provisioner.provision(
                    _request(seed, full_name="Martin Paul", contact_email=None), session=session
                )

        assert await count_rows(StudentProfile) == 2

    @pytest.mark.asyncio
    async def test_caller_rollback_discards(self, services, seed, db_sessionmaker, count_rows) -> None:
        """Test that the caller keeps control of the final outcome."""
        async with db_sessionmaker() as session:
            await session.begin()
            await services.provisioner.provision(_request(seed), session=session)
            await session.rollback()

        assert await count_rows(Account) == 0

    @pytest.mark.asyncio
    async def test_failed_savepoint_spares_caller_work(self, services, seed, db_sessionmaker, teacher_email, count_rows) -> None:
        """Test that a failing creation only rolls back its own savepoint."""
        async with db_sessionmaker() as session:
            async with session.begin():
                await services.provisioner.provision(_request(seed), session=session)
                with pytest.raises(EmailAlreadyExistsError):
                    await services.provisioner.provision(
                        _request(seed, full_name="Martin Paul", login_email=teacher_email),
                        session=session,
                    )

        assert await count_rows(StudentProfile) == 1
