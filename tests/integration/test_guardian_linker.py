# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for GuardianLinker against SQLite."""

import pytest
import pytest_asyncio
from sqlalchemy import select

from src.core.config.settings import ProvisioningSettings
from src.domains.auth.password import PasswordHasher
from src.domains.guardian.service import (
    CrossEstablishmentConflictError,
    EmailInUseByOtherRoleError,
    GuardianLinker,
)
from src.domains.identifier.service import IdentifierAllocator
from src.infrastructure.database.models import (
    Account,
    GuardianProfile,
    StudentGuardianLink,
)
from src.infrastructure.database.models.guardian import FALLBACK_GUARDIAN_PHONE
from src.models.provisioning import GuardianDescriptor

pytestmark = pytest.mark.integration


def _account(email: str, role: str, establishment_id: str | None, **kwargs) -> Account:
    return Account(
        email=email,
        password_hash="x",
        full_name=kwargs.pop("full_name", "Existing Person"),
        role=role,
        establishment_id=establishment_id,
        **kwargs,
    )


@pytest.fixture
def linker() -> GuardianLinker:
    settings = ProvisioningSettings(bcrypt_rounds=4)
    return GuardianLinker(IdentifierAllocator(settings), PasswordHasher(rounds=4), settings)


@pytest_asyncio.fixture
async def student_id(db_session, seed) -> str:
    student = _account("dupont.alice@hugo.example.org", "student", seed.establishment_id)
    db_session.add(student)
    await db_session.flush()
    return student.id


async def _links(session, student_id: str) -> list[StudentGuardianLink]:
    result = await session.execute(
        select(StudentGuardianLink).where(StudentGuardianLink.student_id == student_id)
    )
    return list(result.scalars().all())


class TestSyncGuardians:
    """Tests for GuardianLinker.sync_guardians."""

    @pytest.mark.asyncio
    async def test_creates_guardian_with_explicit_email(self, db_session, seed, linker, student_id) -> None:
        """Test that an unknown email creates a guardian account."""
        summaries = await linker.sync_guardians(
            db_session,
            student_id,
            seed.establishment_id,
            [
                GuardianDescriptor(
                    first_name="Anne",
                    last_name="Dupont",
                    email=" Anne.Dupont@Example.com ",
                    phone="+33 6 12 34 56 78",
                    relation_type="mother",
                    is_primary=True,
                )
            ],
        )

        assert len(summaries) == 1
        summary = summaries[0]
        assert summary.is_new_account is True
        assert summary.email == "anne.dupont@example.com"
        assert summary.full_name == "Anne Dupont"

        guardian = await db_session.get(Account, summary.account_id)
        assert guardian.role == "guardian"
        assert guardian.must_change_password is True
        assert guardian.password_hash.startswith("$2b$")

        profile = await db_session.get(GuardianProfile, summary.account_id)
        assert profile.phone == "+33 6 12 34 56 78"
        assert profile.relation_type == "mother"
        assert profile.is_primary_contact is True

        links = await _links(db_session, student_id)
        assert [(link.guardian_id, link.is_primary) for link in links] == [(summary.account_id, True)]

    @pytest.mark.asyncio
    async def test_derives_login_email_from_name(self, db_session, seed, linker, student_id) -> None:
        """Test that a guardian without email gets a derived login."""
        summaries = await linker.sync_guardians(
            db_session,
            student_id,
            seed.establishment_id,
            [GuardianDescriptor(first_name="Anne", last_name="Martin")],
        )

        assert summaries[0].email == "martin.anne@hugo.example.org"
        profile = await db_session.get(GuardianProfile, summaries[0].account_id)
        assert profile.phone == FALLBACK_GUARDIAN_PHONE

    @pytest.mark.asyncio
    async def test_guardian_domain_suffix(self, db_session, seed, student_id) -> None:
        """Test that the locale suffix is forced on derived guardian domains."""
        settings = ProvisioningSettings(bcrypt_rounds=4, guardian_domain_suffix=".dz")
        linker = GuardianLinker(IdentifierAllocator(settings), PasswordHasher(rounds=4), settings)

        summaries = await linker.sync_guardians(
            db_session,
            student_id,
            seed.establishment_id,
            [GuardianDescriptor(first_name="Karim", last_name="Benali")],
        )

        assert summaries[0].email == "benali.karim@hugo.example.org.dz"

    @pytest.mark.asyncio
    async def test_reuses_existing_guardian_and_merges_profile(self, db_session, seed, linker, student_id) -> None:
        """Test that a known guardian is reused and only provided fields change."""
        guardian = _account("anne.dupont@example.com", "guardian", seed.establishment_id, full_name="Anne Dupont")
        db_session.add(guardian)
        await db_session.flush()
        db_session.add(
            GuardianProfile(
                account_id=guardian.id,
                phone="0102030405",
                address="1 rue de la Paix",
                relation_type="mother",
                is_primary_contact=False,
                can_view_grades=True,
                can_view_attendance=True,
            )
        )
        await db_session.flush()

        summaries = await linker.sync_guardians(
            db_session,
            student_id,
            seed.establishment_id,
            [
                GuardianDescriptor(
                    first_name="Anne",
                    last_name="Dupont",
                    email="ANNE.DUPONT@example.com",
                    can_view_grades=False,
                )
            ],
        )

        assert summaries[0].account_id == guardian.id
        assert summaries[0].is_new_account is False
        profile = await db_session.get(GuardianProfile, guardian.id)
        assert profile.phone == "0102030405"
        assert profile.address == "1 rue de la Paix"
        assert profile.relation_type == "mother"
        assert profile.can_view_grades is False

    @pytest.mark.asyncio
    async def test_reuses_guardian_without_establishment(self, db_session, seed, linker, student_id) -> None:
        """Test that a guardian not bound to any establishment is reusable."""
        guardian = _account("floating@example.com", "guardian", None)
        db_session.add(guardian)
        await db_session.flush()

        summaries = await linker.sync_guardians(
            db_session,
            student_id,
            seed.establishment_id,
            [GuardianDescriptor(first_name="Flo", last_name="Ting", email="floating@example.com")],
        )

        assert summaries[0].account_id == guardian.id

    @pytest.mark.asyncio
    async def test_email_of_non_guardian_raises(self, db_session, seed, linker, student_id) -> None:
        """Test that a student or teacher email cannot become a guardian."""
        db_session.add(_account("teacher@example.com", "teacher", seed.establishment_id))
        await db_session.flush()

        with pytest.raises(EmailInUseByOtherRoleError) as exc_info:
            await linker.sync_guardians(
                db_session,
                student_id,
                seed.establishment_id,
                [GuardianDescriptor(first_name="T", last_name="Eacher", email="teacher@example.com")],
            )

        assert exc_info.value.email == "teacher@example.com"

    @pytest.mark.asyncio
    async def test_guardian_of_other_establishment_raises(self, db_session, seed, linker, student_id) -> None:
        """Test that guardians are never shared across establishments."""
        db_session.add(_account("other@example.com", "guardian", seed.other_establishment_id))
        await db_session.flush()

        with pytest.raises(CrossEstablishmentConflictError):
            await linker.sync_guardians(
                db_session,
                student_id,
                seed.establishment_id,
                [GuardianDescriptor(first_name="O", last_name="Ther", email="other@example.com")],
            )

    @pytest.mark.asyncio
    async def test_nameless_and_duplicate_descriptors(self, db_session, seed, linker, student_id) -> None:
        """Test that nameless descriptors are skipped and duplicates applied once."""
        summaries = await linker.sync_guardians(
            db_session,
            student_id,
            seed.establishment_id,
            [
                GuardianDescriptor(email="noname@example.com"),
                GuardianDescriptor(first_name="Anne", last_name="Dupont", email="anne@example.com"),
                GuardianDescriptor(first_name="Anne", last_name="Dupont", email="Anne@example.com"),
            ],
        )

        assert [s.email for s in summaries] == ["anne@example.com"]
        assert len(await _links(db_session, student_id)) == 1

    @pytest.mark.asyncio
    async def test_resync_updates_link(self, db_session, seed, linker, student_id) -> None:
        """Test that syncing twice merges into the same link."""
        descriptor = GuardianDescriptor(first_name="Anne", last_name="Dupont", email="anne@example.com")
        await linker.sync_guardians(db_session, student_id, seed.establishment_id, [descriptor])

        await linker.sync_guardians(
            db_session,
            student_id,
            seed.establishment_id,
            [descriptor.model_copy(update={"is_primary": True, "receive_notifications": False})],
        )

        links = await _links(db_session, student_id)
        assert len(links) == 1
        assert links[0].is_primary is True
        assert links[0].receive_notifications is False


class TestLinkExistingGuardian:
    """Tests for GuardianLinker.link_existing_guardian."""

    @pytest.mark.asyncio
    async def test_primary_link_with_every_flag(self, db_session, seed, linker, student_id) -> None:
        """Test the defaults applied when linking an existing guardian."""
        guardian = _account("anne@example.com", "guardian", seed.establishment_id, full_name="Anne Dupont")
        db_session.add(guardian)
        await db_session.flush()

        summary = await linker.link_existing_guardian(db_session, student_id, guardian)

        assert summary.is_new_account is False
        assert summary.full_name == "Anne Dupont"
        links = await _links(db_session, student_id)
        assert links[0].relation_type == "guardian"
        assert links[0].is_primary is True
        assert links[0].receive_notifications is True
        profile = await db_session.get(GuardianProfile, guardian.id)
        assert profile.is_primary_contact is True
        assert profile.can_view_grades is True


class TestRecomputeGuardianActiveStatus:
    """Tests for GuardianLinker.recompute_guardian_active_status."""

    @pytest.mark.asyncio
    async def test_guardian_with_active_student_stays_active(self, db_session, seed, linker, student_id) -> None:
        guardian = _account("anne@example.com", "guardian", seed.establishment_id)
        db_session.add(guardian)
        await db_session.flush()
        await linker.link_existing_guardian(db_session, student_id, guardian)

        count, deactivated = await linker.recompute_guardian_active_status(db_session, guardian.id)

        assert (count, deactivated) == (1, False)
        assert guardian.is_active is True

    @pytest.mark.asyncio
    async def test_guardian_without_active_student_is_deactivated(self, db_session, seed, linker, student_id) -> None:
        guardian = _account("anne@example.com", "guardian", seed.establishment_id)
        db_session.add(guardian)
        await db_session.flush()
        await linker.link_existing_guardian(db_session, student_id, guardian)
        student = await db_session.get(Account, student_id)
        student.is_active = False
        await db_session.flush()

        count, deactivated = await linker.recompute_guardian_active_status(db_session, guardian.id)

        assert (count, deactivated) == (0, True)
        assert guardian.is_active is False

        _, again = await linker.recompute_guardian_active_status(db_session, guardian.id)
        assert again is False
