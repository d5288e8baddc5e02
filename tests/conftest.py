# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests (settings, mocks)
- Integration tests (file-backed SQLite database with savepoints)
"""

from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.core.config.settings import (
    DatabaseSettings,
    InvitationSettings,
    ProvisioningSettings,
    Settings,
    StudentImportSettings,
)
from src.infrastructure.database.connection import build_engine, build_sessionmaker
from src.infrastructure.database.migrations.runner import run_migrations
from src.infrastructure.database.models import Establishment, SchoolClass


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (uses a real database)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def database_path(tmp_path: Path) -> Path:
    """Provide a per-test SQLite database file."""
    return tmp_path / "provisioning.db"


@pytest.fixture
def test_settings(database_path: Path) -> Settings:
    """Provide settings pointing at a throwaway SQLite database.

    bcrypt rounds are lowered so that account creation stays fast.
    """
    return Settings(
        environment="development",
        debug=True,
        log_level="DEBUG",
        db=DatabaseSettings(url_override=f"sqlite+aiosqlite:///{database_path}"),
        provisioning=ProvisioningSettings(
            login_email_base_domain="school.local",
            bcrypt_rounds=4,
        ),
        student_import=StudentImportSettings(max_rows=50, max_bytes=64_000),
        invitation=InvitationSettings(
            activation_base_url="https://app.example.org/first-login",
            token_ttl_hours=24,
        ),
    )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Migrate a fresh SQLite database with the shipped schema scripts."""
    await run_migrations(test_settings.db.url)
    engine = build_engine(test_settings)

    yield engine

    await engine.dispose()


@pytest.fixture
def db_sessionmaker(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Provide the session factory the services share."""
    return build_sessionmaker(db_engine)


@pytest_asyncio.fixture
async def db_session(
    db_sessionmaker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a session for direct reads and seeding."""
    async with db_sessionmaker() as session:
        yield session
        await session.rollback()


@dataclass
class SeedData:
    """Identifiers of the seeded establishments and classes."""

    establishment_id: str
    domain: str
    class_ids: dict[str, str] = field(default_factory=dict)
    other_establishment_id: str | None = None


@pytest_asyncio.fixture
async def seed(db_sessionmaker: async_sessionmaker[AsyncSession]) -> SeedData:
    """Seed one establishment with two classes, plus a second establishment."""
    async with db_sessionmaker() as session:
        establishment = Establishment(
            code="LYC-HUGO",
            name="Lycée Victor Hugo",
            display_name="Lycée Victor Hugo",
            login_email_domain="hugo.example.org",
            default_locale="fr",
            academic_year_start_month=9,
        )
        other = Establishment(
            code="COL-SAND",
            name="Collège George Sand",
            default_locale="en",
        )
        session.add_all([establishment, other])
        await session.flush()

        classes = [
            SchoolClass(establishment_id=establishment.id, code="3A", label="Troisième A"),
            SchoolClass(establishment_id=establishment.id, code="4B", label="Quatrième B"),
            SchoolClass(establishment_id=other.id, code="3A", label="Third A"),
        ]
        session.add_all(classes)
        await session.commit()

        return SeedData(
            establishment_id=establishment.id,
            domain="hugo.example.org",
            class_ids={"3A": classes[0].id, "4B": classes[1].id, "other-3A": classes[2].id},
            other_establishment_id=other.id,
        )
