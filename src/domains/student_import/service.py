# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bulk student import.

StudentImportService validates a tabular payload, resolves classes and
existing guardians once for the whole batch, then creates each valid row
through StudentAccountService. Rows are independent: each creation runs
in its own session and top-level transaction, so a failing row never
affects the rows around it.

Example:
    >>> importer = StudentImportService(sessionmaker, student_accounts, settings.student_import)
    >>> preview = await importer.preview(request)
    >>> if preview.summary.errors == 0:
    ...     result = await importer.commit(request)
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config.settings import StudentImportSettings
from src.domains.guardian.service import GuardianLinkError
from src.domains.identifier.service import IdentifierAllocationError
from src.domains.provisioning.service import EmailAlreadyExistsError, ProvisioningError
from src.domains.provisioning.student_accounts import StudentAccountService
from src.domains.student_import.parser import (
    ImportRow,
    is_valid_email,
    parse_date,
    parse_rows,
)
from src.infrastructure.database.models.account import Account, AccountRole
from src.infrastructure.database.models.establishment import SchoolClass
from src.models.provisioning import CreateStudentRequest, GuardianDescriptor
from src.models.student_import import (
    ImportRowResult,
    ImportRowStatus,
    ImportSummary,
    StudentImportRequest,
    StudentImportResult,
)
from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)


class StudentImportError(Exception):
    """Base exception for batch-level import failures."""

    pass


class ImportPayloadTooLargeError(StudentImportError):
    """Raised when the payload exceeds the configured size."""

    pass


class ImportTooManyRowsError(StudentImportError):
    """Raised when the payload has more data rows than allowed."""

    pass


class EmptyImportError(StudentImportError):
    """Raised when the payload holds no data row."""

    pass


class InvalidDefaultClassError(StudentImportError):
    """Raised when the default class is not a class of the establishment."""

    pass


@dataclass
class ImportDirectory:
    """Lookups resolved once per batch."""

    classes_by_code: dict[str, str] = field(default_factory=dict)
    classes_by_label: dict[str, str] = field(default_factory=dict)
    existing_login_emails: set[str] = field(default_factory=set)
    guardians_by_email: dict[str, str] = field(default_factory=dict)


class StudentImportService:
    """Orchestrates the validation and creation of a batch of students.

    Attributes:
        _sessionmaker: Factory for the pre-resolution session.
        _accounts: Single student creation service.
        _settings: Batch limits.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        student_accounts: StudentAccountService,
        settings: StudentImportSettings,
    ) -> None:
        """Initialize the import service.

        Args:
            sessionmaker: Session factory bound to the shared engine.
            student_accounts: Service creating one student per call.
            settings: Import limits.
        """
        self._sessionmaker = sessionmaker
        self._accounts = student_accounts
        self._settings = settings

    async def preview(self, request: StudentImportRequest) -> StudentImportResult:
        """Validate and simulate a batch without persisting or sending anything."""
        return await self.import_students(
            request.model_copy(update={"dry_run": True, "send_invitations": False})
        )

    async def commit(self, request: StudentImportRequest) -> StudentImportResult:
        """Create every valid row of a batch."""
        return await self.import_students(request.model_copy(update={"dry_run": False}))

    async def import_students(self, request: StudentImportRequest) -> StudentImportResult:
        """Import a batch of students.

        Args:
            request: Payload, target establishment and batch options.

        Returns:
            Per-row results and the batch summary.

        Raises:
            ImportPayloadTooLargeError: If the payload is too large.
            ImportTooManyRowsError: If there are too many data rows.
            EmptyImportError: If there is no data row.
            InvalidDefaultClassError: If the default class is unknown.
        """
        if len(request.csv_data.encode("utf-8")) > self._settings.max_bytes:
            raise ImportPayloadTooLargeError(
                f"Import payload exceeds {self._settings.max_bytes} bytes"
            )

        rows = parse_rows(request.csv_data)
        if len(rows) > self._settings.max_rows:
            raise ImportTooManyRowsError(
                f"Import has {len(rows)} rows, the maximum is {self._settings.max_rows}"
            )
        if not rows:
            raise EmptyImportError("Import payload contains no student row")

        bind_context(
            establishment_id=request.establishment_id,
            import_dry_run=request.dry_run,
        )
        try:
            directory = await self._load_directory(request, rows)

            logger.info(
                "Importing %d rows into establishment %s (dry_run=%s)",
                len(rows),
                request.establishment_id,
                request.dry_run,
            )

            seen_login_emails: set[str] = set()
            results = []
            for row in rows:
                results.append(
                    await self._import_row(request, row, directory, seen_login_emails)
                )
        finally:
            clear_context()

        summary = ImportSummary(
            total=len(results),
            ok=sum(1 for r in results if r.status == ImportRowStatus.OK),
            warnings=sum(1 for r in results if r.status == ImportRowStatus.WARNING),
            errors=sum(1 for r in results if r.status == ImportRowStatus.ERROR),
            created_count=sum(1 for r in results if r.created),
        )
        logger.info(
            "Import finished: %d ok, %d warnings, %d errors, %d created",
            summary.ok,
            summary.warnings,
            summary.errors,
            summary.created_count,
        )
        return StudentImportResult(dry_run=request.dry_run, summary=summary, rows=results)

    async def _load_directory(
        self,
        request: StudentImportRequest,
        rows: list[ImportRow],
    ) -> ImportDirectory:
        """Resolve classes, taken login emails and existing guardians."""
        directory = ImportDirectory()

        login_emails = {
            row.login_email.lower() for row in rows if is_valid_email(row.login_email)
        }
        guardian_emails = {
            row.existing_guardian_email.lower()
            for row in rows
            if is_valid_email(row.existing_guardian_email)
        }

        async with self._sessionmaker() as session:
            classes = await session.execute(
                select(SchoolClass.id, SchoolClass.code, SchoolClass.label).where(
                    SchoolClass.establishment_id == request.establishment_id
                )
            )
            class_ids = set()
            for class_id, code, label in classes.all():
                class_ids.add(class_id)
                directory.classes_by_code[code.strip().lower()] = class_id
                directory.classes_by_label[label.strip().lower()] = class_id

            if request.default_class_id and request.default_class_id not in class_ids:
                raise InvalidDefaultClassError(
                    f"Default class {request.default_class_id} does not belong to "
                    f"establishment {request.establishment_id}"
                )

            if login_emails:
                taken = await session.execute(
                    select(func.lower(Account.email)).where(
                        func.lower(Account.email).in_(login_emails)
                    )
                )
                directory.existing_login_emails = set(taken.scalars().all())

            if guardian_emails:
                guardians = await session.execute(
                    select(Account.id, Account.email).where(
                        Account.role == AccountRole.GUARDIAN.value,
                        Account.establishment_id == request.establishment_id,
                        func.lower(Account.email).in_(guardian_emails),
                    )
                )
                directory.guardians_by_email = {
                    email.lower(): account_id for account_id, email in guardians.all()
                }

        return directory

    def _validate_row(
        self,
        request: StudentImportRequest,
        row: ImportRow,
        directory: ImportDirectory,
        seen_login_emails: set[str],
    ) -> None:
        """Collect every violation of a row into its errors and warnings."""
        if not row.full_name:
            row.errors.append("full_name is required")

        if not row.contact_email:
            row.errors.append("contact_email is required")
        elif not is_valid_email(row.contact_email):
            row.errors.append(f"contact_email '{row.contact_email}' is invalid")

        if row.login_email:
            login = row.login_email.lower()
            if not is_valid_email(row.login_email):
                row.errors.append(f"login_email '{row.login_email}' is invalid")
            elif login in seen_login_emails:
                row.errors.append(f"login_email '{row.login_email}' is duplicated in the file")
            else:
                seen_login_emails.add(login)

        if row.date_of_birth:
            row.parsed_date_of_birth = parse_date(row.date_of_birth)
            if row.parsed_date_of_birth is None:
                row.errors.append(
                    f"date_of_birth '{row.date_of_birth}' is invalid (expected YYYY-MM-DD)"
                )

        if row.class_code:
            row.class_id = directory.classes_by_code.get(row.class_code.lower())
            if row.class_id is None:
                row.errors.append(f"class_code '{row.class_code}' not found")
        elif row.class_label:
            row.class_id = directory.classes_by_label.get(row.class_label.lower())
            if row.class_id is None:
                row.errors.append(f"class_label '{row.class_label}' not found")
        elif request.default_class_id:
            row.class_id = request.default_class_id
        else:
            row.errors.append("no class defined (class_code, class_label or default class)")

        if row.existing_guardian_email:
            if not is_valid_email(row.existing_guardian_email):
                row.warnings.append(
                    f"existing_guardian_email '{row.existing_guardian_email}' is invalid, ignored"
                )
            else:
                row.existing_guardian_id = directory.guardians_by_email.get(
                    row.existing_guardian_email.lower()
                )
                if row.existing_guardian_id is None:
                    row.warnings.append(
                        f"No guardian found for '{row.existing_guardian_email}', "
                        "a new guardian will be created"
                    )

    def _build_request(
        self,
        request: StudentImportRequest,
        row: ImportRow,
        seen_login_emails: set[str],
    ) -> CreateStudentRequest:
        guardians = []
        if not row.existing_guardian_id and row.guardian_first_name and row.guardian_last_name:
            guardians.append(
                GuardianDescriptor(
                    first_name=row.guardian_first_name,
                    last_name=row.guardian_last_name,
                    relation_type="guardian",
                    is_primary=True,
                    can_view_grades=True,
                    can_view_attendance=True,
                    receive_notifications=True,
                    contact_email=row.contact_email,
                )
            )

        return CreateStudentRequest(
            establishment_id=request.establishment_id,
            full_name=row.full_name,
            class_id=row.class_id,
            date_of_birth=row.parsed_date_of_birth,
            student_number=row.student_number,
            contact_email=row.contact_email,
            login_email=row.login_email,
            guardians=guardians,
            reserved_login_emails=sorted(seen_login_emails),
            existing_guardian_id=row.existing_guardian_id,
            auto_derive_guardian_from_contact=True,
            send_invitations=request.send_invitations,
            dry_run=request.dry_run,
            strict=False,
            actor=request.actor,
        )

    async def _import_row(
        self,
        request: StudentImportRequest,
        row: ImportRow,
        directory: ImportDirectory,
        seen_login_emails: set[str],
    ) -> ImportRowResult:
        """Validate and create one row. Never raises."""
        self._validate_row(request, row, directory, seen_login_emails)

        if row.has_errors:
            return self._row_result(row, ImportRowStatus.ERROR, error=" | ".join(row.errors))

        if row.login_email and row.login_email.lower() in directory.existing_login_emails:
            row.warnings.append(
                f"login_email '{row.login_email}' already exists, row skipped"
            )
            return self._row_result(row, ImportRowStatus.WARNING)

        try:
            result = await self._accounts.create_student(
                self._build_request(request, row, seen_login_emails)
            )
        except EmailAlreadyExistsError as e:
            message = f"Cannot create the student: email {e.email} is already used"
            logger.warning("Row %d rejected: %s", row.row_number, message)
            return self._row_result(row, ImportRowStatus.ERROR, error=message)
        except (ProvisioningError, GuardianLinkError, IdentifierAllocationError) as e:
            logger.warning("Row %d rejected: %s", row.row_number, e)
            return self._row_result(row, ImportRowStatus.ERROR, error=str(e))
        except Exception:
            logger.exception("Row %d failed unexpectedly", row.row_number)
            return self._row_result(
                row,
                ImportRowStatus.ERROR,
                error="Unexpected error while creating the student",
            )

        # Later rows must not reuse a login this row now holds
        seen_login_emails.add(result.account.email.lower())

        row.warnings.extend(result.warnings)
        return self._row_result(
            row,
            ImportRowStatus.WARNING if row.warnings else ImportRowStatus.OK,
            created=request.dry_run or result.created,
            account_id=result.account.id,
            generated_login_email=result.account.email,
        )

    def _row_result(
        self,
        row: ImportRow,
        status: ImportRowStatus,
        error: str | None = None,
        created: bool = False,
        account_id: str | None = None,
        generated_login_email: str | None = None,
    ) -> ImportRowResult:
        row.status = status
        return ImportRowResult(
            row_number=row.row_number,
            full_name=row.full_name,
            contact_email=row.contact_email,
            login_email=row.login_email,
            student_number=row.student_number,
            date_of_birth=row.date_of_birth,
            class_code=row.class_code,
            class_label=row.class_label,
            class_id=row.class_id,
            existing_guardian_email=row.existing_guardian_email,
            existing_guardian_id=row.existing_guardian_id,
            guardian_first_name=row.guardian_first_name,
            guardian_last_name=row.guardian_last_name,
            status=status,
            created=created,
            warnings=list(row.warnings),
            error=error,
            account_id=account_id,
            generated_login_email=generated_login_email,
        )
