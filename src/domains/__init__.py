# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for the provisioning engine.

This package contains domain services that encapsulate business logic.

Domains:
    identifier: Student codes and login email allocation.
    guardian: Guardian creation, reuse and linking.
    provisioning: Single student creation and deferred side effects.
    student_import: Bulk tabular student import.
    auth: Password hashing and activation tokens.
    audit: Audit trail persistence.
"""
