# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Provisioning schema migrations.

Contains migrations for:
- establishments, classes: Tenant scope and class directory
- accounts, student_profiles, class_enrollments: Student identity
- guardian_profiles, student_guardian_links: Guardian identity and links
- identifier_counters: Human-readable code sequences
- invitation_tokens, audit_logs: Deferred side effects
"""
