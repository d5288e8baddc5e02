# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pydantic request and result models.

- provisioning: single student creation, guardians, pending side effects
- student_import: bulk import requests, per-row results and summary
"""
