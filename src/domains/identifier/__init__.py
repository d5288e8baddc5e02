# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identifier allocation domain package.

This package provides unique identifier generation:
- Human-readable codes from atomic per-period counters
- Login emails derived from names and establishment domains
"""

from src.domains.identifier.service import (
    EstablishmentNotFoundError,
    IdentifierAllocationError,
    IdentifierAllocator,
    academic_period,
    clean_last_name,
    clean_segment,
    login_candidates,
    slugify,
    split_full_name,
)

__all__ = [
    "IdentifierAllocator",
    "IdentifierAllocationError",
    "EstablishmentNotFoundError",
    "academic_period",
    "clean_last_name",
    "clean_segment",
    "login_candidates",
    "slugify",
    "split_full_name",
]
