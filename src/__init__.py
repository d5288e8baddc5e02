"""Student account provisioning engine.

Creates student login identities, academic profiles, class enrollments and
guardian links, one student at a time or as a bulk tabular import.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
