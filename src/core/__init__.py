# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core package for the provisioning engine.

This package contains application-wide wiring:
- config: Application configuration and settings
- bootstrap: Construction of the provisioning services
"""
