# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI gateway for the backup participant.
"""

from appdatabackup.integrations.fastapi import (
    setup_participant_plugin,
    participant_lifespan,
    register_bus_routes,
    verify_api_key,
)

__all__ = [
    "setup_participant_plugin",
    "participant_lifespan",
    "register_bus_routes",
    "verify_api_key",
]
