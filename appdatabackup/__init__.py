# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
App Data Backup - Backup/restore participant for a system-management service.

Registers ``com.palm.appDataBackup`` on the local service bus, tells the
backup orchestrator which files to archive (preBackup) and acknowledges
restored files (postRestore). Package name: appdatabackup.
"""

__version__ = "0.1.0"

from appdatabackup.bus import LocalBus
from appdatabackup.config import ParticipantConfig
from appdatabackup.env import create_config_from_env
from appdatabackup.participant import (
    BackupParticipant,
    DbBackupStatus,
    ParticipantState,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "ParticipantConfig",
    "create_config_from_env",
    # Participant
    "BackupParticipant",
    "DbBackupStatus",
    "ParticipantState",
    # Transport
    "LocalBus",
]
