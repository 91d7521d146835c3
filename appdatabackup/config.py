# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Participant Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation. The inclusion
flags are fixed for the lifetime of a participant; there is no runtime
reconfiguration.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List
import re


DEFAULT_SERVICE_NAME = "com.palm.appDataBackup"
DEFAULT_CATEGORY = "/"
DEFAULT_DESCRIPTION = (
    "Backup of LunaSysMgr files for launcher, quicklaunch, dockmode and sysmgr cookies"
)
DEFAULT_VERSION = "1.0"

# The cookie database is dumped through the same API as HTML5 databases;
# this phony app id identifies the cookie entry for the dump subsystem.
COOKIE_APP_ID = "com.palm.luna-sysmgr.cookies"
COOKIE_TEMP_FILE = Path("/tmp/com.palm.luna-sysmgr.cookies-html5-backup.sql")


def _validate_service_name(name: str) -> bool:
    """
    Validate a bus service name.

    Rules:
    - At least two dot-separated segments
    - Segments start with a letter and hold letters, digits, '-' or '_'
    """
    if not name:
        return False
    return re.match(r"^[A-Za-z][\w-]*(\.[A-Za-z][\w-]*)+$", name) is not None


@dataclass(frozen=True)
class ParticipantConfig:
    """
    Immutable configuration for the backup participant.
    """

    # Name the participant registers under on the bus
    service_name: str = DEFAULT_SERVICE_NAME

    # Category the handlers are bound to
    category: str = DEFAULT_CATEGORY

    # Human readable manifest description
    description: str = DEFAULT_DESCRIPTION

    # Manifest version reported to the orchestrator
    version: str = DEFAULT_VERSION

    # Back up ordinary files (contributed by sibling components)
    include_files: bool = True

    # Back up the exported cookie database
    include_cookies: bool = True

    # Where the cookie database dump is written before a backup
    cookie_temp_file: Path = field(default_factory=lambda: COOKIE_TEMP_FILE)

    # App id used by the database dump subsystem for the cookie entry
    cookie_app_id: str = COOKIE_APP_ID

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        from appdatabackup.errors import (
            explain_invalid_service_name,
            explain_relative_cookie_file,
        )

        errors: List[str] = []

        if not _validate_service_name(self.service_name):
            errors.append(explain_invalid_service_name(self.service_name))

        if not self.category.startswith("/"):
            errors.append(f"category must start with '/', got {self.category!r}")

        if not self.description:
            errors.append("description must not be empty")

        if not self.version:
            errors.append("version must not be empty")

        if not Path(self.cookie_temp_file).is_absolute():
            errors.append(explain_relative_cookie_file(str(self.cookie_temp_file)))

        if not self.cookie_app_id:
            errors.append("cookie_app_id must not be empty")

        # Raise all errors at once
        if errors:
            from appdatabackup.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    def with_updates(self, **kwargs) -> "ParticipantConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return ParticipantConfig(**current)
