# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

Builds a ParticipantConfig from a small set of well-known environment
variables so that the hosting process can tune the participant without
code changes.
"""

from __future__ import annotations

import os
from pathlib import Path

from appdatabackup.config import COOKIE_TEMP_FILE, DEFAULT_SERVICE_NAME, ParticipantConfig
from appdatabackup.errors import explain_invalid_bool_env
from appdatabackup.exceptions import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(name: str, value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(explain_invalid_bool_env(name, value))


def create_config_from_env() -> ParticipantConfig:
    """
    Create a ParticipantConfig from environment variables.

    Optional environment variables:
        - APPDATABACKUP_SERVICE_NAME: bus name (default: com.palm.appDataBackup)
        - APPDATABACKUP_INCLUDE_FILES: back up ordinary files (default: true)
        - APPDATABACKUP_INCLUDE_COOKIES: back up the cookie export (default: true)
        - APPDATABACKUP_COOKIE_FILE: absolute path of the cookie export file
    """

    service_name = os.getenv("APPDATABACKUP_SERVICE_NAME") or DEFAULT_SERVICE_NAME
    include_files = _parse_bool(
        "APPDATABACKUP_INCLUDE_FILES", os.getenv("APPDATABACKUP_INCLUDE_FILES"), True
    )
    include_cookies = _parse_bool(
        "APPDATABACKUP_INCLUDE_COOKIES", os.getenv("APPDATABACKUP_INCLUDE_COOKIES"), True
    )
    cookie_file_env = os.getenv("APPDATABACKUP_COOKIE_FILE")
    cookie_temp_file = Path(cookie_file_env) if cookie_file_env else COOKIE_TEMP_FILE

    return ParticipantConfig(
        service_name=service_name,
        include_files=include_files,
        include_cookies=include_cookies,
        cookie_temp_file=cookie_temp_file,
    )
