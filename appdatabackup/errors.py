# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for the app data backup participant.

These helpers centralize wording for common configuration errors so that
all modules present consistent, actionable messages.
"""


def explain_invalid_bool_env(name: str, value: str | None) -> str:
    """
    Explain that a boolean environment variable could not be parsed.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        "Expected one of: 1/0, true/false, yes/no, on/off."
    )


def explain_invalid_service_name(value: str | None) -> str:
    """
    Explain that the bus service name is malformed.
    """

    return (
        f"Invalid service name: {value!r}. "
        "Bus service names are dotted identifiers such as 'com.palm.appDataBackup'."
    )


def explain_relative_cookie_file(value: str | None) -> str:
    """
    Explain that the cookie export path must be absolute.
    """

    return (
        f"Invalid cookie export file: {value!r}. "
        "The backup orchestrator only accepts absolute paths. "
        "Set APPDATABACKUP_COOKIE_FILE to an absolute path or leave it unset."
    )
