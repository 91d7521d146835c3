# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
App Data Backup Exceptions - Custom exceptions for the appdatabackup package.
"""


class AppDataBackupError(Exception):
    """Base exception for all appdatabackup errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(AppDataBackupError):
    """Raised when configuration is invalid."""

    pass


class RegistrationError(AppDataBackupError):
    """Raised when the participant cannot be brought up on the bus."""

    pass


class AlreadyInitializedError(AppDataBackupError):
    """Raised when a participant is initialized a second time."""

    pass


class BusError(AppDataBackupError):
    """Raised when message bus operations fail."""

    pass


class BusTimeoutError(BusError):
    """Raised when a bus call gets no reply in time."""

    pass
