# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Participant - Bus service answering the backup orchestrator.

The orchestrator calls two methods on ``com.palm.appDataBackup``:

- ``preBackup`` before a backup: the participant replies with a manifest
  listing the files that should be archived.
- ``postRestore`` after the files were put back on disk: the participant
  acknowledges. Ordinary files need no post-processing; only specialized
  stores such as embedded databases would, and those are handled by the
  database dump subsystem, which reports back through the lifecycle
  observers below.

Handlers run on the event loop the service is attached to, one at a time,
and never await.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Protocol

import structlog

from appdatabackup.bus import BusConnection, BusMessage, MethodHandler, ServiceBus, ServiceHandle
from appdatabackup.config import ParticipantConfig
from appdatabackup.exceptions import AlreadyInitializedError, BusError
from appdatabackup.schemas import (
    BackupManifest,
    RestoreAck,
    SchemaError,
    Valid,
    validate_restore_request,
)

PRE_BACKUP = "preBackup"
POST_RESTORE = "postRestore"


@dataclass(frozen=True)
class DbBackupStatus:
    """Status reported by the database dump/restore subsystem."""

    url: str
    err: int = 0


@dataclass(frozen=True)
class ParticipantState:
    """Snapshot of the participant's fixed state."""

    registered: bool
    include_files: bool
    include_cookies: bool


class BackupRequestHandler(Protocol):
    """One method per bus operation the orchestrator calls."""

    def handle_prepare_backup(self, message: BusMessage) -> bool:
        ...

    def handle_confirm_restore(self, message: BusMessage) -> bool:
        ...


def method_table(handler: BackupRequestHandler) -> Dict[str, MethodHandler]:
    """Map bus method names to the handler's operations."""
    return {
        PRE_BACKUP: handler.handle_prepare_backup,
        POST_RESTORE: handler.handle_confirm_restore,
    }


class BackupParticipant:
    """
    The app data backup service.

    Construct it once during startup and call initialize() with the loop
    that drives the bus. A participant is initialized at most once.
    """

    def __init__(
        self,
        bus: ServiceBus,
        config: ParticipantConfig | None = None,
        logger: Any = None,
    ):
        self.config = config or ParticipantConfig()
        self._bus = bus
        self._logger = logger or structlog.get_logger()
        self._initialized = False
        self._handle: ServiceHandle | None = None
        self._connection: BusConnection | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def registered(self) -> bool:
        return self._handle is not None

    @property
    def include_files(self) -> bool:
        return self.config.include_files

    @property
    def include_cookies(self) -> bool:
        return self.config.include_cookies

    @property
    def private_connection(self) -> BusConnection | None:
        """Connection for messages the participant initiates itself."""
        return self._connection

    @property
    def state(self) -> ParticipantState:
        return ParticipantState(
            registered=self.registered,
            include_files=self.include_files,
            include_cookies=self.include_cookies,
        )

    # ========================================================================
    # Registration
    # ========================================================================

    def initialize(self, loop: asyncio.AbstractEventLoop) -> bool:
        """
        Register on the bus and attach to the event loop.

        Steps:
        1. Register the service name
        2. Bind preBackup/postRestore under the configured category
        3. Attach the service's message pump to ``loop``
        4. Obtain the private connection

        Any failing step is logged, the partial registration is released
        and False is returned. The caller is expected to abort startup.

        Args:
            loop: Event loop that will run the handlers

        Returns:
            True if the participant is registered

        Raises:
            AlreadyInitializedError: If called a second time
        """
        if self._initialized:
            raise AlreadyInitializedError(
                "Backup participant is already initialized",
                details={"service": self.config.service_name},
            )
        self._initialized = True

        name = self.config.service_name

        try:
            handle = self._bus.register_service(name)
        except BusError as e:
            self._logger.warning("bus_registration_failed", service=name, error=str(e))
            return False

        try:
            handle.register_category(self.config.category, method_table(self))
        except BusError as e:
            self._logger.warning(
                "bus_category_registration_failed",
                service=name,
                category=self.config.category,
                error=str(e),
            )
            self._release(handle)
            return False

        try:
            handle.attach(loop)
        except BusError as e:
            self._logger.warning("bus_attach_failed", service=name, error=str(e))
            self._release(handle)
            return False

        connection = handle.get_private_connection()
        if connection is None:
            self._logger.warning("bus_private_connection_unavailable", service=name)
            self._release(handle)
            return False

        self._handle = handle
        self._connection = connection
        self._loop = loop

        self._logger.info(
            "backup_participant_registered",
            service=name,
            category=self.config.category,
            include_files=self.include_files,
            include_cookies=self.include_cookies,
        )
        return True

    def shutdown(self) -> None:
        """Unregister from the bus. The participant is not reused afterwards."""
        if self._handle is None:
            return

        handle = self._handle
        self._handle = None
        self._connection = None
        self._release(handle)

        self._logger.info("backup_participant_unregistered", service=self.config.service_name)

    def _release(self, handle: ServiceHandle) -> None:
        try:
            handle.unregister()
        except BusError as e:
            self._logger.warning(
                "bus_unregister_failed",
                service=self.config.service_name,
                error=str(e),
            )

    # ========================================================================
    # Bus methods
    # ========================================================================

    def build_manifest(self) -> BackupManifest:
        """
        Build the list of files to back up.

        The cookie export is listed only when cookie backup is enabled and
        the export exists as a regular file at call time. Other file
        categories are contributed by sibling services.
        """
        files = []

        if self.include_cookies:
            cookie_file = self.config.cookie_temp_file
            if cookie_file.is_file():
                files.append(str(cookie_file))
                self._logger.debug("cookie_file_added", path=str(cookie_file))

        return BackupManifest(
            description=self.config.description,
            version=self.config.version,
            files=tuple(files),
        )

    def handle_prepare_backup(self, message: BusMessage) -> bool:
        """
        preBackup: reply with the backup manifest.

        The request may carry incrementalKey, maxTempBytes and tempDir.
        None of them is needed, so the payload is not parsed.
        """
        manifest = self.build_manifest()

        try:
            payload = manifest.to_json()
        except (TypeError, ValueError) as e:
            self._logger.error("pre_backup_serialization_failed", error=str(e))
            return True

        self._logger.info("pre_backup_reply_sending", token=message.token, payload=payload)
        self._send_reply(message, payload, PRE_BACKUP)
        return True

    def handle_confirm_restore(self, message: BusMessage) -> bool:
        """
        postRestore: acknowledge the restored files.

        Payloads not shaped like ``{"files": [...]}`` get a schema error
        reply and are not acknowledged.
        """
        match validate_restore_request(message.payload):
            case SchemaError() as error:
                self._logger.warning(
                    "post_restore_schema_invalid",
                    token=message.token,
                    error=error.error_text,
                )
                self._send_reply(message, error.to_reply().to_json(), POST_RESTORE)
                return True
            case Valid(request=request):
                self._logger.info(
                    "post_restore_received",
                    token=message.token,
                    files=len(request.files),
                )

        # Restored regular files need no further work.
        try:
            payload = RestoreAck(return_value=True).to_json()
        except (TypeError, ValueError) as e:
            self._logger.error("post_restore_serialization_failed", error=str(e))
            return True

        self._logger.info("post_restore_reply_sending", token=message.token, payload=payload)
        self._send_reply(message, payload, POST_RESTORE)
        return True

    def _send_reply(self, message: BusMessage, payload: str, method: str) -> None:
        try:
            message.reply(payload)
        except BusError as e:
            self._logger.warning(
                "reply_send_failed",
                method=method,
                token=message.token,
                error=str(e),
            )

    # ========================================================================
    # Database dump/restore observers
    # ========================================================================

    def db_dump_started(self, status: DbBackupStatus, user_data: Any = None) -> None:
        self._logger.info("db_dump_started", url=status.url, err=status.err)

    def db_dump_stopped(self, status: DbBackupStatus, user_data: Any = None) -> None:
        self._logger.info("db_dump_stopped", url=status.url, err=status.err)

    def db_restore_started(self, status: DbBackupStatus, user_data: Any = None) -> None:
        self._logger.info("db_restore_started", url=status.url, err=status.err)

    def db_restore_stopped(self, status: DbBackupStatus, user_data: Any = None) -> None:
        self._logger.info("db_restore_stopped", url=status.url, err=status.err)
