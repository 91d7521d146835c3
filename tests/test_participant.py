# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Participant Tests.

These tests verify the contract with the backup orchestrator:
1. preBackup always replies with description, version and files
2. The cookie export is listed only when it exists as a regular file
3. postRestore acknowledges well-formed requests
4. postRestore rejects malformed requests with a schema error
5. A participant is initialized at most once
6. Lifecycle observers only log
"""

import asyncio
import json
from pathlib import Path

import pytest

from appdatabackup.bus import LocalBus
from appdatabackup.config import DEFAULT_DESCRIPTION
from appdatabackup.exceptions import AlreadyInitializedError
from appdatabackup.participant import BackupParticipant, DbBackupStatus

from tests.conftest import RecordingMessage


def _pre_backup(participant) -> str:
    message = RecordingMessage("{}", "preBackup")
    assert participant.handle_prepare_backup(message) is True
    assert len(message.replies) == 1
    return message.replies[0]


def _post_restore(participant, payload: str | bytes) -> dict:
    message = RecordingMessage(payload, "postRestore")
    assert participant.handle_confirm_restore(message) is True
    assert len(message.replies) == 1
    return json.loads(message.replies[0])


# ============================================================================
# preBackup
# ============================================================================

def test_pre_backup_without_cookie_file_lists_no_files(participant):
    reply = json.loads(_pre_backup(participant))

    assert reply == {
        "description": DEFAULT_DESCRIPTION,
        "version": "1.0",
        "files": [],
    }


def test_pre_backup_with_cookie_file_lists_it(participant, cookie_file: Path):
    cookie_file.write_text("CREATE TABLE cookies (name TEXT);\n")

    reply = json.loads(_pre_backup(participant))

    assert reply["files"] == [str(cookie_file)]
    assert reply["version"] == "1.0"
    assert reply["description"] == DEFAULT_DESCRIPTION


def test_pre_backup_ignores_cookie_directory(participant, cookie_file: Path):
    cookie_file.mkdir()

    reply = json.loads(_pre_backup(participant))

    assert reply["files"] == []


def test_pre_backup_ignores_dangling_symlink(participant, cookie_file: Path, temp_dir: Path):
    cookie_file.symlink_to(temp_dir / "missing.sql")

    reply = json.loads(_pre_backup(participant))

    assert reply["files"] == []


def test_pre_backup_skips_cookies_when_disabled(test_config, recording_logger, cookie_file: Path):
    cookie_file.write_text("dump")
    participant = BackupParticipant(
        LocalBus(), test_config.with_updates(include_cookies=False), logger=recording_logger
    )

    reply = json.loads(_pre_backup(participant))

    assert reply["files"] == []


def test_pre_backup_ignores_request_fields(participant):
    message = RecordingMessage(
        json.dumps({"incrementalKey": {"rev": 3}, "maxTempBytes": 10485760, "tempDir": "/tmp/bk"}),
        "preBackup",
    )

    participant.handle_prepare_backup(message)

    assert json.loads(message.replies[0])["files"] == []


def test_pre_backup_accepts_non_json_payload(participant):
    message = RecordingMessage("not json at all", "preBackup")

    participant.handle_prepare_backup(message)

    assert json.loads(message.replies[0])["version"] == "1.0"


def test_pre_backup_is_idempotent(participant, cookie_file: Path):
    assert _pre_backup(participant) == _pre_backup(participant)

    cookie_file.write_text("dump")
    assert _pre_backup(participant) == _pre_backup(participant)


def test_pre_backup_serialization_failure_skips_reply(participant, recording_logger, monkeypatch):
    class Unserializable:
        def to_json(self) -> str:
            raise ValueError("cannot serialize")

    monkeypatch.setattr(participant, "build_manifest", lambda: Unserializable())
    message = RecordingMessage("{}", "preBackup")

    assert participant.handle_prepare_backup(message) is True
    assert message.replies == []
    assert "pre_backup_serialization_failed" in recording_logger.events("error")


def test_pre_backup_reply_failure_is_logged(participant, recording_logger):
    message = RecordingMessage("{}", "preBackup", fail_reply=True)

    assert participant.handle_prepare_backup(message) is True
    assert "reply_send_failed" in recording_logger.events("warning")


# ============================================================================
# postRestore
# ============================================================================

def test_post_restore_acknowledges_empty_file_list(participant):
    assert _post_restore(participant, '{"files": []}') == {"returnValue": True}


def test_post_restore_acknowledges_file_list(participant):
    payload = json.dumps(
        {
            "files": [
                "/var/luna/preferences/used-first-card",
                "/var/luna/preferences/launcher3/launcher_fixed.msave",
            ]
        }
    )

    assert _post_restore(participant, payload) == {"returnValue": True}


def test_post_restore_does_not_check_element_types(participant):
    assert _post_restore(participant, '{"files": [1, null, {"a": 1}]}') == {"returnValue": True}


@pytest.mark.parametrize(
    "payload",
    [
        '{"files": "not-an-array"}',
        "{}",
        '{"files": {"a": 1}}',
        '{"files": null}',
        "[]",
        "{not json",
        "",
    ],
)
def test_post_restore_rejects_malformed_request(participant, recording_logger, payload):
    reply = _post_restore(participant, payload)

    assert reply != {"returnValue": True}
    assert reply["returnValue"] is False
    assert reply["errorCode"] == -1
    assert reply["errorText"]
    assert "post_restore_received" not in recording_logger.events()


def test_post_restore_reports_malformed_json(participant):
    reply = _post_restore(participant, "{not json")

    assert reply["errorText"] == "Malformed json."


def test_post_restore_accepts_raw_bytes(participant, recording_logger):
    assert _post_restore(participant, b'{"files": []}') == {"returnValue": True}

    reply = _post_restore(participant, b'{"files": "\xff"}')
    assert reply["returnValue"] is False
    assert recording_logger.events("warning") == ["post_restore_schema_invalid"]


def test_post_restore_names_offending_field(participant):
    reply = _post_restore(participant, "{}")

    assert "files" in reply["errorText"]


def test_post_restore_reply_failure_is_logged(participant, recording_logger):
    message = RecordingMessage('{"files": []}', "postRestore", fail_reply=True)

    assert participant.handle_confirm_restore(message) is True
    assert "reply_send_failed" in recording_logger.events("warning")


# ============================================================================
# Lifecycle observers
# ============================================================================

def test_observers_only_log(participant, recording_logger, cookie_file: Path):
    before = _pre_backup(participant)
    state_before = participant.state

    status = DbBackupStatus(url="com.palm.luna-sysmgr.cookies", err=0)
    participant.db_dump_started(status)
    participant.db_dump_stopped(status)
    participant.db_restore_started(DbBackupStatus(url="file:///db", err=-5))
    participant.db_restore_stopped(DbBackupStatus(url="file:///db", err=-5), user_data=object())

    assert _pre_backup(participant) == before
    assert participant.state == state_before
    assert _post_restore(participant, '{"files": []}') == {"returnValue": True}

    info = recording_logger.events("info")
    for event in ("db_dump_started", "db_dump_stopped", "db_restore_started", "db_restore_stopped"):
        assert event in info


# ============================================================================
# Registration
# ============================================================================

@pytest.mark.asyncio
async def test_initialize_registers_on_bus(bus, test_config, recording_logger):
    participant = BackupParticipant(bus, test_config, logger=recording_logger)
    assert participant.state.registered is False

    assert participant.initialize(asyncio.get_running_loop()) is True

    assert participant.registered
    assert participant.private_connection is not None
    assert bus.is_registered("com.palm.appDataBackup")
    assert "backup_participant_registered" in recording_logger.events("info")

    participant.shutdown()
    assert not bus.is_registered("com.palm.appDataBackup")
    assert not participant.registered


@pytest.mark.asyncio
async def test_second_initialize_fails(bus, running_participant):
    with pytest.raises(AlreadyInitializedError):
        running_participant.initialize(asyncio.get_running_loop())

    assert bus.services() == ["com.palm.appDataBackup"]
    assert running_participant.registered


@pytest.mark.asyncio
async def test_initialize_fails_when_name_taken(bus, test_config, recording_logger, running_participant):
    other = BackupParticipant(bus, test_config, logger=recording_logger)

    assert other.initialize(asyncio.get_running_loop()) is False
    assert not other.registered
    assert "bus_registration_failed" in recording_logger.events("warning")
    assert bus.services() == ["com.palm.appDataBackup"]


def test_initialize_fails_on_closed_loop(bus, test_config, recording_logger):
    loop = asyncio.new_event_loop()
    loop.close()
    participant = BackupParticipant(bus, test_config, logger=recording_logger)

    assert participant.initialize(loop) is False
    assert "bus_attach_failed" in recording_logger.events("warning")
    # The partial registration was released
    assert not bus.is_registered("com.palm.appDataBackup")


@pytest.mark.asyncio
async def test_initialize_fails_on_category_error(bus, test_config, recording_logger, monkeypatch):
    from appdatabackup.exceptions import BusError
    from appdatabackup.bus.local import LocalServiceHandle

    def reject(self, category, methods):
        raise BusError("category rejected")

    monkeypatch.setattr(LocalServiceHandle, "register_category", reject)
    participant = BackupParticipant(bus, test_config, logger=recording_logger)

    assert participant.initialize(asyncio.get_running_loop()) is False
    assert "bus_category_registration_failed" in recording_logger.events("warning")
    assert not bus.is_registered("com.palm.appDataBackup")


@pytest.mark.asyncio
async def test_initialize_fails_without_private_connection(bus, test_config, recording_logger, monkeypatch):
    from appdatabackup.bus.local import LocalServiceHandle

    monkeypatch.setattr(LocalServiceHandle, "get_private_connection", lambda self: None)
    participant = BackupParticipant(bus, test_config, logger=recording_logger)

    assert participant.initialize(asyncio.get_running_loop()) is False
    assert "bus_private_connection_unavailable" in recording_logger.events("warning")
    assert not bus.is_registered("com.palm.appDataBackup")


@pytest.mark.asyncio
async def test_failed_initialize_cannot_be_retried(bus, test_config, recording_logger):
    blocker = bus.register_service("com.palm.appDataBackup")
    participant = BackupParticipant(bus, test_config, logger=recording_logger)

    assert participant.initialize(asyncio.get_running_loop()) is False

    blocker.unregister()
    with pytest.raises(AlreadyInitializedError):
        participant.initialize(asyncio.get_running_loop())


def test_shutdown_without_initialize_is_noop(participant, recording_logger):
    participant.shutdown()

    assert recording_logger.events() == []


# ============================================================================
# Over the bus
# ============================================================================

@pytest.mark.asyncio
async def test_orchestrator_round_trip(bus, running_participant, cookie_file: Path):
    cookie_file.write_text("dump")
    orchestrator = bus.connect("com.palm.backup")

    manifest = json.loads(
        await orchestrator.call("luna://com.palm.appDataBackup/preBackup", "{}", timeout=5)
    )
    assert manifest["files"] == [str(cookie_file)]

    ack = json.loads(
        await orchestrator.call(
            "luna://com.palm.appDataBackup/postRestore",
            json.dumps({"files": manifest["files"]}),
            timeout=5,
        )
    )
    assert ack == {"returnValue": True}


@pytest.mark.asyncio
async def test_schema_error_over_the_bus(bus, running_participant):
    orchestrator = bus.connect("com.palm.backup")

    reply = json.loads(
        await orchestrator.call(
            "luna://com.palm.appDataBackup/postRestore", '{"files": "x"}', timeout=5
        )
    )

    assert reply["returnValue"] is False
    assert reply["errorCode"] == -1
