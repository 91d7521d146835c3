# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for appdatabackup tests.

Provides temporary cookie locations, a recording bus message, a recording
logger and a participant registered on a LocalBus.
"""

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Generator, List

import pytest
import pytest_asyncio

# Set test environment variables
os.environ["APPDATABACKUP_ADMIN_API_KEY"] = "test-api-key-12345"

AUTH_HEADERS = {"Authorization": "Bearer test-api-key-12345"}


class RecordingMessage:
    """Bus message that keeps the replies it was given."""

    def __init__(self, payload: str = "{}", method: str = "preBackup", fail_reply: bool = False):
        self.token = "01TESTTOKEN"
        self.uri = f"luna://com.palm.appDataBackup/{method}"
        self.method = method
        self.payload = payload
        self.replies: List[str] = []
        self._fail_reply = fail_reply

    def reply(self, payload: str) -> None:
        from appdatabackup.exceptions import BusError

        if self._fail_reply:
            raise BusError("Caller is no longer waiting for a reply")
        self.replies.append(payload)


class RecordingLogger:
    """Logger double that records (level, event, context) tuples."""

    def __init__(self):
        self.records: List[tuple] = []

    def _log(self, level: str, event: str, **kw) -> None:
        self.records.append((level, event, kw))

    def debug(self, event: str, **kw) -> None:
        self._log("debug", event, **kw)

    def info(self, event: str, **kw) -> None:
        self._log("info", event, **kw)

    def warning(self, event: str, **kw) -> None:
        self._log("warning", event, **kw)

    def error(self, event: str, **kw) -> None:
        self._log("error", event, **kw)

    def events(self, level: str | None = None) -> List[str]:
        return [e for lvl, e, _ in self.records if level is None or lvl == level]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def cookie_file(temp_dir: Path) -> Path:
    """Location of the cookie export; not created."""
    return temp_dir / "com.palm.luna-sysmgr.cookies-html5-backup.sql"


@pytest.fixture
def test_config(cookie_file: Path):
    """Create a test configuration pointing at the temporary cookie file."""
    from appdatabackup.config import ParticipantConfig

    return ParticipantConfig(cookie_temp_file=cookie_file)


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def participant(test_config, recording_logger):
    """A participant that is not registered on any bus."""
    from appdatabackup.bus import LocalBus
    from appdatabackup.participant import BackupParticipant

    return BackupParticipant(LocalBus(), test_config, logger=recording_logger)


@pytest.fixture
def bus():
    from appdatabackup.bus import LocalBus

    return LocalBus()


@pytest_asyncio.fixture
async def running_participant(bus, test_config, recording_logger):
    """A participant registered on ``bus`` and attached to the running loop."""
    from appdatabackup.participant import BackupParticipant

    participant = BackupParticipant(bus, test_config, logger=recording_logger)
    assert participant.initialize(asyncio.get_running_loop())
    yield participant
    participant.shutdown()
