# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example FastAPI Application hosting the app data backup participant.

The participant registers ``com.palm.appDataBackup`` on an in-process bus
and the gateway exposes it over HTTP so a backup orchestrator running in
another process can reach it.

Run with:
    uvicorn examples.basic_app:app --reload

Then, as the orchestrator would:
    curl -X POST -H "Authorization: Bearer $APPDATABACKUP_ADMIN_API_KEY" \\
        http://localhost:8000/luna/com.palm.appDataBackup/preBackup -d '{}'

Environment variables:
    APPDATABACKUP_ADMIN_API_KEY: API key for gateway endpoints
    APPDATABACKUP_INCLUDE_COOKIES: Back up the cookie export (default: true)
    APPDATABACKUP_COOKIE_FILE: Absolute path of the cookie export
"""

from typing import Literal

from fastapi import FastAPI
from pydantic import BaseModel

from appdatabackup.env import create_config_from_env
from appdatabackup.integrations.fastapi import get_participant, setup_participant_plugin
from appdatabackup.participant import DbBackupStatus

# Create FastAPI app
app = FastAPI(
    title="App Data Backup",
    description="Backup participant for the system manager",
    version="1.0.0",
)

# Configuration comes from the environment; invalid values abort startup
config = create_config_from_env()

# Setup participant plugin
setup_participant_plugin(app, config)


# ============================================================================
# Application Routes
# ============================================================================


class DumpEvent(BaseModel):
    """Progress report from the database dump/restore subsystem."""

    phase: Literal["dump_started", "dump_stopped", "restore_started", "restore_stopped"]
    url: str
    err: int = 0


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": config.service_name,
        "docs": "/docs",
        "health": "/luna/health",
    }


@app.post("/db-events")
async def report_db_event(event: DumpEvent) -> dict:
    """Forward a dump/restore progress report to the participant's observers."""
    participant = get_participant(app)
    status = DbBackupStatus(url=event.url, err=event.err)

    observers = {
        "dump_started": participant.db_dump_started,
        "dump_stopped": participant.db_dump_stopped,
        "restore_started": participant.db_restore_started,
        "restore_stopped": participant.db_restore_stopped,
    }
    observers[event.phase](status)
    return {"returnValue": True}


# ============================================================================
# Gateway Endpoints (auto-registered by plugin)
# ============================================================================
#
# GET  /luna/health                                  - Registration status
# POST /luna/com.palm.appDataBackup/preBackup        - Backup manifest
# POST /luna/com.palm.appDataBackup/postRestore      - Restore acknowledgment
#
# All gateway endpoints require: Authorization: Bearer <APPDATABACKUP_ADMIN_API_KEY>


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
