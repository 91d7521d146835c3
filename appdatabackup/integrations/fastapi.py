# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
FastAPI Integration - HTTP gateway onto the participant's bus.

This module hosts a LocalBus and the backup participant inside a FastAPI
application:
- Lifespan management (register on startup, unregister on shutdown)
- Protected endpoints forwarding ``POST {prefix}/{service}/{method}`` to bus calls
- Health check
"""

import asyncio
import os
from contextlib import asynccontextmanager
from datetime import datetime, UTC

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from appdatabackup.bus import LocalBus, build_uri
from appdatabackup.config import ParticipantConfig
from appdatabackup.exceptions import BusError, BusTimeoutError, RegistrationError
from appdatabackup.participant import BackupParticipant

logger = structlog.get_logger()

DEFAULT_PREFIX = "/luna"
DEFAULT_CALL_TIMEOUT = 10.0

# Security
security = HTTPBearer(auto_error=False)


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify API key from Authorization header.

    The API key is read from the APPDATABACKUP_ADMIN_API_KEY environment variable.
    Requests must include: Authorization: Bearer <api_key>

    Raises:
        HTTPException: If API key is missing or invalid
    """
    api_key = os.getenv("APPDATABACKUP_ADMIN_API_KEY")

    if not api_key:
        raise HTTPException(
            status_code=500,
            detail="APPDATABACKUP_ADMIN_API_KEY environment variable not set",
        )

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required",
        )

    if credentials.credentials != api_key:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return True


def register_bus_routes(
    app: FastAPI,
    bus: LocalBus,
    participant: BackupParticipant,
    prefix: str = DEFAULT_PREFIX,
    timeout: float = DEFAULT_CALL_TIMEOUT,
) -> None:
    """
    Register gateway endpoints on a FastAPI app.

    All endpoints require Bearer token authentication. The bus and the
    participant are kept on ``app.state`` and looked up per request, so a
    restarted participant is served by the same routes. Routes for a given
    prefix are added only once.

    Args:
        app: FastAPI application
        bus: Bus the participant is registered on
        participant: The backup participant
        prefix: URL prefix for endpoints (default: /luna)
        timeout: Seconds to wait for a bus reply
    """
    app.state.appdatabackup_bus = bus
    app.state.appdatabackup_participant = participant
    app.state.appdatabackup_call_timeout = timeout

    prefixes = getattr(app.state, "appdatabackup_route_prefixes", frozenset())
    if prefix in prefixes:
        return
    app.state.appdatabackup_route_prefixes = prefixes | {prefix}

    @app.get(f"{prefix}/health", dependencies=[Depends(verify_api_key)])
    async def health_check(request: Request) -> dict:
        """
        Health check endpoint.

        Reports whether the participant is registered on the bus.
        """
        current = _gateway_participant(request.app)
        state = current.state
        return {
            "status": "healthy" if state.registered else "unhealthy",
            "service": current.config.service_name,
            "registered": state.registered,
            "include_files": state.include_files,
            "include_cookies": state.include_cookies,
            "services": request.app.state.appdatabackup_bus.services(),
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.post(f"{prefix}/{{service}}/{{method}}", dependencies=[Depends(verify_api_key)])
    async def call_bus_method(service: str, method: str, request: Request) -> Response:
        """
        Forward the JSON body to ``luna://{service}/{method}`` and return the reply.

        Calls to the participant's own service use its configured category.
        The body is passed through undecoded; payload errors are reported
        by the handler on the other side.
        """
        current_bus = request.app.state.appdatabackup_bus
        current = _gateway_participant(request.app)

        if not current_bus.is_registered(service):
            raise HTTPException(status_code=404, detail=f"Unknown service: {service}")

        category = "/"
        if service == current.config.service_name:
            category = current.config.category

        body = await request.body()
        payload = body if body else "{}"
        uri = build_uri(service, category, method)
        timeout = request.app.state.appdatabackup_call_timeout

        try:
            reply = await current_bus.connect("http-gateway").call(uri, payload, timeout=timeout)
        except BusTimeoutError as e:
            logger.warning("gateway_call_timed_out", uri=uri, error=str(e))
            raise HTTPException(status_code=504, detail=str(e))
        except BusError as e:
            logger.warning("gateway_call_failed", uri=uri, error=str(e))
            raise HTTPException(status_code=502, detail=str(e))

        return Response(content=reply, media_type="application/json")


def _gateway_participant(app: FastAPI) -> BackupParticipant:
    participant = getattr(app.state, "appdatabackup_participant", None)
    if participant is None:
        raise HTTPException(status_code=503, detail="Backup participant not running")
    return participant


def _start_participant(app: FastAPI, config: ParticipantConfig) -> BackupParticipant:
    bus = LocalBus()
    app.state.appdatabackup_bus = bus
    participant = BackupParticipant(bus, config)

    if not participant.initialize(asyncio.get_running_loop()):
        raise RegistrationError(
            "Backup participant failed to register on the bus",
            details={"service": config.service_name},
        )

    return participant


def setup_participant_plugin(
    app: FastAPI,
    config: ParticipantConfig,
    prefix: str = DEFAULT_PREFIX,
) -> None:
    """
    Set up the participant with lifespan management.

    This is the main entry point for hosting the participant in a FastAPI
    app. It wraps the app's lifespan so that on every startup a fresh
    LocalBus and participant are created and the gateway endpoints are
    registered, and on shutdown the participant is unregistered. The app's
    own lifespan, if any, runs inside.

    Args:
        app: FastAPI application
        config: Participant configuration
        prefix: URL prefix for gateway endpoints
    """
    app.state.appdatabackup_config = config
    app.state.appdatabackup_participant = None

    inner_lifespan = app.router.lifespan_context

    @asynccontextmanager
    async def lifespan(app_: FastAPI):
        async with participant_lifespan(app_, config, prefix):
            async with inner_lifespan(app_) as maybe_state:
                yield maybe_state

    app.router.lifespan_context = lifespan


@asynccontextmanager
async def participant_lifespan(app: FastAPI, config: ParticipantConfig, prefix: str = DEFAULT_PREFIX):
    """
    Alternative lifespan context manager for FastAPI.

    Use this instead of setup_participant_plugin if you prefer the
    lifespan pattern:

        app = FastAPI(lifespan=lambda app: participant_lifespan(app, config))

    Args:
        app: FastAPI application
        config: Participant configuration
        prefix: URL prefix for gateway endpoints
    """
    logger.info("appdatabackup_lifespan_starting", service=config.service_name)

    app.state.appdatabackup_config = config

    participant = _start_participant(app, config)
    register_bus_routes(app, app.state.appdatabackup_bus, participant, prefix)

    logger.info("appdatabackup_lifespan_started")

    try:
        yield
    finally:
        logger.info("appdatabackup_lifespan_stopping")
        participant.shutdown()
        logger.info("appdatabackup_lifespan_stopped")


def get_participant(app: FastAPI) -> BackupParticipant:
    """
    Get the backup participant from a FastAPI app.

    Raises:
        RuntimeError: If the participant is not running
    """
    participant = getattr(app.state, "appdatabackup_participant", None)
    if not participant:
        raise RuntimeError("Backup participant not running. Call setup_participant_plugin first.")
    return participant
