# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
LocalBus - In-process message bus on top of asyncio.

Services register a name, bind method tables under categories and attach
a message pump to an event loop. Each pump pops one message at a time and
runs the handler to completion, so handlers of one service never overlap.
Clients call ``luna://`` URIs through a connection and await the reply.
"""

import asyncio
import json
from typing import Dict, Mapping

import structlog
from ulid import ULID

from appdatabackup.bus import MethodHandler, build_uri, parse_uri
from appdatabackup.exceptions import BusError, BusTimeoutError

logger = structlog.get_logger()


class LocalMessage:
    """A request travelling through the LocalBus."""

    def __init__(
        self,
        uri: str,
        category: str,
        method: str,
        payload: str | bytes,
        future: asyncio.Future,
        sender: str | None = None,
    ):
        self.token = str(ULID())
        self.uri = uri
        self.category = category
        self.method = method
        self.payload = payload
        self.sender = sender
        self._future = future

    def reply(self, payload: str) -> None:
        """
        Deliver the reply to the waiting caller.

        Raises:
            BusError: If the caller abandoned the call or a reply was already sent
        """
        if self._future.cancelled():
            raise BusError(
                "Caller is no longer waiting for a reply",
                details={"token": self.token, "uri": self.uri},
            )
        if self._future.done():
            raise BusError(
                "Reply already sent",
                details={"token": self.token, "uri": self.uri},
            )
        self._future.set_result(payload)

    def fail(self, error: BusError) -> None:
        if not self._future.done():
            self._future.set_exception(error)

    def __repr__(self) -> str:
        return f"LocalMessage(token={self.token!r}, uri={self.uri!r})"


class LocalConnection:
    """Client handle used to call methods on other services."""

    def __init__(self, bus: "LocalBus", name: str | None = None):
        self._bus = bus
        self.name = name

    async def call(self, uri: str, payload: str | bytes = "{}", timeout: float | None = None) -> str:
        """
        Call a bus method and wait for its reply.

        Args:
            uri: Target ``luna://service/category/method``
            payload: JSON request text, undecoded bytes are passed through as is
            timeout: Seconds to wait for the reply (None waits forever)

        Returns:
            The reply payload (JSON text)
        """
        service, category, method = parse_uri(uri)
        handle = self._bus._lookup(service)

        future = asyncio.get_running_loop().create_future()
        message = LocalMessage(uri, category, method, payload, future, sender=self.name)
        handle._enqueue(message)

        logger.debug("bus_call_sent", uri=uri, token=message.token, sender=self.name)

        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise BusTimeoutError(
                f"No reply from {uri} within {timeout}s",
                details={"uri": uri, "token": message.token},
            )


class LocalServiceHandle:
    """A service identity registered on a LocalBus."""

    def __init__(self, bus: "LocalBus", name: str):
        self._bus = bus
        self.name = name
        self._categories: Dict[str, Dict[str, MethodHandler]] = {}
        self._queue: asyncio.Queue | None = None
        self._pump: asyncio.Task | None = None
        self._registered = True

    @property
    def registered(self) -> bool:
        return self._registered

    @property
    def attached(self) -> bool:
        return self._pump is not None

    def register_category(self, category: str, methods: Mapping[str, MethodHandler]) -> None:
        """
        Bind a method table under a category.

        Raises:
            BusError: If the handle is unregistered, the category is invalid
                or already bound, or the table is empty
        """
        self._ensure_registered()

        if not category.startswith("/"):
            raise BusError(
                f"Invalid category: {category}",
                details={"service": self.name, "category": category},
            )
        if category in self._categories:
            raise BusError(
                f"Category already registered: {category}",
                details={"service": self.name, "category": category},
            )
        if not methods:
            raise BusError(
                "Method table is empty",
                details={"service": self.name, "category": category},
            )

        self._categories[category] = dict(methods)

        logger.debug(
            "bus_category_registered",
            service=self.name,
            category=category,
            methods=sorted(methods),
        )

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """
        Start the message pump on the given event loop.

        Raises:
            BusError: If already attached, unregistered, or the loop is closed
        """
        self._ensure_registered()

        if self._pump is not None:
            raise BusError("Service already attached", details={"service": self.name})
        if loop is None or loop.is_closed():
            raise BusError("Event loop is not usable", details={"service": self.name})

        self._queue = asyncio.Queue()
        self._pump = loop.create_task(self._run(), name=f"bus-pump:{self.name}")

        logger.debug("bus_service_attached", service=self.name)

    def get_private_connection(self) -> LocalConnection | None:
        """Connection for calls initiated by this service, or None if unregistered."""
        if not self._registered:
            return None
        return LocalConnection(self._bus, self.name)

    def unregister(self) -> None:
        """
        Remove the service from the bus and stop its pump.

        Pending callers get a BusError instead of waiting forever.

        Raises:
            BusError: If already unregistered
        """
        self._ensure_registered()

        self._registered = False
        self._bus._remove(self.name)

        if self._pump is not None:
            self._pump.cancel()

        if self._queue is not None:
            while not self._queue.empty():
                message = self._queue.get_nowait()
                message.fail(
                    BusError(
                        f"Service {self.name} unregistered",
                        details={"uri": message.uri},
                    )
                )

        logger.debug("bus_service_unregistered", service=self.name)

    def uri_for(self, method: str, category: str = "/") -> str:
        return build_uri(self.name, category, method)

    def _ensure_registered(self) -> None:
        if not self._registered:
            raise BusError("Service is not registered", details={"service": self.name})

    def _enqueue(self, message: LocalMessage) -> None:
        if self._queue is None:
            raise BusError(
                f"Service {self.name} is not attached to an event loop",
                details={"uri": message.uri},
            )
        self._queue.put_nowait(message)

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            self._dispatch(message)

    def _dispatch(self, message: LocalMessage) -> None:
        handler = self._categories.get(message.category, {}).get(message.method)

        if handler is None:
            logger.warning("bus_unknown_method", service=self.name, uri=message.uri)
            error = json.dumps(
                {
                    "returnValue": False,
                    "errorCode": -1,
                    "errorText": f"Unknown method \"{message.method}\" for category \"{message.category}\"",
                }
            )
            try:
                message.reply(error)
            except BusError as e:
                logger.warning("bus_reply_failed", uri=message.uri, error=str(e))
            return

        try:
            handler(message)
        except Exception as e:
            # The pump must outlive a faulty handler; the caller times out.
            logger.error(
                "bus_handler_failed",
                service=self.name,
                uri=message.uri,
                token=message.token,
                error=str(e),
            )


class LocalBus:
    """
    In-process service bus.

    Service names are unique: a second registration of a taken name fails.
    """

    def __init__(self) -> None:
        self._services: Dict[str, LocalServiceHandle] = {}

    def register_service(self, name: str) -> LocalServiceHandle:
        """
        Register a service identity.

        Raises:
            BusError: If the name is already taken
        """
        if name in self._services:
            raise BusError(
                f"Service name already registered: {name}",
                details={"service": name},
            )

        handle = LocalServiceHandle(self, name)
        self._services[name] = handle

        logger.debug("bus_service_registered", service=name)
        return handle

    def connect(self, name: str | None = None) -> LocalConnection:
        """Open a client connection, e.g. for a backup orchestrator."""
        return LocalConnection(self, name)

    def is_registered(self, name: str) -> bool:
        return name in self._services

    def services(self) -> list:
        return sorted(self._services)

    def _lookup(self, name: str) -> LocalServiceHandle:
        handle = self._services.get(name)
        if handle is None:
            raise BusError(f"Unknown service: {name}", details={"service": name})
        return handle

    def _remove(self, name: str) -> None:
        self._services.pop(name, None)
