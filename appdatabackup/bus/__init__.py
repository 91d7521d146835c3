# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Message Bus Layer - Contract between bus services and the transport.

The participant only talks to these protocols. LocalBus is the bundled
in-process implementation; any other transport can be plugged in as long
as it honours the same contract.
"""

import asyncio
from typing import Callable, Mapping, Protocol

from appdatabackup.exceptions import BusError, BusTimeoutError

URI_SCHEME = "luna://"


class BusMessage(Protocol):
    """An inbound request delivered to a method handler."""

    token: str
    uri: str
    method: str
    payload: str | bytes

    def reply(self, payload: str) -> None:
        """
        Send the reply for this message.

        Raises:
            BusError: If the caller is gone or a reply was already sent
        """
        ...


MethodHandler = Callable[[BusMessage], bool]


class BusConnection(Protocol):
    """Client side of the bus, used for calls into other services."""

    async def call(self, uri: str, payload: str | bytes, timeout: float | None = None) -> str:
        """
        Call a bus method and wait for its reply.

        Raises:
            BusError: If the service or method is unknown
            BusTimeoutError: If no reply arrives within timeout
        """
        ...


class ServiceHandle(Protocol):
    """A registered bus identity."""

    name: str

    def register_category(self, category: str, methods: Mapping[str, MethodHandler]) -> None:
        ...

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        ...

    def get_private_connection(self) -> BusConnection | None:
        ...

    def unregister(self) -> None:
        ...


class ServiceBus(Protocol):
    """Registers service identities."""

    def register_service(self, name: str) -> ServiceHandle:
        ...


def build_uri(service: str, category: str, method: str) -> str:
    """Build a ``luna://service/category/method`` URI."""
    path = category.rstrip("/") + "/" + method
    return f"{URI_SCHEME}{service}{path}"


def parse_uri(uri: str) -> tuple[str, str, str]:
    """
    Split a bus URI into (service, category, method).

    Raises:
        BusError: If the URI is malformed
    """
    if not uri.startswith(URI_SCHEME):
        raise BusError(f"Invalid bus URI: {uri}", details={"uri": uri})

    rest = uri[len(URI_SCHEME):]
    service, sep, path = rest.partition("/")
    if not service or not sep or not path:
        raise BusError(f"Invalid bus URI: {uri}", details={"uri": uri})

    category, _, method = ("/" + path).rpartition("/")
    if not method:
        raise BusError(f"Invalid bus URI: {uri}", details={"uri": uri})
    return service, category or "/", method


from appdatabackup.bus.local import LocalBus, LocalMessage  # noqa: E402

__all__ = [
    "BusConnection",
    "BusError",
    "BusMessage",
    "BusTimeoutError",
    "LocalBus",
    "LocalMessage",
    "MethodHandler",
    "ServiceBus",
    "ServiceHandle",
    "build_uri",
    "parse_uri",
]
