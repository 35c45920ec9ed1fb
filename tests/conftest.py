# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Shared fixtures: an in-memory transport standing in for aiosmtplib."""

from __future__ import annotations

from typing import Any

import pytest

from smtp_gateway.errors import TransportError


class FakeTransport:
    """Records everything the session asks of it."""

    def __init__(self, factory: "FakeTransportFactory", host: str, port: int, settings: dict[str, Any]):
        self.factory = factory
        self.host = host
        self.port = port
        self.settings = settings
        self.connected = False
        self.headers: list[tuple[str, str]] = []
        self.sent: list[dict[str, Any]] = []
        self.quit_calls = 0

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def connect(self) -> None:
        if self.factory.fail_connect:
            raise self.factory.fail_connect
        self.connected = True

    def set_header(self, name: str, body: str) -> None:
        self.headers.append((name, body))

    async def send_mail(self, envelope_sender: str, recipients: list[str], body: str) -> None:
        headers, self.headers = self.headers, []
        if self.factory.fail_send:
            exc = self.factory.fail_send
            if not self.factory.fail_persistent:
                self.factory.fail_send = None
            raise exc
        self.sent.append(
            {
                "sender": envelope_sender,
                "recipients": list(recipients),
                "body": body,
                "headers": headers,
            }
        )

    async def quit(self) -> None:
        self.quit_calls += 1
        self.connected = False
        if self.factory.fail_quit:
            raise self.factory.fail_quit


class FakeTransportFactory:
    """Callable ``(host, port, settings)`` creating :class:`FakeTransport`."""

    def __init__(self):
        self.created: list[FakeTransport] = []
        self.fail_connect: Exception | None = None
        self.fail_send: Exception | None = None
        self.fail_persistent = False
        self.fail_quit: Exception | None = None

    def __call__(self, host: str, port: int, settings: dict[str, Any]) -> FakeTransport:
        transport = FakeTransport(self, host, port, settings)
        self.created.append(transport)
        return transport

    @property
    def deliveries(self) -> list[dict[str, Any]]:
        return [item for transport in self.created for item in transport.sent]


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def transport_error() -> TransportError:
    return TransportError("550 Mailbox unavailable", smtp_code=550)
