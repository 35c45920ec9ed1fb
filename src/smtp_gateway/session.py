# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Lifecycle of the single SMTP connection owned by a gateway.

States::

    UNINITIALIZED --ensure_open--> OPEN --terminate--> CLOSED
                                    ^                    |
                                    +----ensure_open-----+

An open session is never reconfigured: when ``ensure_open`` receives a
configuration different from the applied one, or the connection dropped,
the session is terminated and a new transport is created.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import TransportError
from .logger import get_logger
from .transport import SMTPTransport

TransportFactory = Callable[[str, int, Mapping[str, Any]], Any]


class SessionState(str, Enum):
    """States of a :class:`TransportSession`."""

    UNINITIALIZED = "uninitialized"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class ConnectionConfig:
    """Parameters a transport is created with."""

    host: str
    port: int
    settings: Mapping[str, Any] = field(default_factory=dict)

    def key(self) -> tuple:
        return (self.host, self.port, tuple(sorted(self.settings.items())))


class TransportSession:
    """Own at most one live transport and the headers of the next delivery."""

    def __init__(self, transport_factory: TransportFactory | None = None, logger=None):
        self._factory = transport_factory or SMTPTransport
        self.logger = logger or get_logger()
        self.state = SessionState.UNINITIALIZED
        self.transport: Any = None
        self.config: ConnectionConfig | None = None
        self.created = 0
        self._headers: list[tuple[str, str]] = []

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    async def ensure_open(self, config: ConnectionConfig) -> bool:
        """Open the session if needed.

        Returns:
            ``True`` when a new transport was created, ``False`` on reuse.

        Raises:
            TransportError: when connection, encryption or authentication
                fails; the session is then not open.
        """
        if self.is_open:
            connected = getattr(self.transport, "is_connected", True)
            if self.config is not None and self.config.key() == config.key() and connected:
                return False
            if connected:
                self.logger.info("SMTP configuration changed, reconnecting to %s:%s", config.host, config.port)
            else:
                self.logger.info("SMTP connection to %s:%s was lost, reconnecting", self.config.host, self.config.port)
            await self.terminate()

        transport = self._factory(config.host, config.port, dict(config.settings))
        self.created += 1
        try:
            await transport.connect()
        except TransportError:
            self.logger.warning("Could not open SMTP session to %s:%s", config.host, config.port)
            raise

        self.transport = transport
        self.config = config
        self.state = SessionState.OPEN
        self.logger.info("SMTP session opened to %s:%s", config.host, config.port)
        return True

    def set_header(self, name: str, lines: Iterable[str]) -> None:
        """Buffer a folded header field for the next delivery."""
        self._headers.append((name, "\r\n".join(lines)))

    def clear_headers(self) -> None:
        self._headers.clear()

    async def deliver(self, envelope_sender: str, recipients: Iterable[str], body: str) -> None:
        """Flush buffered headers to the transport and send the message."""
        try:
            if not self.is_open:
                raise TransportError("SMTP session is not open")
            for name, value in self._headers:
                self.transport.set_header(name, value)
            await self.transport.send_mail(envelope_sender, list(recipients), body)
        finally:
            self._headers.clear()

    async def terminate(self) -> None:
        """Say goodbye and release the connection; never raises."""
        if not self.is_open:
            return
        transport, self.transport = self.transport, None
        self.state = SessionState.CLOSED
        try:
            await transport.quit()
        except Exception as exc:
            self.logger.debug("Ignoring QUIT failure: %s", exc)
        else:
            self.logger.info("SMTP session closed")
