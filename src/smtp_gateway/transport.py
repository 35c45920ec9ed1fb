# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP transport built on aiosmtplib.

SMTPTransport is the only component that touches the network. It opens the
connection (plain, implicit SSL or STARTTLS), authenticates with AUTH LOGIN,
accumulates header lines and runs the MAIL/RCPT/DATA sequence. Every
aiosmtplib or socket failure is re-raised as :class:`TransportError`.

Example:
    Send a pre-rendered message::

        transport = SMTPTransport("smtp.example.com", 587, {"secure": "tls"})
        await transport.connect()
        transport.set_header("Subject", "Hello")
        await transport.send_mail("me@example.com", ["you@example.com"], "Hi!\\r\\n")
        await transport.quit()
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from typing import Any

import aiosmtplib

from .errors import TransportError
from .logger import get_logger

DEFAULT_TIMEOUT = 60.0

SECURE_MODES = ("no", "ssl", "tls")


def _as_transport_error(exc: BaseException) -> TransportError:
    """Translate an aiosmtplib or network exception into a TransportError."""
    if isinstance(exc, TransportError):
        return exc
    smtp_code = getattr(exc, "code", None)
    if not isinstance(smtp_code, int) or smtp_code <= 0:
        smtp_code = None
    message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
    return TransportError(str(message), smtp_code=smtp_code)


class SMTPTransport:
    """One SMTP connection and the header block of the message being sent."""

    def __init__(self, host: str, port: int, settings: Mapping[str, Any] | None = None):
        """Store connection parameters; no network activity happens here.

        Args:
            host: SMTP server hostname.
            port: SMTP server port.
            settings: ``helo_hostname``, ``secure`` (no/ssl/tls), optional
                ``username``/``password`` and ``timeout``.
        """
        settings = dict(settings or {})
        self.host = host
        self.port = int(port)
        self.helo_hostname: str | None = settings.get("helo_hostname") or None
        secure = settings.get("secure") or "no"
        self.secure = secure if secure in SECURE_MODES else "no"
        self.username: str | None = settings.get("username")
        self.password: str | None = settings.get("password")
        self.timeout = float(settings.get("timeout") or DEFAULT_TIMEOUT)
        self.logger = get_logger()
        self._headers: list[tuple[str, str]] = []
        self._smtp: aiosmtplib.SMTP | None = None

    @property
    def is_connected(self) -> bool:
        return self._smtp is not None and self._smtp.is_connected

    @property
    def headers(self) -> list[tuple[str, str]]:
        """Header fields registered for the next message, in order."""
        return list(self._headers)

    async def connect(self) -> None:
        """Connect, negotiate encryption and authenticate when configured."""
        smtp = aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            use_tls=self.secure == "ssl",
            start_tls=self.secure == "tls",
            local_hostname=self.helo_hostname,
            timeout=self.timeout,
        )
        try:
            await smtp.connect()
            if self.username:
                await smtp.auth_login(self.username, self.password or "")
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
            if smtp.is_connected:
                smtp.close()
            raise _as_transport_error(exc) from exc
        self._smtp = smtp
        self.logger.debug(
            "Connected to %s:%s (secure=%s, auth=%s)",
            self.host,
            self.port,
            self.secure,
            bool(self.username),
        )

    def set_header(self, name: str, body: str) -> None:
        """Register a header field; ``body`` is already encoded and folded."""
        self._headers.append((name, body))

    def render(self, body: str) -> str:
        """Return the full message: header block, blank line, body."""
        header_block = "".join(f"{name}: {value}\r\n" for name, value in self._headers)
        return f"{header_block}\r\n{body}"

    async def send_mail(self, envelope_sender: str, recipients: Iterable[str], body: str) -> None:
        """Run MAIL FROM, RCPT TO for each recipient and DATA.

        Raises:
            TransportError: on any rejection, including a single refused
                recipient, or when the connection is not open.
        """
        if self._smtp is None or not self._smtp.is_connected:
            self._headers.clear()
            raise TransportError("Not connected to an SMTP server")

        recipients = list(recipients)
        message = self.render(body)
        try:
            errors, _response = await self._smtp.sendmail(
                envelope_sender, recipients, message.encode("utf-8")
            )
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
            raise _as_transport_error(exc) from exc
        finally:
            self._headers.clear()

        if errors:
            refused = ", ".join(f"{rcpt} ({resp.code} {resp.message})" for rcpt, resp in errors.items())
            first = next(iter(errors.values()))
            raise TransportError(f"Recipients refused: {refused}", smtp_code=first.code)

    async def quit(self) -> None:
        """Send QUIT and close the connection, even when QUIT fails."""
        smtp, self._smtp = self._smtp, None
        if smtp is None:
            return
        try:
            await smtp.quit()
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
            raise _as_transport_error(exc) from exc
        finally:
            if smtp.is_connected:
                smtp.close()
