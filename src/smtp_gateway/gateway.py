# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP email gateway.

SMTPGateway turns an :class:`OutgoingMessage` plus connection settings into
one SMTP delivery:

1. validate the message (no network activity before this passes)
2. build the header field set (From, To, Subject, Reply-To, Message-ID,
   Date, MIME-Version, body fields, caller fields)
3. encode and fold every field and hand it to the transport session
4. open the session lazily, deliver, optionally close it
5. reset the composition state

A failed delivery raises :class:`EmailGatewayError` and leaves the message
as it was, so the caller can inspect it or simply call ``send()`` again.

Example:
    Send one message::

        gateway = SMTPGateway(config={"host": "ssl://smtp.example.com", "auth": 1,
                                      "username": "mailer", "password": "secret",
                                      "from_address": "noreply@example.com"})
        gateway.message.add_recipient("jane@example.com", "Jane Doe")
        gateway.message.subject = "Hello"
        gateway.message.text_plain = "Hi Jane"
        await gateway.send()

    Reuse the connection for a batch::

        async with gateway:
            for address in addresses:
                gateway.message.add_recipient(address)
                gateway.message.subject = "News"
                gateway.message.text_plain = text
                await gateway.send()
"""

from __future__ import annotations

import asyncio
import secrets
import socket
from collections.abc import Mapping
from email.utils import formatdate
from typing import Any

from pydantic import ValidationError

from .addresses import build_recipient_list, encode_address_list, format_address
from .config_loader import load_smtp_config
from .errors import EmailConfigurationError, EmailGatewayError, TransportError
from .headers import encode_word, fold
from .logger import get_logger
from .message import OutgoingMessage
from .prometheus import GatewayMetrics
from .session import ConnectionConfig, TransportFactory, TransportSession
from .settings import SecureMode, SMTPSettings
from .transport import DEFAULT_TIMEOUT

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 25
DEFAULT_SSL_PORT = 465
SSL_HOST_PREFIX = "ssl://"
UNDISCLOSED_RECIPIENTS = "undisclosed-recipients:;"
ADDRESS_FIELDS = ("Cc", "Reply-To", "Sender")


class SMTPGateway:
    """Send email through an SMTP server, plain, SSL or STARTTLS."""

    def __init__(
        self,
        config: Mapping[str, Any] | None = None,
        *,
        keep_alive: bool = False,
        transport_factory: TransportFactory | None = None,
        metrics: GatewayMetrics | None = None,
        logger=None,
        message_id_domain: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Create a gateway, optionally bound to a flat configuration record.

        Args:
            config: Flat ``email_smtp`` record, see :class:`SMTPSettings`.
            keep_alive: Keep the SMTP session open between sends.
            transport_factory: Callable ``(host, port, settings)`` returning a
                transport; defaults to :class:`SMTPTransport`.
            metrics: Prometheus metrics holder.
            logger: Logger to use instead of the package logger.
            message_id_domain: Domain part of generated Message-IDs.
            timeout: Network timeout in seconds for each SMTP operation.
        """
        self.logger = logger or get_logger()
        self.metrics = metrics or GatewayMetrics()
        self.message = OutgoingMessage()
        self.session = TransportSession(transport_factory, logger=self.logger)
        self.keep_alive = keep_alive
        self.message_id_domain = message_id_domain
        self.timeout = timeout
        self._lock = asyncio.Lock()

        self.helo_hostname: str | None = None
        self.host = DEFAULT_HOST
        self._port: int | None = None
        self.secure = SecureMode.NO
        self.auth = False
        self.username: str | None = None
        self.password: str | None = None
        self.envelope_from: str | None = None

        if config is not None:
            self.set_configuration(config)

    @classmethod
    def from_config_file(cls, config_path: str | None = None, **kwargs: Any) -> "SMTPGateway":
        """Create a gateway from an INI file and ``SMTPGW_*`` environment variables."""
        return cls(config=load_smtp_config(config_path), **kwargs)

    async def __aenter__(self) -> "SMTPGateway":
        self.open_connection()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.close_connection()
        return False

    # ------------------------------------------------------------ settings
    @property
    def port(self) -> int:
        """Configured port, or the default for the current security mode."""
        if self._port is not None:
            return self._port
        return DEFAULT_SSL_PORT if self.secure is SecureMode.SSL else DEFAULT_PORT

    def set_helo_hostname(self, helo_hostname: str | None = None) -> None:
        self.helo_hostname = helo_hostname

    def set_host(self, host: str | None = None) -> None:
        """Set the SMTP host; an ``ssl://`` prefix selects SSL encryption."""
        if host is None:
            host = DEFAULT_HOST
        if host.startswith(SSL_HOST_PREFIX):
            self.secure = SecureMode.SSL
            host = host[len(SSL_HOST_PREFIX):]
        self.host = host

    def set_port(self, port: int | str | None = None) -> None:
        """Set the port; ``None`` means 465 with SSL and 25 otherwise.

        Raises:
            EmailConfigurationError: when the port is not a number in 1-65535.
        """
        if port is None:
            self._port = None
            return
        try:
            value = int(port)
        except (TypeError, ValueError) as exc:
            raise EmailConfigurationError(f"Invalid SMTP port: {port!r}") from exc
        if not 1 <= value <= 65535:
            raise EmailConfigurationError(f"Invalid SMTP port: {port!r}")
        self._port = value

    def set_user(self, user: str | None = None) -> None:
        self.username = user

    def set_pass(self, password: str | None = None) -> None:
        self.password = password

    def set_auth(self, auth: bool = False) -> None:
        """Use AUTH LOGIN or no authentication."""
        self.auth = bool(auth)

    def set_secure(self, secure: SecureMode | str | None = None) -> None:
        """Set the encryption: ``ssl``, ``tls``; anything else is plain TCP."""
        self.secure = SecureMode.parse(secure) if secure is not None else SecureMode.NO

    def set_envelope_from(self, envelope_from: str | None = None) -> None:
        """Set the MAIL FROM address used instead of the sender address.

        Raises:
            EmailConfigurationError: when the address contains CR or LF.
        """
        if envelope_from is not None and ("\r" in envelope_from or "\n" in envelope_from):
            raise EmailConfigurationError(
                "The Envelope From Address can not contain carriage return or newlines."
            )
        self.envelope_from = envelope_from

    def set_configuration(self, config: Mapping[str, Any] | SMTPSettings) -> None:
        """Apply a flat configuration record; missing entries mean unset.

        Raises:
            EmailConfigurationError: when a value has the wrong type.
        """
        try:
            settings = config if isinstance(config, SMTPSettings) else SMTPSettings.model_validate(dict(config))
        except ValidationError as exc:
            raise EmailConfigurationError(f"Invalid SMTP configuration: {exc}") from exc

        self.set_helo_hostname(settings.helo_hostname)
        self.message.set_from(settings.from_address, settings.from_name)
        # Security first, so that an ssl:// host prefix wins over an unset mode
        self.set_secure(settings.secure)
        self.set_host(settings.host)
        self.set_port(settings.port)
        self.set_auth(settings.auth)
        self.set_user(settings.username)
        self.set_pass(settings.password)

    def connection_settings(self) -> dict[str, Any]:
        """Settings handed to the transport; credentials only with auth enabled."""
        settings: dict[str, Any] = {
            "helo_hostname": self.helo_hostname,
            "secure": self.secure.value,
            "timeout": self.timeout,
        }
        if self.auth:
            settings["username"] = self.username
            settings["password"] = self.password
        return settings

    def connection_config(self) -> ConnectionConfig:
        return ConnectionConfig(host=self.host, port=self.port, settings=self.connection_settings())

    # ------------------------------------------------------ composition
    def validate(self) -> None:
        self.message.validate()

    def prepare_body(self) -> tuple[dict[str, str], str]:
        return self.message.prepare_body()

    def reset(self) -> None:
        """Clear headers, envelope sender, recipients, subject and body."""
        self.message.reset()
        self.envelope_from = None

    def _message_id(self) -> str:
        domain = self.message_id_domain or self.helo_hostname or socket.getfqdn()
        return f"<{secrets.token_hex(16)}@{domain}>"

    def build_header_fields(self, content_fields: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return the encoded header field set of the current message.

        Caller fields come first, then Reply-To and the body fields, then the
        computed fields which overwrite caller fields of the same name. The
        Bcc field is left out: it only routes recipients.
        """
        message = self.message
        recipient_list = build_recipient_list(message.recipients, exclude=message.bcc_addresses)

        fields: dict[str, str] = {}
        for name, body in message.canonical_header_fields().items():
            if name == "Bcc":
                continue
            if name in ADDRESS_FIELDS:
                fields[name] = encode_address_list(body)
            else:
                fields[name] = body if body.isascii() else encode_word(body)

        if message.reply_to_address:
            fields["Reply-To"] = format_address(message.reply_to_address, message.reply_to_name)

        fields.update(content_fields or {})
        fields.update(
            {
                "Message-ID": self._message_id(),
                "Date": formatdate(localtime=True),
                "From": format_address(message.sender_address, message.sender_name),
                "Subject": encode_word(message.subject or ""),
                "To": recipient_list or UNDISCLOSED_RECIPIENTS,
                "MIME-Version": "1.0",
            }
        )
        return fields

    # ---------------------------------------------------------- delivery
    async def send(self) -> bool:
        """Deliver the current message.

        Returns:
            ``True`` once the server accepted the message.

        Raises:
            EmailValidationError: before any network activity, when the
                message is incomplete.
            EmailGatewayError: when connecting, negotiating encryption,
                authenticating or the SMTP transaction failed. The message
                is left untouched.
        """
        async with self._lock:
            self.validate()

            config = self.connection_config()
            content_fields, body = self.prepare_body()
            fields = self.build_header_fields(content_fields)
            recipients = self.message.delivery_recipients()
            envelope_sender = self.envelope_from or self.message.sender_address

            self.session.clear_headers()
            for name, value in fields.items():
                self.session.set_header(name, fold(value, offset=len(name) + 2))
            self.logger.debug(
                "Prepared message %s (envelope sender %s, %d header fields)",
                fields["Message-ID"],
                envelope_sender,
                len(fields),
            )

            try:
                if await self.session.ensure_open(config):
                    self.metrics.inc_connection(self.host)
                await self.session.deliver(envelope_sender, recipients, body)
            except TransportError as exc:
                self.metrics.inc_error(self.host)
                self.logger.error(
                    "Delivery of %s via %s:%s failed: %s", fields["Message-ID"], self.host, self.port, exc
                )
                await self.session.terminate()
                raise EmailGatewayError(str(exc)) from exc

            self.metrics.inc_sent(self.host)
            self.logger.info(
                "Sent %s to %d recipient(s) via %s:%s",
                fields["Message-ID"],
                len(recipients),
                self.host,
                self.port,
            )

            if not self.keep_alive:
                await self.session.terminate()
            self.reset()
        return True

    # -------------------------------------------------------- connection
    def open_connection(self) -> bool:
        """Keep the SMTP session open across sends until ``close_connection``."""
        self.keep_alive = True
        return True

    async def close_connection(self) -> bool:
        """Close the SMTP session, if any, and stop keeping it alive.

        Returns:
            ``True`` when an open session was closed.
        """
        async with self._lock:
            was_open = self.session.is_open
            await self.session.terminate()
            self.keep_alive = False
        return was_open
