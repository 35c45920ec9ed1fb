# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP email gateway.

This package composes RFC 5322/2047 compliant headers and bodies and
delivers them over a plain, SSL or STARTTLS SMTP connection, optionally
authenticating with AUTH LOGIN.

Components:
    SMTPGateway: Validates, builds headers, delivers and resets a message.
    OutgoingMessage: Composition state (sender, recipients, subject, body).
    TransportSession: Lifecycle of the single SMTP connection of a gateway.
    SMTPTransport: aiosmtplib-based transport.
    SMTPSettings: Flat configuration record.

Example::

    from smtp_gateway import SMTPGateway

    gateway = SMTPGateway.from_config_file("/etc/smtp-gateway/config.ini")
    gateway.message.add_recipient("jane@example.com", "Jane Doe")
    gateway.message.subject = "Hello"
    gateway.message.text_plain = "Hi Jane"
    await gateway.send()
"""

from .base import EmailGateway
from .errors import EmailConfigurationError, EmailGatewayError, EmailValidationError, TransportError
from .gateway import SMTPGateway
from .message import Attachment, OutgoingMessage
from .prometheus import GatewayMetrics
from .session import ConnectionConfig, SessionState, TransportSession
from .settings import SecureMode, SMTPSettings
from .transport import SMTPTransport

__version__ = "1.0.0"

__all__ = [
    "Attachment",
    "ConnectionConfig",
    "EmailConfigurationError",
    "EmailGateway",
    "EmailGatewayError",
    "EmailValidationError",
    "GatewayMetrics",
    "OutgoingMessage",
    "SMTPGateway",
    "SMTPSettings",
    "SMTPTransport",
    "SecureMode",
    "SessionState",
    "TransportError",
    "TransportSession",
]
