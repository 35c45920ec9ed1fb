# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exception types raised by the SMTP gateway.

Hierarchy:
    EmailGatewayError: delivery failed (wraps a TransportError).
    EmailValidationError: message composition is incomplete or malformed.
    EmailConfigurationError: a connection setting was rejected.
    TransportError: raised by the transport and session layers only.
"""

from __future__ import annotations


class EmailGatewayError(RuntimeError):
    """Raised by ``send()`` when the SMTP transaction could not be completed."""

    def __init__(self, message: str = "Email delivery failed"):
        super().__init__(message)
        self.code = "delivery_failed"


class EmailValidationError(ValueError):
    """Raised before any network activity when the message is not sendable."""

    def __init__(self, message: str = "Email validation failed"):
        super().__init__(message)
        self.code = "validation_failed"


class EmailConfigurationError(EmailValidationError):
    """Raised when a connection setting is rejected."""

    def __init__(self, message: str = "Invalid SMTP configuration"):
        super().__init__(message)
        self.code = "invalid_configuration"


class TransportError(Exception):
    """Failure of the SMTP transport (connect, TLS, AUTH or command sequence).

    ``smtp_code`` holds the server reply code when the failure came from
    an SMTP response, ``None`` for network-level failures.
    """

    def __init__(self, message: str, smtp_code: int | None = None):
        super().__init__(message)
        self.smtp_code = smtp_code

    def __str__(self) -> str:
        message = super().__str__()
        if self.smtp_code:
            return f"{message} (SMTP {self.smtp_code})"
        return message
