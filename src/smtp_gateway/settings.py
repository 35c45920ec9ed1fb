# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Pydantic schema for the flat SMTP configuration record.

The record has the shape stored under the ``email_smtp`` configuration
section::

    {
        "helo_hostname": "www.example.com",
        "from_address": "noreply@example.com",
        "from_name": "Example",
        "host": "ssl://smtp.example.com",
        "port": "465",
        "secure": "ssl",
        "auth": "1",
        "username": "mailer",
        "password": "secret",
    }

Every field is optional: a missing setting means "unset" or "disabled".
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SecureMode(str, Enum):
    """Encryption used for the SMTP connection.

    Attributes:
        NO: Plain TCP connection.
        SSL: Implicit TLS from the first byte (usually port 465).
        TLS: Plain connection upgraded with STARTTLS.
    """

    NO = "no"
    SSL = "ssl"
    TLS = "tls"

    @classmethod
    def parse(cls, value: Any) -> "SecureMode":
        """Return the matching mode; anything unknown means no encryption."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NO


class SMTPSettings(BaseModel):
    """Flat SMTP configuration record."""

    model_config = ConfigDict(extra="ignore")

    helo_hostname: Annotated[
        str | None,
        Field(default=None, description="FQDN announced with EHLO/HELO")
    ]
    from_address: Annotated[
        str | None,
        Field(default=None, description="Default sender address")
    ]
    from_name: Annotated[
        str | None,
        Field(default=None, description="Default sender display name")
    ]
    host: Annotated[
        str | None,
        Field(default=None, description="SMTP host, optionally prefixed with ssl://")
    ]
    port: Annotated[
        int | None,
        Field(default=None, ge=1, le=65535, description="SMTP port; derived from secure when unset")
    ]
    secure: Annotated[
        SecureMode | None,
        Field(default=None, description="Encryption: no, ssl or tls")
    ]
    auth: Annotated[
        bool,
        Field(default=False, description="Authenticate with AUTH LOGIN")
    ]
    username: Annotated[
        str | None,
        Field(default=None, description="AUTH LOGIN username")
    ]
    password: Annotated[
        str | None,
        Field(default=None, description="AUTH LOGIN password")
    ]

    @field_validator("helo_hostname", "from_address", "from_name", "host", "username", "password", mode="before")
    @classmethod
    def empty_string_is_unset(cls, v: Any) -> Any:
        """Form posts send empty strings for untouched inputs."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("port", mode="before")
    @classmethod
    def empty_port_is_unset(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return v

    @field_validator("secure", mode="before")
    @classmethod
    def parse_secure(cls, v: Any) -> SecureMode | None:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return SecureMode.parse(v)

    @field_validator("auth", mode="before")
    @classmethod
    def parse_auth(cls, v: Any) -> bool:
        """Only an explicit ``1`` (or true) enables authentication."""
        if isinstance(v, bool):
            return v
        if v is None:
            return False
        return str(v).strip().lower() in ("1", "true", "yes", "on")


__all__ = ["SMTPSettings", "SecureMode"]
