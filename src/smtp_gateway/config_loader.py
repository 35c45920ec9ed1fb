# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration loader for the SMTP gateway.

This module reads the flat ``email_smtp`` record from an INI-style
configuration file or from environment variables.

Example:
    Configuration file format (config.ini)::

        [email_smtp]
        helo_hostname = www.example.com
        from_address = noreply@example.com
        from_name = Example
        host = smtp.example.com
        port = 587
        secure = tls
        auth = 1
        username = mailer
        password = secret

    Loading the record::

        record = load_smtp_config("/etc/smtp-gateway/config.ini")
        gateway = SMTPGateway(config=record)
"""

from __future__ import annotations

import configparser
import os
from pathlib import Path

from .logger import get_logger

SECTION = "email_smtp"

CONFIG_KEYS = (
    "helo_hostname",
    "from_address",
    "from_name",
    "host",
    "port",
    "secure",
    "auth",
    "username",
    "password",
)

ENV_PREFIX = "SMTPGW_"

logger = get_logger("config_loader")


def load_smtp_config(config_path: str | None = None, section: str = SECTION) -> dict[str, str]:
    """Load the SMTP configuration record from config file or environment.

    Priority: config file > environment variables > unset.

    Environment variables:
        SMTPGW_HELO_HOSTNAME, SMTPGW_FROM_ADDRESS, SMTPGW_FROM_NAME,
        SMTPGW_HOST, SMTPGW_PORT, SMTPGW_SECURE, SMTPGW_AUTH,
        SMTPGW_USERNAME, SMTPGW_PASSWORD

    Args:
        config_path: Optional path to config.ini file.
        section: INI section holding the record.

    Returns:
        Flat record with only the keys that were found. Values are strings;
        validation happens when the record is bound to a gateway.
    """
    record: dict[str, str] = {}

    for key in CONFIG_KEYS:
        env_value = os.environ.get(f"{ENV_PREFIX}{key.upper()}")
        if env_value is not None:
            record[key] = env_value

    if config_path:
        if not Path(config_path).exists():
            logger.warning("Config file %s not found, using environment only", config_path)
            return record

        config = configparser.ConfigParser(interpolation=None)
        config.read(config_path)

        if not config.has_section(section):
            logger.info("No [%s] section found in %s", section, config_path)
            return record

        for key, value in config.items(section):
            if key not in CONFIG_KEYS:
                logger.warning("Ignoring unknown key in [%s] section: %s", section, key)
                continue
            record[key] = value.strip()

    return record
