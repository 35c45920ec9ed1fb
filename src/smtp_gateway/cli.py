# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line interface for smtp-gateway.

Usage:
    smtp-gateway send --config config.ini --to "Jane Doe <jane@example.com>" \\
        --subject "Hello" --body "Hi Jane"
    smtp-gateway config --config config.ini

Settings come from the ``[email_smtp]`` section of the config file, with
``SMTPGW_*`` environment variables as fallbacks.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from email.utils import parseaddr
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config_loader import load_smtp_config
from .errors import EmailGatewayError, EmailValidationError
from .gateway import SMTPGateway

console = Console()
err_console = Console(stderr=True)


def _configure_logging() -> None:
    log_level = os.getenv("SMTPGW_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def run_async(coro):
    """Execute an async coroutine synchronously from CLI context."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print a formatted error message to stderr."""
    err_console.print(f"[red]Error:[/red] {escape(message)}")


def print_success(message: str) -> None:
    """Print a formatted success message with checkmark."""
    console.print(f"[green]✓[/green] {escape(message)}")


def print_json(data: Any) -> None:
    """Print data as syntax-highlighted JSON."""
    console.print_json(json.dumps(data, indent=2, default=str))


def _parse_header(value: str) -> tuple[str, str]:
    """Split a ``Name: value`` option into its parts."""
    name, sep, body = value.partition(":")
    if not sep or not name.strip():
        raise click.BadParameter(f"expected 'Name: value', got {value!r}", param_hint="--header")
    return name.strip(), body.strip()


def _gateway_summary(gateway: SMTPGateway) -> dict[str, Any]:
    return {
        "host": gateway.host,
        "port": gateway.port,
        "secure": gateway.secure.value,
        "helo_hostname": gateway.helo_hostname,
        "auth": gateway.auth,
        "username": gateway.username,
        "password": "********" if gateway.password else None,
        "from_address": gateway.message.sender_address,
        "from_name": gateway.message.sender_name,
    }


@click.group()
@click.version_option(package_name="smtp-gateway")
def main() -> None:
    """smtp-gateway CLI - Send email through an SMTP server."""
    _configure_logging()


@main.command("config")
@click.option("--config", "-c", "config_path", type=click.Path(dir_okay=False), help="Path to config.ini.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def show_config(config_path: str | None, as_json: bool) -> None:
    """Show the effective SMTP settings (password masked)."""
    try:
        gateway = SMTPGateway(config=load_smtp_config(config_path))
    except EmailValidationError as e:
        print_error(str(e))
        sys.exit(1)

    summary = _gateway_summary(gateway)
    if as_json:
        print_json(summary)
        return

    table = Table(title="SMTP Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in summary.items():
        table.add_row(key, "[dim]-[/dim]" if value is None else str(value))
    console.print(table)


@main.command("send")
@click.option("--config", "-c", "config_path", type=click.Path(dir_okay=False), help="Path to config.ini.")
@click.option("--to", "-t", "to", multiple=True, required=True, help="Recipient, 'Name <address>' accepted.")
@click.option("--cc", multiple=True, help="Carbon copy recipient.")
@click.option("--bcc", multiple=True, help="Blind carbon copy recipient.")
@click.option("--subject", "-s", default="", help="Message subject.")
@click.option("--body", "-b", default=None, help="Plain text body.")
@click.option("--body-file", type=click.Path(exists=True, dir_okay=False), help="Read the plain text body from a file.")
@click.option("--html-file", type=click.Path(exists=True, dir_okay=False), help="HTML alternative body.")
@click.option("--attach", "-a", multiple=True, type=click.Path(exists=True, dir_okay=False), help="File to attach.")
@click.option("--from", "from_address", default=None, help="Sender address (overrides config).")
@click.option("--from-name", default=None, help="Sender display name (overrides config).")
@click.option("--reply-to", default=None, help="Reply-To, 'Name <address>' accepted.")
@click.option("--header", "-H", "headers", multiple=True, help="Extra header, 'Name: value'.")
@click.option("--envelope-from", default=None, help="MAIL FROM address used for bounces.")
def send(
    config_path: str | None,
    to: tuple[str, ...],
    cc: tuple[str, ...],
    bcc: tuple[str, ...],
    subject: str,
    body: str | None,
    body_file: str | None,
    html_file: str | None,
    attach: tuple[str, ...],
    from_address: str | None,
    from_name: str | None,
    reply_to: str | None,
    headers: tuple[str, ...],
    envelope_from: str | None,
) -> None:
    """Send one message."""
    parsed_headers = [_parse_header(h) for h in headers]

    try:
        gateway = SMTPGateway(config=load_smtp_config(config_path))
        message = gateway.message
        if from_address:
            message.set_from(from_address, from_name or message.sender_name)
        elif from_name:
            message.sender_name = from_name

        for recipient in to:
            name, address = parseaddr(recipient)
            message.add_recipient(address or recipient, name or None)
        if reply_to:
            name, address = parseaddr(reply_to)
            message.set_reply_to(address or reply_to, name or None)

        for name, value in parsed_headers:
            message.set_header_field(name, value)
        if cc:
            message.set_header_field("Cc", ", ".join(cc))
        if bcc:
            message.set_header_field("Bcc", ", ".join(bcc))

        message.subject = subject
        if body_file:
            message.text_plain = Path(body_file).read_text()
        elif body is not None:
            message.text_plain = body
        if html_file:
            message.text_html = Path(html_file).read_text()
        for path in attach:
            message.add_attachment(path)

        gateway.set_envelope_from(envelope_from)
        recipients = message.delivery_recipients()
        run_async(gateway.send())
    except EmailValidationError as e:
        print_error(str(e))
        sys.exit(1)
    except EmailGatewayError as e:
        print_error(f"Delivery failed: {e}")
        sys.exit(2)

    print_success(f"Message sent to {len(recipients)} recipient(s) via {gateway.host}:{gateway.port}")


if __name__ == "__main__":
    main()
