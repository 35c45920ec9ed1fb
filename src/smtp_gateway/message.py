# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Composition state of an outgoing email.

OutgoingMessage holds what the caller populates before each send (sender,
recipients, subject, text and HTML bodies, attachments, custom header
fields), validates it, and materializes the MIME body with the standard
library ``email`` package. It never talks to the network.

Example:
    Compose a message::

        message = OutgoingMessage()
        message.set_from("noreply@example.com", "Example Robot")
        message.add_recipient("jane@example.com", "Jane Doe")
        message.subject = "Welcome"
        message.text_plain = "Hello Jane"
        message.add_attachment(Attachment.from_path("/tmp/report.pdf"))
        headers, body = message.prepare_body()
"""

from __future__ import annotations

import mimetypes
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from email import policy
from email.message import EmailMessage
from email.utils import getaddresses
from pathlib import Path
from typing import Any

from .addresses import is_valid_address, parse_address_list
from .errors import EmailValidationError
from .headers import canonical_header_name

# 7bit transfer encoding: the body never needs 8BITMIME support
WIRE_POLICY = policy.SMTP.clone(cte_type="7bit")

BODY_HEADER_FIELDS = ("Content-Type", "Content-Transfer-Encoding", "Content-Disposition")


@dataclass
class Attachment:
    """File attached to an outgoing message."""

    filename: str
    content: bytes
    mime_type: str | None = None

    @classmethod
    def from_path(cls, path: str | Path, mime_type: str | None = None) -> "Attachment":
        """Read an attachment from the local filesystem."""
        resolved = Path(path)
        if not resolved.is_file():
            raise EmailValidationError(f"Attachment not found: {resolved}")
        return cls(filename=resolved.name, content=resolved.read_bytes(), mime_type=mime_type)

    def guess_mime(self) -> tuple[str, str]:
        """Return ``(maintype, subtype)`` for the attachment."""
        mime_type = self.mime_type or mimetypes.guess_type(self.filename)[0]
        if not mime_type or "/" not in mime_type:
            return "application", "octet-stream"
        maintype, subtype = mime_type.split("/", 1)
        return maintype, subtype


@dataclass
class OutgoingMessage:
    """Abstract email populated by the caller before each send."""

    sender_name: str | None = None
    sender_address: str | None = None
    reply_to_name: str | None = None
    reply_to_address: str | None = None
    subject: str | None = None
    text_plain: str | None = None
    text_html: str | None = None
    recipients: dict[Any, str] = field(default_factory=dict)
    header_fields: dict[str, str] = field(default_factory=dict)
    attachments: list[Attachment] = field(default_factory=list)

    # ------------------------------------------------------------- mutators
    def set_from(self, address: str | None, name: str | None = None) -> None:
        self.sender_address = address
        self.sender_name = name

    def set_reply_to(self, address: str | None, name: str | None = None) -> None:
        self.reply_to_address = address
        self.reply_to_name = name

    def set_recipients(self, recipients: Mapping[Any, str] | Iterable[str] | str) -> None:
        """Replace the recipients.

        Accepts a label to address mapping, a list of addresses (labelled by
        position) or a comma separated header-style string.
        """
        if isinstance(recipients, str):
            self.recipients = {}
            for name, address in getaddresses([recipients]):
                if address:
                    self.add_recipient(address, name or None)
            return
        if isinstance(recipients, Mapping):
            self.recipients = dict(recipients)
        else:
            self.recipients = dict(enumerate(recipients))

    def add_recipient(self, address: str, name: str | None = None) -> None:
        """Append a recipient, with a display name when given."""
        if name:
            self.recipients[name] = address
        else:
            label = len(self.recipients)
            while label in self.recipients:
                label += 1
            self.recipients[label] = address

    def set_header_field(self, name: str, body: str) -> None:
        """Set a custom header field; the body is given unencoded."""
        if "\r" in body or "\n" in body:
            raise EmailValidationError(f"Header field {name} can not contain carriage return or newlines.")
        self.header_fields[canonical_header_name(name)] = body

    def set_header_fields(self, fields: Mapping[str, str]) -> None:
        for name, body in fields.items():
            self.set_header_field(name, body)

    def add_attachment(self, attachment: Attachment | str | Path) -> None:
        if not isinstance(attachment, Attachment):
            attachment = Attachment.from_path(attachment)
        self.attachments.append(attachment)

    # ------------------------------------------------------------ accessors
    @property
    def body(self) -> str | None:
        """Plain text body, or the HTML body when no plain text is set."""
        return self.text_plain if self.text_plain is not None else self.text_html

    def canonical_header_fields(self) -> dict[str, str]:
        """Return ``header_fields`` keyed by canonical name.

        ``header_fields`` may be written directly, so names are normalised
        and bodies re-checked here. Spellings of the same name are merged
        into one comma separated body.

        Raises:
            EmailValidationError: when a name or body contains CR or LF.
        """
        fields: dict[str, str] = {}
        for name, body in self.header_fields.items():
            body = str(body)
            if any(c in f"{name}{body}" for c in "\r\n"):
                raise EmailValidationError(f"Header field {name} can not contain carriage return or newlines.")
            canonical = canonical_header_name(name)
            fields[canonical] = f"{fields[canonical]}, {body}" if canonical in fields else body
        return fields

    def _addresses_in(self, field_name: str) -> list[str]:
        addresses: list[str] = []
        for name, body in self.header_fields.items():
            if canonical_header_name(name) == field_name:
                addresses.extend(parse_address_list(str(body)))
        return addresses

    @property
    def cc_addresses(self) -> list[str]:
        return self._addresses_in("Cc")

    @property
    def bcc_addresses(self) -> list[str]:
        return self._addresses_in("Bcc")

    def delivery_recipients(self) -> list[str]:
        """Every address the message is delivered to, Cc and Bcc included, de-duplicated."""
        seen: set[str] = set()
        addresses = []
        for address in [*self.recipients.values(), *self.cc_addresses, *self.bcc_addresses]:
            if address.lower() in seen:
                continue
            seen.add(address.lower())
            addresses.append(address)
        return addresses

    # ------------------------------------------------------------ lifecycle
    def validate(self) -> None:
        """Check that the message can be sent.

        Raises:
            EmailValidationError: when the sender or the recipients are
                missing, when any address is malformed, or when a header
                field contains CR or LF.
        """
        self.canonical_header_fields()
        if not self.sender_address:
            raise EmailValidationError("Email sender address is missing.")
        if not is_valid_address(self.sender_address):
            raise EmailValidationError(f"Email sender address {self.sender_address!r} is invalid.")
        if self.reply_to_address and not is_valid_address(self.reply_to_address):
            raise EmailValidationError(f"Reply-To address {self.reply_to_address!r} is invalid.")
        if not self.recipients:
            raise EmailValidationError("Email recipients are missing.")
        for address in self.recipients.values():
            if not is_valid_address(address):
                raise EmailValidationError(f"Email recipient address {address!r} is invalid.")
        for name, addresses in (("Cc", self.cc_addresses), ("Bcc", self.bcc_addresses)):
            for address in addresses:
                if not is_valid_address(address):
                    raise EmailValidationError(f"{name} address {address!r} is invalid.")

    def prepare_body(self) -> tuple[dict[str, str], str]:
        """Materialize the MIME body.

        Builds plain text, HTML alternative and attachments into a single MIME
        entity. The message itself is left untouched.

        Returns:
            ``(content_fields, body)``: the MIME header fields describing the
            body and the CRLF-terminated body text ready for DATA.
        """
        mime = EmailMessage(policy=WIRE_POLICY)
        if self.text_plain is not None:
            mime.set_content(self.text_plain)
            if self.text_html is not None:
                mime.add_alternative(self.text_html, subtype="html")
        elif self.text_html is not None:
            mime.set_content(self.text_html, subtype="html")
        else:
            mime.set_content("")

        for attachment in self.attachments:
            maintype, subtype = attachment.guess_mime()
            mime.add_attachment(
                attachment.content,
                maintype=maintype,
                subtype=subtype,
                filename=attachment.filename,
            )

        fields = {name: str(mime[name]) for name in BODY_HEADER_FIELDS if mime[name] is not None}
        raw = mime.as_string()
        _head, _sep, body = raw.partition("\r\n\r\n")
        return fields, body

    def reset(self) -> None:
        """Forget everything that belongs to one message; the sender identity stays."""
        self.subject = None
        self.text_plain = None
        self.text_html = None
        self.recipients = {}
        self.header_fields = {}
        self.attachments = []
