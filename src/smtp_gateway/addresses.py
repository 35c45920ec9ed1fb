# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Recipient list construction and address helpers."""

from __future__ import annotations

import re
from collections.abc import Collection, Mapping
from email.utils import getaddresses
from typing import Any

from .headers import encode_word

ADDRESS_PATTERN = re.compile(r"^[^@\s<>,;\"]+@[^@\s<>,;\"]+$")


def is_valid_address(address: Any) -> bool:
    """Return ``True`` for a bare ``local@domain`` address."""
    if not isinstance(address, str):
        return False
    return bool(ADDRESS_PATTERN.fullmatch(address))


def is_numeric_label(label: Any) -> bool:
    """Return ``True`` for positional labels that carry no display name."""
    if isinstance(label, bool):
        return False
    if isinstance(label, int):
        return label >= 0
    return isinstance(label, str) and label.isascii() and label.isdigit()


def parse_address_list(value: str | None) -> list[str]:
    """Return the bare addresses contained in a header value.

    ``"Jane <jane@x.com>, bob@y.com"`` gives ``["jane@x.com", "bob@y.com"]``.
    """
    if not value:
        return []
    return [addr for _, addr in getaddresses([value]) if addr]


def format_address(address: str, name: str | None = None) -> str:
    """Return ``address`` alone or ``"encoded-name <address>"``."""
    if not name:
        return address
    return f"{encode_word(name)} <{address}>"


def encode_address_list(value: str) -> str:
    """Re-render a caller-supplied address header with encoded display names."""
    return ", ".join(format_address(addr, name) for name, addr in getaddresses([value]) if addr)


def build_recipient_list(
    recipients: Mapping[Any, str],
    exclude: str | Collection[str] | None = None,
) -> str:
    """Build the visible ``To`` header body from a label to address mapping.

    Addresses listed in ``exclude`` (the Bcc-routed ones) are left out of the
    list; they are still delivered by the caller. Numeric labels produce a
    bare address, other labels are word-encoded display names.

    Args:
        recipients: Ordered mapping of label to address.
        exclude: One address or a collection of addresses to hide.

    Returns:
        Comma separated recipient list, in the mapping's order.
    """
    if exclude is None:
        hidden: set[str] = set()
    elif isinstance(exclude, str):
        hidden = {exclude.lower()}
    else:
        hidden = {addr.lower() for addr in exclude}

    entries = []
    for label, address in recipients.items():
        if address.lower() in hidden:
            continue
        if is_numeric_label(label):
            entries.append(address)
        else:
            entries.append(format_address(address, str(label)))
    return ", ".join(entries)


__all__ = [
    "build_recipient_list",
    "encode_address_list",
    "format_address",
    "is_numeric_label",
    "is_valid_address",
    "parse_address_list",
]
