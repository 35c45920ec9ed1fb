# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Header field body encoding (RFC 2047) and folding (RFC 5322).

Provides the codec used for every header that leaves the gateway:

- encode_word: Q-encode a header text only when it cannot travel as-is.
- fold: split a header body into wire lines of at most 78 characters.
- fold_header: render ``Name: body`` with CRLF continuation lines.
- canonical_header_name: normalise header field names.

Example:
    Encode and fold a subject::

        subject = encode_word("Résumé of the quarterly report")
        wire = fold_header("Subject", subject)
        # 'Subject: =?UTF-8?Q?R=C3=A9sum=C3=A9_of_the_quarterly_report?='
"""

from __future__ import annotations

import string

MAX_LINE_LENGTH = 78
"""Recommended maximum line length, CRLF excluded."""

MAX_ENCODED_WORD_LENGTH = 75
"""Maximum length of a single encoded word (RFC 2047 section 2)."""

CHARSET = "UTF-8"

SPECIALS = frozenset('()<>@,;:"[]\\')
"""Characters that change the meaning of a header when left unencoded."""

_PREFIX = f"=?{CHARSET}?Q?"
_SUFFIX = "?="
_PAYLOAD_LENGTH = MAX_ENCODED_WORD_LENGTH - len(_PREFIX) - len(_SUFFIX)
_Q_SAFE = frozenset(string.ascii_letters + string.digits + "!*+-/")

_SPECIAL_CASE_NAMES = {
    "message-id": "Message-ID",
    "mime-version": "MIME-Version",
    "content-id": "Content-ID",
    "reply-to": "Reply-To",
    "dkim-signature": "DKIM-Signature",
}


def needs_encoding(text: str) -> bool:
    """Return ``True`` when ``text`` cannot be written verbatim in a header."""
    if "=?" in text:
        return True
    for char in text:
        if not " " <= char <= "~" or char in SPECIALS:
            return True
    return False


def _q_encode_char(char: str) -> str:
    if char == " ":
        return "_"
    if char in _Q_SAFE:
        return char
    return "".join(f"={byte:02X}" for byte in char.encode("utf-8"))


def encode_word(text: str) -> str:
    """Return ``text`` as RFC 2047 Q-encoded words, or unchanged if safe.

    Long input is spread over several encoded words separated by a single
    space, each at most 75 characters long. A character is never split
    across two words, so every word decodes on its own.
    """
    if not text or not needs_encoding(text):
        return text

    words: list[str] = []
    payload = ""
    for char in text:
        encoded = _q_encode_char(char)
        if payload and len(payload) + len(encoded) > _PAYLOAD_LENGTH:
            words.append(f"{_PREFIX}{payload}{_SUFFIX}")
            payload = ""
        payload += encoded
    words.append(f"{_PREFIX}{payload}{_SUFFIX}")
    return " ".join(words)


def fold(body: str, offset: int = 0) -> list[str]:
    """Split a header body into lines of at most ``MAX_LINE_LENGTH`` characters.

    Breaks happen only at single spaces; each continuation line starts with
    the space the break happened at, so ``"".join(lines) == body``. A token
    longer than the limit is emitted unsplit on its own line.

    Args:
        body: Header field body, already encoded.
        offset: Characters already used on the first line (``len("Name: ")``).

    Returns:
        Wire lines without line terminators.
    """
    tokens = body.split(" ")
    lines: list[str] = []
    current = tokens[0]
    limit = MAX_LINE_LENGTH - offset

    for token in tokens[1:]:
        candidate = f"{current} {token}"
        # A whitespace-only line would be read as the end of the header block
        if len(candidate) <= limit or not current.strip():
            current = candidate
            continue
        lines.append(current)
        current = f" {token}"
        limit = MAX_LINE_LENGTH

    lines.append(current)
    return lines


def fold_header(name: str, body: str) -> str:
    """Render a complete header field with CRLF continuation lines."""
    lines = fold(body, offset=len(name) + 2)
    return f"{name}: " + "\r\n".join(lines)


def canonical_header_name(name: str) -> str:
    """Return the canonical spelling of a header field name.

    ``"x-mailer"`` becomes ``"X-Mailer"``, ``"message-id"`` becomes
    ``"Message-ID"``.
    """
    key = name.strip().lower()
    if key in _SPECIAL_CASE_NAMES:
        return _SPECIAL_CASE_NAMES[key]
    return "-".join(part.capitalize() for part in key.split("-"))


__all__ = [
    "MAX_LINE_LENGTH",
    "canonical_header_name",
    "encode_word",
    "fold",
    "fold_header",
    "needs_encoding",
]
