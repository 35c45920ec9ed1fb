# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Capability interface shared by email gateways."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .message import OutgoingMessage


@runtime_checkable
class EmailGateway(Protocol):
    """What a caller can rely on, whatever the delivery mechanism.

    A gateway holds an :class:`OutgoingMessage` as its composition state and
    adds its own transport settings on top of it.
    """

    message: OutgoingMessage

    def validate(self) -> None: ...

    def prepare_body(self) -> tuple[dict[str, str], str]: ...

    async def send(self) -> bool: ...

    def reset(self) -> None: ...

    def open_connection(self) -> bool: ...

    async def close_connection(self) -> bool: ...
