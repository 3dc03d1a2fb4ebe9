"""Notification port — abstract interface for pushing messages to chats.

The scheduler depends on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from typing import Protocol


class NotificationPort(Protocol):
    """Outbound message interface used by the notification scheduler."""

    async def send_message(self, chat_id: int, text: str) -> None: ...
