"""
HomeBase Assistant — Audit Service.

Best-effort recording of inbound messages and classifier calls. A failure
here is logged and swallowed; it never reaches the user-visible flow.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.data.db import AuditDB

logger = logging.getLogger(__name__)


class AuditService:
    """Thin wrapper over AuditDB that never raises."""

    def __init__(self, audit_db: AuditDB | None) -> None:
        self._db = audit_db

    def log_message(
        self,
        message_id: int,
        user_id: int,
        group_id: int | None,
        chat_id: int,
        text: str,
        message_type: str = "text",
    ) -> int | None:
        """Record an inbound message. Returns the audit row id, or None on failure."""
        if self._db is None:
            return None
        try:
            return self._db.log_message(
                message_id, user_id, group_id, chat_id, text, message_type,
            )
        except Exception as exc:
            logger.error("Failed to audit message %d from %d: %s", message_id, user_id, exc)
            return None

    def log_llm_interaction(
        self,
        user_id: int,
        group_id: int | None,
        prompt: str,
        response: str,
        *,
        message_audit_id: int | None = None,
        parsed_action: dict | None = None,
        model: str | None = None,
        response_time_ms: int | None = None,
        error: str | None = None,
    ) -> None:
        if self._db is None:
            return
        try:
            self._db.log_llm(
                message_audit_id, user_id, group_id, prompt, response,
                parsed_action=parsed_action,
                model=model,
                response_time_ms=response_time_ms,
                error=error,
            )
        except Exception as exc:
            logger.error("Failed to audit LLM call for %d: %s", user_id, exc)

    def private_chat_recipients(self) -> list[tuple[int, int]]:
        """(user_id, chat_id) pairs for scheduled notifications; empty on failure."""
        if self._db is None:
            return []
        try:
            return self._db.private_chat_recipients()
        except Exception as exc:
            logger.error("Failed to read notification recipients: %s", exc)
            return []
