"""Tests for src.core.audit — best-effort audit service."""

from unittest.mock import MagicMock

from src.core.audit import AuditService


class TestAuditService:
    def test_log_message_returns_row_id(self, audit_db):
        audit = AuditService(audit_db)
        audit_id = audit.log_message(10, 1, None, 1, "buy milk")
        assert audit_db.get_message(audit_id)["message_id"] == 10

    def test_log_llm_interaction(self, audit_db):
        audit = AuditService(audit_db)
        audit.log_llm_interaction(
            1, -100, "prompt", "{}",
            message_audit_id=5, model="gpt-4o-mini", response_time_ms=80, error="no action",
        )
        [call] = audit_db.list_llm_calls(1)
        assert call["group_id"] == -100
        assert call["message_audit_id"] == 5
        assert call["error"] == "no action"
        assert call["parsed_action"] is None

    def test_failures_are_swallowed(self):
        db = MagicMock()
        db.log_message.side_effect = RuntimeError("database is locked")
        db.log_llm.side_effect = RuntimeError("database is locked")
        db.private_chat_recipients.side_effect = RuntimeError("database is locked")
        audit = AuditService(db)

        assert audit.log_message(10, 1, None, 1, "hi") is None
        audit.log_llm_interaction(1, None, "p", "r")
        assert audit.private_chat_recipients() == []

    def test_without_database(self):
        audit = AuditService(None)
        assert audit.log_message(10, 1, None, 1, "hi") is None
        assert audit.private_chat_recipients() == []
