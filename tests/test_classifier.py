"""Tests for src.core.classifier — prompt building and response parsing.

The LLM client is mocked; no provider is ever called.
"""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.classifier import (
    ClassifierContext,
    IntentClassifier,
    _clean_llm_response,
    build_prompt,
    parse_response,
)
from src.core.errors import ClassifierError

TASK_JSON = json.dumps({
    "action": "task",
    "operation": "create",
    "scope": None,
    "scope_users": [],
    "parameters": {"task": "Pay bill", "priority": "high"},
})


def _context(**overrides):
    fields = {"user_id": 1, "user_name": "Amit", "timezone": "UTC"}
    fields.update(overrides)
    return ClassifierContext(**fields)


def _llm(response=TASK_JSON):
    llm = MagicMock()
    llm.model = "test-model"
    llm.complete = AsyncMock(return_value=response)
    return llm


class TestCleanLLMResponse:
    def test_strips_json_fence(self):
        assert _clean_llm_response('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_strips_plain_fence(self):
        assert _clean_llm_response('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_leaves_plain_json(self):
        assert _clean_llm_response('  {"a": 1} ') == '{"a": 1}'


class TestBuildPrompt:
    def test_private_chat(self):
        now = datetime(2026, 3, 4, 22, 30, tzinfo=timezone.utc)
        prompt = build_prompt(_context(timezone="Asia/Jerusalem", now=now))
        assert "private chat" in prompt
        assert "Current user: Amit" in prompt
        assert "2026-03-05 00:30:00" in prompt
        assert "Asia/Jerusalem" in prompt
        assert "Available users" not in prompt

    def test_group_chat_lists_available_names(self):
        prompt = build_prompt(_context(group_id=-100, available_names=["Amit", "Dana"]))
        assert "group chat" in prompt
        assert "Available users in group: Amit, Dana" in prompt


class TestParseResponse:
    def test_valid_object(self):
        parsed = parse_response(TASK_JSON)
        assert parsed.action == "task"
        assert parsed.parameters["task"] == "Pay bill"

    def test_fenced_object(self):
        assert parse_response(f"```json\n{TASK_JSON}\n```").operation == "create"

    def test_single_item_list_unwrapped(self):
        assert parse_response(f"[{TASK_JSON}]").action == "task"

    @pytest.mark.parametrize("raw", ["", "not json", "{}", "[]", "[1, 2]", '"task"'])
    def test_unusable_output_raises(self, raw):
        with pytest.raises(ClassifierError):
            parse_response(raw)

    def test_missing_operation_raises(self):
        with pytest.raises(ClassifierError):
            parse_response('{"action": "task"}')


class TestIntentClassifier:
    @pytest.mark.asyncio
    async def test_classify_returns_parsed_action(self):
        llm = _llm()
        classifier = IntentClassifier(llm)
        parsed = await classifier.classify("add task pay bill", _context())
        assert parsed.action == "task"
        system, text = llm.complete.call_args.args
        assert "Return ONLY one JSON object" in system
        assert text == "add task pay bill"

    @pytest.mark.asyncio
    async def test_provider_error_becomes_classifier_error(self):
        llm = _llm()
        llm.complete.side_effect = RuntimeError("quota exceeded")
        with pytest.raises(ClassifierError):
            await IntentClassifier(llm).classify("hi", _context())

    @pytest.mark.asyncio
    async def test_every_call_is_audited(self):
        audit = MagicMock()
        classifier = IntentClassifier(_llm(), audit=audit)
        await classifier.classify("add task", _context(message_audit_id=42))

        audit.log_llm_interaction.assert_called_once()
        args, kwargs = audit.log_llm_interaction.call_args
        assert args[0] == 1
        assert args[3] == TASK_JSON
        assert kwargs["message_audit_id"] == 42
        assert kwargs["model"] == "test-model"
        assert kwargs["parsed_action"]["action"] == "task"
        assert kwargs["error"] is None

    @pytest.mark.asyncio
    async def test_failed_call_is_audited_with_error(self):
        audit = MagicMock()
        classifier = IntentClassifier(_llm("sorry, no idea"), audit=audit)
        with pytest.raises(ClassifierError):
            await classifier.classify("blah", _context())
        kwargs = audit.log_llm_interaction.call_args.kwargs
        assert kwargs["parsed_action"] is None
        assert kwargs["error"] == "unparseable classifier output"
