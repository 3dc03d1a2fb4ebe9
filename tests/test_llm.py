"""Tests for src.core.llm — provider selection and routing (no network)."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.core.llm import SUPPORTED_PROVIDERS, LLMClient


class TestLLMClient:
    def test_default_model_per_provider(self):
        assert LLMClient("openai", "key").model == "gpt-4o-mini"
        assert LLMClient("Gemini", "key").model == "gemini-2.0-flash"

    def test_explicit_model_wins(self):
        client = LLMClient("anthropic", "key", model="claude-sonnet-4-5")
        assert client.provider == "anthropic"
        assert client.model == "claude-sonnet-4-5"

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown LLM_PROVIDER"):
            LLMClient("palm", "key")

    def test_supported_providers(self):
        assert set(SUPPORTED_PROVIDERS) == {"gemini", "anthropic", "openai", "cohere"}

    def test_from_settings(self):
        settings = MagicMock(LLM_PROVIDER="cohere", LLM_API_KEY="key", LLM_MODEL="")
        assert LLMClient.from_settings(settings).model == "command-a-03-2025"

    @pytest.mark.asyncio
    async def test_complete_routes_to_provider(self):
        fake = AsyncMock(return_value='{"action": "task"}')
        with patch.dict("src.core.llm._PROVIDERS", {"openai": (fake, "gpt-4o-mini")}):
            client = LLMClient("openai", "secret")
        result = await client.complete("system prompt", "hello", max_tokens=64)
        assert result == '{"action": "task"}'
        fake.assert_awaited_once_with("secret", "gpt-4o-mini", "system prompt", "hello", 64)

    @pytest.mark.asyncio
    async def test_provider_errors_propagate(self):
        fake = AsyncMock(side_effect=RuntimeError("rate limited"))
        with patch.dict("src.core.llm._PROVIDERS", {"openai": (fake, "gpt-4o-mini")}):
            client = LLMClient("openai", "secret")
        with pytest.raises(RuntimeError):
            await client.complete("s", "u")
