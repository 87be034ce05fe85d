# FILE: tests/test_llm_client.py
"""Tests for the OpenAI-compatible chat client and the metered wrapper."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from config.settings import LLMSettings
from topic_miner.budget import BudgetManager
from topic_miner.llm.client import LLMError, MeteredChat, OpenAIChatClient, prompt_hash


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _fake_openai(*, returns=None, raises=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=returns, side_effect=raises)
    return client


SETTINGS = LLMSettings(provider="openai", model="gpt-test", temperature=0.1, api_key=None)


class TestOpenAIChatClient:
    def test_missing_api_key(self):
        with pytest.raises(LLMError, match="OPENAI_API_KEY is required"):
            OpenAIChatClient(SETTINGS)

    @pytest.mark.asyncio
    async def test_returns_content(self):
        fake = _fake_openai(returns=_completion('{"ok": true}'))
        chat = OpenAIChatClient(SETTINGS, client=fake)

        content = await chat("system", "user", role="synthesizer")

        assert content == '{"ok": true}'
        kwargs = fake.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["temperature"] == 0.1
        assert kwargs["messages"][0] == {"role": "system", "content": "system\nOutput JSON only."}
        assert kwargs["messages"][1] == {"role": "user", "content": "user"}

    @pytest.mark.asyncio
    async def test_audit_recorded(self):
        seen = []
        chat = OpenAIChatClient(SETTINGS, client=_fake_openai(returns=_completion("{}")), on_audit=seen.append)

        await chat("sys", "usr", role="repair_patch")

        audit = chat.audits[0]
        assert seen == [audit]
        assert audit.role == "repair_patch"
        assert audit.prompt_hash == prompt_hash("sys", "usr")
        assert audit.prompt_chars == 6
        assert audit.completion_chars == 2
        assert "error" not in audit.to_dict()

    @pytest.mark.asyncio
    async def test_content_parts_joined(self):
        parts = [{"type": "text", "text": '{"a":'}, {"type": "text", "text": " 1}"}]
        chat = OpenAIChatClient(SETTINGS, client=_fake_openai(returns=_completion(parts)))
        assert await chat("s", "u") == '{"a": 1}'

    @pytest.mark.asyncio
    async def test_empty_content(self):
        chat = OpenAIChatClient(SETTINGS, client=_fake_openai(returns=_completion(None)))
        with pytest.raises(LLMError, match="empty content"):
            await chat("s", "u")
        assert chat.audits[0].error == "LLM returned empty content."

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self):
        chat = OpenAIChatClient(SETTINGS, client=_fake_openai(raises=ConnectionError("reset by peer")))
        with pytest.raises(LLMError, match="reset by peer"):
            await chat("s", "u")
        assert chat.audits[0].error == "reset by peer"


class TestMeteredChat:
    @pytest.mark.asyncio
    async def test_charges_budget(self):
        budget = BudgetManager()
        llm = AsyncMock(return_value="x" * 8)
        metered = MeteredChat(llm, budget, "acme/notes", iteration=2)

        assert await metered("abcd", "efgh", role="synthesizer") == "x" * 8

        assert budget.state.llm_calls_per_repo == {"acme/notes": 1}
        assert budget.state.tokens_approx_total == 4
        llm.assert_awaited_once_with("abcd", "efgh", role="synthesizer")

    @pytest.mark.asyncio
    async def test_failed_call_still_charged(self):
        budget = BudgetManager()
        metered = MeteredChat(AsyncMock(side_effect=LLMError("boom")), budget, "acme/notes")

        with pytest.raises(LLMError):
            await metered("abcd", "", role="repair_patch")

        assert budget.state.llm_calls_total == 1
        assert budget.state.tokens_approx_total == 1
