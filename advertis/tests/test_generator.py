from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from advertis.errors import GenerationError
from advertis.generator import (
    FILL_BUDGET,
    STAGE_BUDGETS,
    CallBudget,
    FillRequest,
    GenerationContext,
    LLMClient,
    LLMContentGenerator,
    build_fill_prompt,
    build_stage_prompt,
    build_stage_system_prompt,
    extract_json_object,
)
from advertis.interview_schema import DEFAULT_SCHEMA
from advertis.models import PillarType


def _anthropic_client(text: str | None = None, error: Exception | None = None,
                      stop_reason: str = "end_turn") -> LLMClient:
    client = LLMClient(provider="anthropic", api_key="test-key")
    response = MagicMock(stop_reason=stop_reason)
    response.content = [MagicMock(text=text)]
    client._client = MagicMock()
    client._client.messages.create = AsyncMock(return_value=response, side_effect=error)
    return client


class TestPrompts:
    def test_system_prompt_embeds_the_pillar_schema(self):
        prompt = build_stage_system_prompt(PillarType.D)
        assert "Distinction pillar (D)" in prompt
        assert '"positioning"' in prompt
        assert '"tone_of_voice"' in prompt

    def test_stage_prompt(self, full_contents):
        ctx = GenerationContext(
            brand_name="Slow Bakery", sector="", tagline="Bread worth waiting for",
            interview_data={"A1": "Sage", "A2": "   "},
            prior_outputs={PillarType.A: full_contents[PillarType.A]},
            failed_stages=[PillarType.D],
        )
        prompt = build_stage_prompt(PillarType.V, ctx)
        assert "# Brand: Slow Bakery" in prompt
        assert "# Sector: Not specified" in prompt
        assert "**A1**: Sage" in prompt
        assert "**A2**" not in prompt
        assert "## Pillar A - Authenticite" in prompt
        assert "NOTE: pillar(s) D failed to generate in this run" in prompt
        assert prompt.endswith("Generate pillar V now.")

    def test_long_prior_output_is_truncated(self):
        ctx = GenerationContext("B", "S", "", {}, prior_outputs={PillarType.A: "x" * 5000})
        assert "[... truncated ...]" in build_stage_prompt(PillarType.D, ctx)

    def test_fill_prompt_groups_variables_by_pillar(self):
        request = FillRequest(
            brand_name="Slow Bakery", sector="Food", filled={"A0": "Slow Bakery"},
            variables=[v for v in DEFAULT_SCHEMA if v.id in ("A1", "D1", "D2")],
        )
        prompt = build_fill_prompt(request)
        assert "**A0**: Slow Bakery" in prompt
        assert "### Pillar A - Authenticite" in prompt
        assert "### Pillar D - Distinction" in prompt
        assert prompt.index("- D1 (") < prompt.index("- D2 (")
        assert "with the 3 missing variables" in prompt


class TestLLMClient:
    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            LLMClient(provider="carrier-pigeon")

    @pytest.mark.asyncio
    async def test_fenced_json_is_extracted(self):
        client = _anthropic_client('Here you go:\n```json\n{"positioning": "Slow"}\n```')
        assert await client.call("system", "user") == {"positioning": "Slow"}

    @pytest.mark.asyncio
    async def test_invalid_json_is_not_retryable(self):
        client = _anthropic_client("I cannot do that")
        with pytest.raises(GenerationError) as exc_info:
            await client.call("system", "user")
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_non_object_json_is_rejected(self):
        client = _anthropic_client('["a", "b"]')
        with pytest.raises(GenerationError, match="expected an object"):
            await client.call("system", "user")

    @pytest.mark.asyncio
    async def test_api_failure_is_retryable(self):
        client = _anthropic_client(error=ConnectionError("reset by peer"))
        with pytest.raises(GenerationError, match="reset by peer") as exc_info:
            await client.call("system", "user")
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_budget_is_sent_with_the_request(self):
        client = _anthropic_client('{"positioning": "Slow"}')
        await client.call("system", "user", CallBudget(1234, 0.2))
        kwargs = client._client.messages.create.call_args.kwargs
        assert (kwargs["max_tokens"], kwargs["temperature"]) == (1234, 0.2)

    @pytest.mark.asyncio
    async def test_truncated_reply_is_retryable(self):
        client = _anthropic_client('{"positioning": "Sl', stop_reason="max_tokens")
        with pytest.raises(GenerationError, match="truncated at 4000 tokens") as exc_info:
            await client.call("system", "user", STAGE_BUDGETS[PillarType.R])
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_openai_length_finish_is_truncation(self):
        client = LLMClient(provider="openai", api_key="test-key")
        choice = MagicMock(finish_reason="length")
        choice.message.content = '{"a": '
        client._client = MagicMock()
        client._client.chat.completions.create = AsyncMock(return_value=MagicMock(choices=[choice]))
        with pytest.raises(GenerationError, match="truncated"):
            await client.call("system", "user")


def test_extract_json_object_unwraps_fences():
    assert extract_json_object('```\n{"a": 1}\n```') == {"a": 1}
    assert extract_json_object('  {"a": 1}  ') == {"a": 1}


class TestLLMContentGenerator:
    @pytest.mark.asyncio
    async def test_generate_calls_the_client_once(self):
        client = MagicMock()
        client.call = AsyncMock(return_value={"executive_synthesis": "ok"})
        gen = LLMContentGenerator(client)
        ctx = GenerationContext("Slow Bakery", "Food", "", {"A1": "Sage"})
        assert await gen.generate(PillarType.S, ctx) == {"executive_synthesis": "ok"}
        system, user, budget = client.call.call_args.args
        assert budget == STAGE_BUDGETS[PillarType.S]
        assert "Strategie pillar (S)" in system
        assert "Generate pillar S now." in user

    @pytest.mark.asyncio
    async def test_fill_variables_keeps_string_values(self):
        client = MagicMock()
        client.call = AsyncMock(return_value={"A1": "Sage", "A2": 3, "A3": None})
        gen = LLMContentGenerator(client)
        request = FillRequest("Slow Bakery", "Food", {}, list(DEFAULT_SCHEMA[1:4]))
        assert await gen.fill_variables(request) == {"A1": "Sage"}
        assert client.call.call_args.args[2] == FILL_BUDGET
