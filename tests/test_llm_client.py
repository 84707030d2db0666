"""Tests for the OpenRouter messages adapter."""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from websynth.llm_client import OpenRouterMessagesAdapter, get_model


def _completion(text, prompt_tokens=12, completion_tokens=34):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def _adapter(completion):
    openai_client = MagicMock()
    openai_client.chat.completions.create = AsyncMock(return_value=completion)
    return OpenRouterMessagesAdapter(openai_client), openai_client.chat.completions.create


class TestGetModel:
    def test_get_model_returns_default_when_no_override(self):
        with patch("websynth.llm_client.settings") as mock_settings:
            mock_settings.openrouter_model = ""
            mock_settings.default_model = "meta-llama/llama-4-scout"

            assert get_model() == "meta-llama/llama-4-scout"

    def test_get_model_returns_openrouter_override(self):
        with patch("websynth.llm_client.settings") as mock_settings:
            mock_settings.openrouter_model = "openai/gpt-4.1"
            mock_settings.default_model = "meta-llama/llama-4-scout"

            assert get_model() == "openai/gpt-4.1"


class TestOpenRouterAdapter:
    @pytest.mark.asyncio
    async def test_create_sends_system_then_user_turns(self):
        adapter, create = _adapter(_completion("q1\nq2"))

        response = await adapter.create(
            model="test-model",
            max_tokens=512,
            system="You are a careful research assistant.",
            messages=[{"role": "user", "content": "Generate queries"}],
        )

        kwargs = create.await_args.kwargs
        assert kwargs["messages"] == [
            {"role": "system", "content": "You are a careful research assistant."},
            {"role": "user", "content": "Generate queries"},
        ]
        assert kwargs["max_tokens"] == 512
        assert kwargs["temperature"] == 0.0
        assert response.text == "q1\nq2"
        assert (response.usage.input_tokens, response.usage.output_tokens) == (12, 34)

    @pytest.mark.asyncio
    async def test_empty_completion_maps_to_empty_text(self):
        adapter, _ = _adapter(_completion(None))

        response = await adapter.create(
            model="m", max_tokens=10, system="", messages=[{"role": "user", "content": "hi"}]
        )

        assert response.content == []
        assert response.text == ""

    @pytest.mark.asyncio
    async def test_non_text_turns_are_rejected(self):
        adapter, create = _adapter(_completion("unused"))

        with pytest.raises(TypeError):
            await adapter.create(
                model="m",
                max_tokens=10,
                system="",
                messages=[{"role": "user", "content": [{"type": "image"}]}],
            )
        create.assert_not_awaited()
