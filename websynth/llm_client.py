"""OpenRouter access for the agent: one system prompt, plain-text turns, text back."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from websynth.config import settings


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class TextBlock:
    type: str
    text: str


@dataclass
class MessageResponse:
    content: list[TextBlock] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)

    @property
    def text(self) -> str:
        return "\n".join(block.text for block in self.content if block.type == "text")


def _chat_messages(system: str, messages: list[dict[str, str]]) -> list[dict[str, str]]:
    chat = [{"role": "system", "content": system}] if system else []
    for message in messages:
        if not isinstance(message.get("content"), str):
            raise TypeError(f"Only text turns are supported, got {type(message.get('content')).__name__}")
        chat.append({"role": message["role"], "content": message["content"]})
    return chat


def _to_message_response(completion: Any) -> MessageResponse:
    text = completion.choices[0].message.content if completion.choices else None
    usage = getattr(completion, "usage", None)
    return MessageResponse(
        content=[TextBlock(type="text", text=text)] if text else [],
        usage=Usage(
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        ),
    )


class OpenRouterMessagesAdapter:
    """``messages.create`` over OpenRouter's OpenAI-compatible chat completions."""

    def __init__(self, openai_client: Any):
        self._client = openai_client

    async def create(
        self,
        *,
        model: str,
        max_tokens: int,
        system: str,
        messages: list[dict[str, str]],
        temperature: float = 0.0,
    ) -> MessageResponse:
        completion = await self._client.chat.completions.create(
            model=model,
            messages=_chat_messages(system, messages),
            max_tokens=max_tokens,
            temperature=temperature,
        )
        return _to_message_response(completion)


class OpenRouterClientAdapter:
    def __init__(self, openai_client: Any):
        self.messages = OpenRouterMessagesAdapter(openai_client)


def get_client() -> OpenRouterClientAdapter:
    """Get OpenRouter client via OpenAI-compatible SDK."""
    from openai import AsyncOpenAI

    openai_client = AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1",
    )
    return OpenRouterClientAdapter(openai_client)


def get_model() -> str:
    """Model id for agent calls: the OpenRouter override, else the default."""
    return settings.openrouter_model or settings.default_model


_client: OpenRouterClientAdapter | None = None


def client() -> OpenRouterClientAdapter:
    """Get or create the LLM client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client
