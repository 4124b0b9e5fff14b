from __future__ import annotations

from typing import Any, AsyncIterator

from openai import AsyncOpenAI

from vidstudy.core.config import settings
from vidstudy.schemas.settings import AIModel, AIProvider
from vidstudy.services.llm.base import DEFAULT_TEMPERATURE, LLMMessage, LLMProvider

OPENAI_CHAT_PREFIXES = ("gpt-4", "gpt-3.5", "o1", "o3", "o4", "chatgpt")

OPENAI_DEFAULT_MODELS = [
    "gpt-4o",
    "gpt-4o-mini",
    "gpt-4.1",
    "gpt-4.1-mini",
    "gpt-4.1-nano",
    "o3-mini",
]


def _build_openai_client(api_key: str) -> AsyncOpenAI:
    # OpenAI SDK v1+
    return AsyncOpenAI(
        api_key=api_key,
        timeout=settings.openai_timeout_sec,
        max_retries=settings.openai_max_retries,
    )


class OpenAIProvider(LLMProvider):
    name = AIProvider.OPENAI

    def __init__(
        self,
        api_key: str,
        temperature: float = DEFAULT_TEMPERATURE,
        client: AsyncOpenAI | None = None,
    ) -> None:
        super().__init__(api_key, temperature)
        self.client = client or _build_openai_client(api_key)

    def _params(self, messages: list[LLMMessage], model: str) -> dict[str, Any]:
        return {
            "model": model,
            "messages": [dict(m) for m in messages],
            "temperature": self.temperature,
        }

    async def generate(self, messages: list[LLMMessage], model: str, json_mode: bool = False) -> str:
        params = self._params(messages, model)
        if json_mode:
            params["response_format"] = {"type": "json_object"}

        chat = await self.client.chat.completions.create(**params)
        if not chat.choices:
            return ""
        return (chat.choices[0].message.content or "").strip()

    async def generate_stream(self, messages: list[LLMMessage], model: str) -> AsyncIterator[str]:
        stream = await self.client.chat.completions.create(stream=True, **self._params(messages, model))
        # closes the response when the consumer stops early
        async with stream:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta

    async def list_models(self) -> list[AIModel]:
        models: list[AIModel] = []
        async for m in self.client.models.list():
            if m.id.startswith(OPENAI_CHAT_PREFIXES):
                models.append(AIModel(id=m.id, name=m.id, provider=self.name))
        models.sort(key=lambda x: x.id)
        return models

    def default_models(self) -> list[AIModel]:
        return [AIModel(id=m, name=m, provider=self.name) for m in OPENAI_DEFAULT_MODELS]

    async def aclose(self) -> None:
        await self.client.close()
