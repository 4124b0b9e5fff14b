from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from vidstudy.core.config import settings
from vidstudy.schemas.settings import AIModel, AIProvider
from vidstudy.services.llm.base import DEFAULT_TEMPERATURE, LLMMessage, LLMProvider

logger = logging.getLogger(__name__)

GEMINI_DEFAULT_MODELS = [
    ("gemini-2.0-flash", "Gemini 2.0 Flash"),
    ("gemini-2.0-flash-lite", "Gemini 2.0 Flash Lite"),
    ("gemini-2.5-flash-preview-05-20", "Gemini 2.5 Flash Preview"),
    ("gemini-2.5-pro-preview-05-06", "Gemini 2.5 Pro Preview"),
]


class GeminiProvider(LLMProvider):
    """
    Gemini client over the public REST API.

    Uses :generateContent, :streamGenerateContent (SSE) and /models, so the
    only transport dependency is httpx.
    """

    name = AIProvider.GEMINI

    def __init__(
        self,
        api_key: str,
        temperature: float = DEFAULT_TEMPERATURE,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(api_key, temperature)
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.timeout_s = timeout_s if timeout_s is not None else settings.gemini_timeout_sec
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout_s, connect=10.0),
            headers={"x-goog-api-key": self.api_key},
            transport=self.transport,
        )

    def _payload(self, messages: List[LLMMessage], json_mode: bool) -> Dict[str, Any]:
        system_parts = [{"text": m["content"]} for m in messages if m["role"] == "system"]
        contents = [
            {
                # Gemini calls the assistant side "model"
                "role": "model" if m["role"] == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            }
            for m in messages
            if m["role"] != "system"
        ]

        generation_config: Dict[str, Any] = {"temperature": self.temperature}
        if json_mode:
            generation_config["responseMimeType"] = "application/json"

        payload: Dict[str, Any] = {"contents": contents, "generationConfig": generation_config}
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}
        return payload

    @staticmethod
    def _candidate_text(data: Dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts if isinstance(p, dict))

    async def generate(self, messages: List[LLMMessage], model: str, json_mode: bool = False) -> str:
        logger.debug("Gemini generateContent model=%s json_mode=%s", model, json_mode)
        async with self._client() as client:
            r = await client.post(f"/models/{model}:generateContent", json=self._payload(messages, json_mode))
            r.raise_for_status()
            data = r.json()

        return self._candidate_text(data).strip()

    async def generate_stream(self, messages: List[LLMMessage], model: str) -> AsyncIterator[str]:
        async with self._client() as client:
            async with client.stream(
                "POST",
                f"/models/{model}:streamGenerateContent",
                params={"alt": "sse"},
                json=self._payload(messages, json_mode=False),
            ) as r:
                if r.is_error:
                    # body is needed for the error envelope
                    await r.aread()
                    r.raise_for_status()

                async for line in r.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    raw = line[len("data:") :].strip()
                    if not raw or raw == "[DONE]":
                        continue
                    delta = self._candidate_text(json.loads(raw))
                    if delta:
                        yield delta

    async def list_models(self) -> list[AIModel]:
        async with self._client() as client:
            r = await client.get("/models", params={"pageSize": 100})
            r.raise_for_status()
            data = r.json()

        models: list[AIModel] = []
        for m in data.get("models") or []:
            short_id = (m.get("name") or "").removeprefix("models/")
            if not short_id:
                continue
            supported = m.get("supportedGenerationMethods") or []
            if "generateContent" in supported or short_id.startswith("gemini"):
                models.append(AIModel(id=short_id, name=m.get("displayName") or short_id, provider=self.name))
        models.sort(key=lambda x: x.name)
        return models

    def default_models(self) -> list[AIModel]:
        return [AIModel(id=i, name=n, provider=self.name) for i, n in GEMINI_DEFAULT_MODELS]
