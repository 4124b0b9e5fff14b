from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Literal, TypedDict

from vidstudy.schemas.settings import AIModel, AIProvider

DEFAULT_TEMPERATURE = 0.7


class LLMMessage(TypedDict):
    role: Literal["system", "user", "assistant"]
    content: str


class LLMProvider(ABC):
    """What the gateway needs from a generative backend.

    Implementations raise whatever their transport raises; the gateway
    normalizes errors.
    """

    name: AIProvider

    def __init__(self, api_key: str, temperature: float = DEFAULT_TEMPERATURE) -> None:
        self.api_key = api_key
        self.temperature = temperature

    @abstractmethod
    async def generate(self, messages: list[LLMMessage], model: str, json_mode: bool = False) -> str:
        """Return the full reply text."""

    @abstractmethod
    def generate_stream(self, messages: list[LLMMessage], model: str) -> AsyncIterator[str]:
        """Yield reply text deltas in order."""

    @abstractmethod
    async def list_models(self) -> list[AIModel]:
        """Chat-capable models from the backend catalog."""

    @abstractmethod
    def default_models(self) -> list[AIModel]:
        """Hardcoded catalog used when the backend cannot be queried."""

    async def aclose(self) -> None:
        return None
