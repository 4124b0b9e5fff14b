from __future__ import annotations

from enum import Enum

from pydantic import Field

from vidstudy.schemas.base import CamelModel


class AIProvider(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"


DEFAULT_MODEL_FOR_PROVIDER = {
    AIProvider.OPENAI: "gpt-4o-mini",
    AIProvider.GEMINI: "gemini-2.0-flash",
}


class AIModel(CamelModel):
    id: str
    name: str
    provider: AIProvider


class AppSettings(CamelModel):
    openai_api_key: str = ""
    gemini_api_key: str = ""
    selected_provider: AIProvider = AIProvider.GEMINI
    selected_model: str = "gemini-2.5-flash"
    openai_model: str = "gpt-4.1-nano"
    gemini_model: str = "gemini-2.5-flash"
    question_count: int = Field(10, ge=1, le=50)

    def api_key_for(self, provider: AIProvider | None = None) -> str:
        provider = provider or self.selected_provider
        return self.openai_api_key if provider == AIProvider.OPENAI else self.gemini_api_key

    def model_for(self, provider: AIProvider | None = None) -> str:
        provider = provider or self.selected_provider
        if provider == self.selected_provider and self.selected_model:
            return self.selected_model
        per_provider = self.openai_model if provider == AIProvider.OPENAI else self.gemini_model
        return per_provider or DEFAULT_MODEL_FOR_PROVIDER[provider]
