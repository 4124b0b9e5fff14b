"""
Provider Gateway: one contract over both generative backends.

Everything above this module sees `QuizQuestion`s, `StudyMaterials`,
plain reply text and `ProviderError`s, never SDK objects or raw HTTP errors.
"""
from __future__ import annotations

import inspect
import logging
import random
from contextlib import aclosing
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Sequence, Union

from pydantic import ValidationError

from vidstudy.core.config import settings
from vidstudy.schemas.chat import ChatMessage
from vidstudy.schemas.session import Flashcard, MindMapNode, QuizQuestion, StudyMaterials, StudyMaterialType
from vidstudy.schemas.settings import AIModel, AIProvider, AppSettings
from vidstudy.services.llm.base import LLMMessage, LLMProvider
from vidstudy.services.llm.errors import InvalidResponse, ProviderError, classify_error
from vidstudy.services.llm.gemini_client import GeminiProvider
from vidstudy.services.llm.openai_client import OpenAIProvider
from vidstudy.services.llm.parsing import (
    parse_list_payload,
    parse_object_payload,
    strip_wrapping_fence,
)
from vidstudy.services.llm.prompts import (
    STUDY_MATERIAL_SYSTEM,
    build_chat_system,
    build_quiz_prompt,
    build_study_material_prompt,
)
from vidstudy.services.llm.streaming import CancelToken, ChatChunk

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], Union[None, Awaitable[None]]]


# ----------------------------
# Quiz helpers
# ----------------------------

def fisher_yates_order(n: int, rng: random.Random) -> list[int]:
    """A uniformly random permutation of range(n)."""
    order = list(range(n))
    for i in range(n - 1, 0, -1):
        j = rng.randint(0, i)
        order[i], order[j] = order[j], order[i]
    return order


def shuffle_options(question: QuizQuestion, rng: random.Random) -> QuizQuestion:
    """Permute options and move `correct_answer` with the correct option's text."""
    order = fisher_yates_order(len(question.options), rng)
    options = [question.options[k] for k in order]
    return question.model_copy(
        update={"options": options, "correct_answer": order.index(question.correct_answer)}
    )


def _quiz_question(position: int, item: Any) -> QuizQuestion:
    if not isinstance(item, dict):
        raise InvalidResponse(detail=f"Question {position} is not an object")

    answer = item.get("correctAnswer")
    # bool is an int subclass; true/false is not an index
    if isinstance(answer, bool) or not isinstance(answer, int):
        raise InvalidResponse(detail=f"Question {position} has no integer correctAnswer")

    try:
        return QuizQuestion(
            id=position,
            question=item.get("question"),
            options=item.get("options"),
            correct_answer=answer,
            explanation=item.get("explanation") or "",
        )
    except ValidationError as e:
        raise InvalidResponse(detail=f"Question {position} is malformed: {e}") from e


def parse_quiz_questions(text: str) -> list[QuizQuestion]:
    payload = parse_list_payload(text, fields=("questions",))
    if not payload.items:
        raise InvalidResponse(detail="Quiz contained no questions")
    return [_quiz_question(i, item) for i, item in enumerate(payload.items, start=1)]


def parse_flashcards(text: str) -> list[Flashcard]:
    payload = parse_list_payload(text, fields=("flashcards", "cards"))
    try:
        return [Flashcard.model_validate(it) for it in payload.items]
    except ValidationError as e:
        raise InvalidResponse(detail=f"Malformed flashcards: {e}") from e


def parse_mind_map(text: str) -> MindMapNode:
    data = parse_object_payload(text, fields=("mindMap", "root"), required_key="label")
    try:
        return MindMapNode.model_validate(data)
    except ValidationError as e:
        raise InvalidResponse(detail=f"Malformed mind map: {e}") from e


# ----------------------------
# Gateway
# ----------------------------

class ProviderGateway:
    def __init__(
        self,
        provider: LLMProvider,
        rng: Optional[random.Random] = None,
        transcript_max_chars: Optional[int] = None,
    ) -> None:
        self.provider = provider
        self.rng = rng or random.Random()
        self.transcript_max_chars = transcript_max_chars or settings.transcript_max_chars

    @property
    def provider_name(self) -> AIProvider:
        return self.provider.name

    def _normalize(self, exc: BaseException, operation: str) -> ProviderError:
        err = classify_error(exc)
        logger.warning(
            "%s %s failed: %s (%s)", self.provider_name.value, operation, err.kind.value, err.detail or exc
        )
        return err

    async def _generate(self, messages: list[LLMMessage], model: str, json_mode: bool, operation: str) -> str:
        try:
            text = await self.provider.generate(messages, model, json_mode=json_mode)
        except ProviderError:
            raise
        except Exception as e:
            raise self._normalize(e, operation) from e

        if not text:
            raise InvalidResponse(detail=f"No response from {self.provider_name.value}")
        return text

    async def generate_quiz(self, transcript: str, count: int, model: str) -> list[QuizQuestion]:
        prompt = build_quiz_prompt(transcript, count, self.transcript_max_chars)
        text = await self._generate([{"role": "user", "content": prompt}], model, True, "generate_quiz")

        try:
            questions = parse_quiz_questions(text)
        except InvalidResponse as e:
            self._normalize(e, "generate_quiz")
            raise

        logger.info("Generated %d quiz questions with %s/%s", len(questions), self.provider_name.value, model)
        return [shuffle_options(q, self.rng) for q in questions]

    async def generate_study_material(
        self, kind: StudyMaterialType | str, transcript: str, model: str
    ) -> StudyMaterials:
        kind = StudyMaterialType(kind)
        messages: list[LLMMessage] = [
            {"role": "system", "content": STUDY_MATERIAL_SYSTEM},
            {"role": "user", "content": build_study_material_prompt(kind.value, transcript, self.transcript_max_chars)},
        ]
        text = await self._generate(messages, model, not kind.is_text, f"generate_{kind.value}")

        try:
            if kind is StudyMaterialType.MIND_MAP:
                return StudyMaterials(mind_map=parse_mind_map(text))
            if kind is StudyMaterialType.FLASHCARDS:
                return StudyMaterials(flashcards=parse_flashcards(text))
        except InvalidResponse as e:
            self._normalize(e, f"generate_{kind.value}")
            raise

        content = strip_wrapping_fence(text)
        if kind is StudyMaterialType.SUMMARY:
            return StudyMaterials(summary=content)
        if kind is StudyMaterialType.STUDY_GUIDE:
            return StudyMaterials(study_guide=content)
        return StudyMaterials(roadmap=content)

    def _chat_messages(self, transcript: str, history: Sequence[ChatMessage]) -> list[LLMMessage]:
        messages: list[LLMMessage] = [
            {"role": "system", "content": build_chat_system(transcript, self.transcript_max_chars)}
        ]
        for m in history:
            messages.append({"role": m.role.value, "content": m.content})
        return messages

    async def chat(self, transcript: str, history: Sequence[ChatMessage], model: str) -> str:
        return await self._generate(self._chat_messages(transcript, history), model, False, "chat")

    async def iter_chat(
        self,
        transcript: str,
        history: Sequence[ChatMessage],
        model: str,
        cancel_token: Optional[CancelToken] = None,
    ) -> AsyncIterator[ChatChunk]:
        """Cumulative-text events; stops quietly once `cancel_token` is cancelled."""
        text = ""
        try:
            async with aclosing(
                self.provider.generate_stream(self._chat_messages(transcript, history), model)
            ) as deltas:
                async for delta in deltas:
                    if cancel_token is not None and cancel_token.cancelled:
                        logger.debug("Chat stream cancelled after %d chars", len(text))
                        return
                    text += delta
                    yield ChatChunk(text=text, delta=delta)
        except ProviderError:
            raise
        except Exception as e:
            raise self._normalize(e, "stream_chat") from e

        if not text and not (cancel_token is not None and cancel_token.cancelled):
            raise InvalidResponse(detail=f"Empty chat stream from {self.provider_name.value}")

    async def stream_chat(
        self,
        transcript: str,
        history: Sequence[ChatMessage],
        model: str,
        on_chunk: Optional[ChunkCallback] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> str:
        text = ""
        async with aclosing(self.iter_chat(transcript, history, model, cancel_token)) as chunks:
            async for chunk in chunks:
                text = chunk.text
                if on_chunk is not None:
                    result = on_chunk(text)
                    if inspect.isawaitable(result):
                        await result
                if cancel_token is not None and cancel_token.cancelled:
                    break
        return text

    async def list_models(self) -> list[AIModel]:
        """Never raises: any failure (or an empty catalog) yields the default list."""
        try:
            models = await self.provider.list_models()
        except Exception as e:
            self._normalize(e, "list_models")
            return self.provider.default_models()

        if not models:
            logger.warning("%s returned no chat models; using defaults", self.provider_name.value)
            return self.provider.default_models()
        return models

    async def aclose(self) -> None:
        await self.provider.aclose()


def create_provider(provider: AIProvider | str, api_key: str, temperature: Optional[float] = None) -> LLMProvider:
    provider = AIProvider(provider)
    temperature = settings.temperature if temperature is None else temperature
    if provider is AIProvider.OPENAI:
        return OpenAIProvider(api_key, temperature=temperature)
    return GeminiProvider(api_key, temperature=temperature)


def gateway_from_settings(app_settings: AppSettings, rng: Optional[random.Random] = None) -> ProviderGateway:
    provider = app_settings.selected_provider
    return ProviderGateway(create_provider(provider, app_settings.api_key_for(provider)), rng=rng)
