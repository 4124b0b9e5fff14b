from __future__ import annotations

import asyncio
import json
import random

import pytest

from vidstudy.context import AppContext
from vidstudy.db.session import make_engine
from vidstudy.schemas.session import Quiz, QuizQuestion, VideoSession
from vidstudy.schemas.settings import AIModel, AIProvider
from vidstudy.services.llm.base import LLMProvider
from vidstudy.services.llm.gateway import ProviderGateway


class FakeProvider(LLMProvider):
    """Scripted backend: replies are handed out in order, streams yield `stream_deltas`."""

    name = AIProvider.GEMINI

    def __init__(self, replies=None, stream_deltas=None, models=None, error=None, stream_error=None):
        super().__init__("test-key")
        self.replies = list(replies or [])
        self.stream_deltas = list(stream_deltas or [])
        self.models = models
        self.error = error
        self.stream_error = stream_error
        self.calls = []
        self.closed = False

    async def generate(self, messages, model, json_mode=False):
        self.calls.append({"messages": messages, "model": model, "json_mode": json_mode})
        if self.error is not None:
            raise self.error
        return self.replies.pop(0)

    async def generate_stream(self, messages, model):
        self.calls.append({"messages": messages, "model": model, "stream": True})
        for delta in self.stream_deltas:
            await asyncio.sleep(0)
            yield delta
        if self.stream_error is not None:
            raise self.stream_error

    async def list_models(self):
        if self.error is not None:
            raise self.error
        return list(self.models or [])

    def default_models(self):
        return [AIModel(id="fake-default", name="Fake Default", provider=self.name)]

    async def aclose(self):
        self.closed = True


def quiz_reply(n: int = 5, wrapped: bool = True) -> str:
    """A quiz as a model would return it; the correct option is always listed first."""
    questions = [
        {
            "question": f"Question {i}?",
            "options": [f"right {i}", f"wrong {i}a", f"wrong {i}b", f"wrong {i}c"],
            "correctAnswer": 0,
            "explanation": f"Because {i}.",
        }
        for i in range(1, n + 1)
    ]
    return json.dumps({"questions": questions} if wrapped else questions)


def make_quiz(n: int = 5, version: int = 1) -> Quiz:
    questions = [
        QuizQuestion(
            id=i,
            question=f"Question {i}?",
            options=["a", "b", "c", "d"],
            correct_answer=(i - 1) % 4,
        )
        for i in range(1, n + 1)
    ]
    return Quiz(title="Intro to Testing", source_url="https://youtu.be/abcdefghijk", questions=questions, version=version)


def make_session(video_id: str = "abcdefghijk", **kwargs) -> VideoSession:
    data = dict(
        video_id=video_id,
        video_url=f"https://youtu.be/{video_id}",
        title="Intro to Testing",
        transcript="Tests are code that checks code. " * 10,
    )
    data.update(kwargs)
    return VideoSession(**data)


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'vidstudy-test.db'}")
    yield eng
    eng.dispose()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def gateway(provider):
    return ProviderGateway(provider, rng=random.Random(1234))


@pytest.fixture
def ctx(engine, gateway):
    context = AppContext(engine=engine, gateway_factory=lambda _settings: gateway)
    context.open()
    yield context
    context.close()


@pytest.fixture
def sessions(ctx):
    return ctx.sessions


@pytest.fixture
def chats(ctx):
    return ctx.chats
