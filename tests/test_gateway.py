import json
import random

import httpx
import pytest

from vidstudy.schemas.session import QuizQuestion, StudyMaterialType
from vidstudy.schemas.settings import AIModel, AIProvider
from vidstudy.services.llm.errors import InvalidResponse, NetworkError, RateLimited
from vidstudy.services.llm.gateway import ProviderGateway, fisher_yates_order, shuffle_options
from vidstudy.services.llm.gemini_client import GeminiProvider
from vidstudy.services.llm.prompts import TRUNCATION_MARKER, truncate_transcript
from vidstudy.services.llm.streaming import CancelToken

from conftest import FakeProvider, quiz_reply


def test_fisher_yates_is_a_permutation():
    rng = random.Random(0)
    for n in range(1, 8):
        assert sorted(fisher_yates_order(n, rng)) == list(range(n))


def test_shuffle_keeps_correct_option_text_for_many_seeds():
    question = QuizQuestion(id=1, question="Q?", options=["w1", "right", "w2", "w3"], correct_answer=1)
    seen_positions = set()
    for seed in range(200):
        shuffled = shuffle_options(question, random.Random(seed))
        assert sorted(shuffled.options) == sorted(question.options)
        assert shuffled.options[shuffled.correct_answer] == "right"
        seen_positions.add(shuffled.correct_answer)
    assert seen_positions == {0, 1, 2, 3}


def test_shuffle_is_deterministic_for_a_seed():
    question = QuizQuestion(id=1, question="Q?", options=["a", "b", "c", "d"], correct_answer=2)
    assert shuffle_options(question, random.Random(42)) == shuffle_options(question, random.Random(42))


def test_truncate_transcript():
    assert truncate_transcript("short", 10) == "short"
    cut = truncate_transcript("x" * 20, 10)
    assert cut == "x" * 10 + TRUNCATION_MARKER


@pytest.mark.asyncio
@pytest.mark.parametrize("wrapped", [True, False])
async def test_generate_quiz_accepts_wrapped_and_bare_arrays(wrapped):
    provider = FakeProvider(replies=[f"```json\n{quiz_reply(3, wrapped=wrapped)}\n```"])
    gateway = ProviderGateway(provider, rng=random.Random(3))

    questions = await gateway.generate_quiz("transcript text", 3, "gemini-test")

    assert [q.id for q in questions] == [1, 2, 3]
    for i, q in enumerate(questions, start=1):
        assert q.correct_option == f"right {i}"
    assert provider.calls[0]["json_mode"] is True
    assert provider.calls[0]["model"] == "gemini-test"


@pytest.mark.asyncio
async def test_generate_quiz_truncates_long_transcripts():
    provider = FakeProvider(replies=[quiz_reply(1)])
    gateway = ProviderGateway(provider, rng=random.Random(0), transcript_max_chars=100)

    await gateway.generate_quiz("y" * 500, 1, "m")

    prompt = provider.calls[0]["messages"][0]["content"]
    assert "y" * 100 + TRUNCATION_MARKER in prompt
    assert "y" * 101 not in prompt


@pytest.mark.asyncio
async def test_generate_quiz_rejects_malformed_questions():
    bad = json.dumps({"questions": [{"question": "Q", "options": ["a", "b"], "correctAnswer": 0}]})
    gateway = ProviderGateway(FakeProvider(replies=[bad]))
    with pytest.raises(InvalidResponse):
        await gateway.generate_quiz("t", 1, "m")

    gateway = ProviderGateway(FakeProvider(replies=["no json here"]))
    with pytest.raises(InvalidResponse):
        await gateway.generate_quiz("t", 1, "m")


@pytest.mark.asyncio
async def test_backend_errors_are_normalized():
    gateway = ProviderGateway(FakeProvider(error=RuntimeError("429 Too Many Requests")))
    with pytest.raises(RateLimited):
        await gateway.generate_quiz("t", 1, "m")

    gateway = ProviderGateway(FakeProvider(error=ConnectionRefusedError()))
    with pytest.raises(NetworkError):
        await gateway.chat("t", [], "m")


@pytest.mark.asyncio
async def test_study_materials_by_kind():
    provider = FakeProvider(
        replies=[
            "```markdown\n# Summary\n\nKey points\n```",
            json.dumps({"flashcards": [{"front": "F", "back": "B"}]}),
            json.dumps({"label": "Root", "children": [{"label": "Child"}]}),
        ]
    )
    gateway = ProviderGateway(provider)

    summary = await gateway.generate_study_material(StudyMaterialType.SUMMARY, "t", "m")
    cards = await gateway.generate_study_material("flashcards", "t", "m")
    mind_map = await gateway.generate_study_material(StudyMaterialType.MIND_MAP, "t", "m")

    assert summary.summary == "# Summary\n\nKey points"
    assert provider.calls[0]["json_mode"] is False
    assert cards.flashcards[0].front == "F"
    assert provider.calls[1]["json_mode"] is True
    assert mind_map.mind_map.children[0].label == "Child"


@pytest.mark.asyncio
async def test_iter_chat_yields_cumulative_text():
    gateway = ProviderGateway(FakeProvider(stream_deltas=["Hel", "lo", "!"]))
    texts = [chunk.text async for chunk in gateway.iter_chat("t", [], "m")]
    assert texts == ["Hel", "Hello", "Hello!"]


@pytest.mark.asyncio
async def test_stream_chat_stops_on_cancel():
    gateway = ProviderGateway(FakeProvider(stream_deltas=["a", "b", "c", "d"]))
    token = CancelToken()
    seen = []

    def on_chunk(text):
        seen.append(text)
        if len(seen) == 2:
            token.cancel()

    final = await gateway.stream_chat("t", [], "m", on_chunk=on_chunk, cancel_token=token)
    assert seen == ["a", "ab"]
    assert final == "ab"


@pytest.mark.asyncio
async def test_list_models_falls_back_to_defaults():
    failing = ProviderGateway(FakeProvider(error=RuntimeError("boom")))
    assert [m.id for m in await failing.list_models()] == ["fake-default"]

    empty = ProviderGateway(FakeProvider(models=[]))
    assert [m.id for m in await empty.list_models()] == ["fake-default"]

    live = ProviderGateway(FakeProvider(models=[AIModel(id="live", name="Live", provider=AIProvider.GEMINI)]))
    assert [m.id for m in await live.list_models()] == ["live"]


# ----------------------------
# Gemini REST backend
# ----------------------------

def _gemini(handler) -> GeminiProvider:
    return GeminiProvider(
        "gem-key",
        base_url="https://gemini.test/v1beta",
        timeout_s=5,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_gemini_generate_payload_and_reply():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["key"] = request.headers.get("x-goog-api-key")
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": " hi "}]}}]})

    provider = _gemini(handler)
    text = await provider.generate(
        [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "hey"},
        ],
        "gemini-2.0-flash",
        json_mode=True,
    )

    assert text == "hi"
    assert captured["url"].endswith("/models/gemini-2.0-flash:generateContent")
    assert captured["key"] == "gem-key"
    body = captured["body"]
    assert body["systemInstruction"] == {"parts": [{"text": "be brief"}]}
    assert [c["role"] for c in body["contents"]] == ["user", "model"]
    assert body["generationConfig"]["responseMimeType"] == "application/json"


@pytest.mark.asyncio
async def test_gemini_stream_parses_sse():
    events = [
        {"candidates": [{"content": {"parts": [{"text": "Hel"}]}}]},
        {"candidates": [{"content": {"parts": [{"text": "lo"}]}}]},
    ]
    body = "".join(f"data: {json.dumps(e)}\r\n\r\n" for e in events)

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["alt"] == "sse"
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    gateway = ProviderGateway(_gemini(handler))
    texts = [chunk.text async for chunk in gateway.iter_chat("t", [], "gemini-2.0-flash")]
    assert texts == ["Hel", "Hello"]


@pytest.mark.asyncio
async def test_gemini_error_envelope_is_classified():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"code": 429, "status": "RESOURCE_EXHAUSTED"}})

    gateway = ProviderGateway(_gemini(handler))
    with pytest.raises(RateLimited):
        await gateway.chat("t", [], "gemini-2.0-flash")
    with pytest.raises(RateLimited):
        async for _ in gateway.iter_chat("t", [], "gemini-2.0-flash"):
            pass


@pytest.mark.asyncio
async def test_gemini_list_models():
    catalog = {
        "models": [
            {"name": "models/gemini-2.0-flash", "displayName": "Gemini 2.0 Flash", "supportedGenerationMethods": ["generateContent"]},
            {"name": "models/text-embedding-004", "displayName": "Embedding", "supportedGenerationMethods": ["embedContent"]},
        ]
    }

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=catalog)

    models = await ProviderGateway(_gemini(handler)).list_models()
    assert [m.id for m in models] == ["gemini-2.0-flash"]
    assert models[0].provider is AIProvider.GEMINI


@pytest.mark.asyncio
async def test_empty_chat_stream_is_invalid_response():
    gateway = ProviderGateway(FakeProvider(stream_deltas=[]))
    with pytest.raises(InvalidResponse):
        async for _ in gateway.iter_chat("t", [], "m"):
            pass

    # a cancelled stream may legitimately end with no text
    token = CancelToken()
    token.cancel()
    chunks = [c async for c in ProviderGateway(FakeProvider(stream_deltas=["x"])).iter_chat("t", [], "m", token)]
    assert chunks == []
