import pytest

from vidstudy.core.errors import ChatSessionNotFoundError
from vidstudy.schemas.chat import ChatRole
from vidstudy.services.chat import ChatController, chat_title
from vidstudy.services.llm.errors import InvalidResponse, ServerError

from conftest import make_session


def _controller(gateway, chats, video_session):
    return ChatController(gateway, chats, video_session, model="gemini-test")


def test_chat_title_truncates_long_messages():
    assert chat_title("What is a fixture?") == "What is a fixture?"
    long = "word " * 30
    title = chat_title(long, max_chars=50)
    assert title.endswith("...")
    assert len(title) <= 53
    assert chat_title("   ") == "New chat"


@pytest.mark.asyncio
async def test_completed_reply_creates_chat_session(sessions, chats, gateway, provider):
    session = await sessions.upsert(make_session())
    provider.stream_deltas = ["Fixtures ", "set up ", "state."]
    controller = _controller(gateway, chats, session)
    updates = []

    reply = await controller.send("What is a fixture?", on_update=updates.append)

    assert updates == ["Fixtures ", "Fixtures set up ", "Fixtures set up state."]
    assert reply.content == "Fixtures set up state."
    assert [m.role for m in controller.messages] == [ChatRole.USER, ChatRole.ASSISTANT]
    assert not controller.is_streaming

    stored = await chats.list(video_session_id=session.id)
    assert len(stored) == 1
    assert stored[0].title == "What is a fixture?"
    assert [m.content for m in stored[0].messages] == ["What is a fixture?", "Fixtures set up state."]


@pytest.mark.asyncio
async def test_follow_up_appends_and_bumps_updated_at(sessions, chats, gateway, provider):
    session = await sessions.upsert(make_session())
    controller = _controller(gateway, chats, session)
    provider.stream_deltas = ["first"]
    await controller.send("one")
    created = (await chats.list())[0]

    provider.stream_deltas = ["second"]
    await controller.send("two")

    stored = await chats.list()
    assert len(stored) == 1
    assert stored[0].id == created.id
    assert len(stored[0].messages) == 4
    assert stored[0].updated_at >= created.updated_at
    # the history sent to the model includes the earlier turn
    sent = provider.calls[-1]["messages"]
    assert [m["content"] for m in sent[1:]] == ["one", "first", "two"]


@pytest.mark.asyncio
async def test_cancel_after_two_chunks_persists_nothing(sessions, chats, gateway, provider):
    session = await sessions.upsert(make_session())
    controller = _controller(gateway, chats, session)
    provider.stream_deltas = ["ok"]
    await controller.send("hello")
    before = [c.to_document() for c in await chats.list()]

    provider.stream_deltas = ["a", "b", "c", "d"]
    seen = []
    async for partial in controller.stream("tell me more"):
        seen.append(partial)
        if len(seen) == 2:
            assert controller.cancel() is True

    assert seen == ["a", "ab"]
    assert [c.to_document() for c in await chats.list()] == before
    assert controller.last_reply is None
    # partial assistant reply is gone; the user message stays on screen
    assert controller.messages[-1].role is ChatRole.USER
    assert all(m.content != "ab" for m in controller.messages)


@pytest.mark.asyncio
async def test_new_conversation_cancels_active_stream(sessions, chats, gateway, provider):
    session = await sessions.upsert(make_session())
    controller = _controller(gateway, chats, session)
    provider.stream_deltas = ["x", "y", "z"]

    async def on_update(partial):
        controller.new_conversation()

    assert await controller.send("hi", on_update=on_update) is None
    assert controller.messages == []
    assert controller.chat_session is None
    assert await chats.list() == []


@pytest.mark.asyncio
async def test_open_conversation_loads_history(sessions, chats, gateway, provider):
    session = await sessions.upsert(make_session())
    controller = _controller(gateway, chats, session)
    provider.stream_deltas = ["answer"]
    await controller.send("question")
    chat_id = controller.chat_session.id

    controller.new_conversation()
    opened = await controller.open_conversation(chat_id)

    assert opened.id == chat_id
    assert [m.content for m in controller.messages] == ["question", "answer"]
    assert [c.id for c in await controller.conversations()] == [chat_id]

    with pytest.raises(ChatSessionNotFoundError):
        await controller.open_conversation("nope")


@pytest.mark.asyncio
async def test_provider_error_drops_placeholder(sessions, chats, gateway, provider):
    session = await sessions.upsert(make_session())
    controller = _controller(gateway, chats, session)
    provider.stream_deltas = ["par"]
    provider.stream_error = ServerError(detail="overloaded")

    with pytest.raises(ServerError):
        await controller.send("hi")

    assert all(m.role is ChatRole.USER for m in controller.messages)
    assert not controller.is_streaming
    assert await chats.list() == []


@pytest.mark.asyncio
async def test_empty_message_is_rejected(sessions, chats, gateway):
    session = await sessions.upsert(make_session())
    with pytest.raises(ValueError):
        await _controller(gateway, chats, session).send("   ")


@pytest.mark.asyncio
async def test_empty_reply_is_not_saved(sessions, chats, gateway, provider):
    session = await sessions.upsert(make_session())
    controller = _controller(gateway, chats, session)
    provider.stream_deltas = []

    with pytest.raises(InvalidResponse):
        await controller.send("hello?")

    assert await chats.list() == []
    assert all(m.role is ChatRole.USER for m in controller.messages)
