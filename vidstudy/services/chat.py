"""
Streaming chat over a video's transcript.

One controller drives one conversation view and keeps at most one active
stream. Stream events carry the cumulative reply; the assistant placeholder
is overwritten with each one. Only a completed user+assistant pair is
persisted. A cancelled stream (explicitly, or by switching/starting a
conversation) drops its placeholder and saves nothing.
"""
from __future__ import annotations

import inspect
import logging
import re
from contextlib import aclosing
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from vidstudy.core.config import settings
from vidstudy.core.errors import ChatSessionNotFoundError
from vidstudy.schemas.base import utcnow
from vidstudy.schemas.chat import ChatMessage, ChatRole, ChatSession
from vidstudy.schemas.session import VideoSession
from vidstudy.services.llm.gateway import ProviderGateway
from vidstudy.services.llm.streaming import CancelToken
from vidstudy.services.store import ChatStore

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[str], Union[None, Awaitable[None]]]


def chat_title(first_message: str, max_chars: Optional[int] = None) -> str:
    max_chars = max_chars or settings.chat_title_max_chars
    text = re.sub(r"\s+", " ", first_message or "").strip()
    if not text:
        return "New chat"
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + "..."


class ChatController:
    def __init__(
        self,
        gateway: ProviderGateway,
        chats: ChatStore,
        video_session: VideoSession,
        model: str,
    ) -> None:
        self.gateway = gateway
        self.chats = chats
        self.video_session = video_session
        self.model = model

        self.messages: list[ChatMessage] = []
        self.chat_session: Optional[ChatSession] = None
        self.last_reply: Optional[ChatMessage] = None
        self._cancel_token: Optional[CancelToken] = None

    @property
    def is_streaming(self) -> bool:
        return self._cancel_token is not None

    def cancel(self) -> bool:
        """Stop the in-flight stream, if any. Returns whether one was running."""
        token = self._cancel_token
        if token is None:
            return False
        token.cancel()
        self._cancel_token = None
        logger.debug("Cancelled chat stream for session %s", self.video_session.id)
        return True

    def new_conversation(self) -> None:
        self.cancel()
        self.chat_session = None
        self.messages = []

    async def open_conversation(self, chat_id: str) -> ChatSession:
        self.cancel()
        chat = await self.chats.get(chat_id)
        if chat is None or chat.video_session_id != self.video_session.id:
            raise ChatSessionNotFoundError(chat_id)
        self.chat_session = chat
        self.messages = list(chat.messages)
        return chat

    async def conversations(self) -> list[ChatSession]:
        return await self.chats.list(video_session_id=self.video_session.id)

    def _discard(self, message: ChatMessage) -> None:
        # by identity: the view may already show another conversation
        self.messages = [m for m in self.messages if m is not message]

    async def stream(self, text: str) -> AsyncIterator[str]:
        """Send `text`; yield the assistant reply so far after every chunk."""
        text = (text or "").strip()
        if not text:
            raise ValueError("Message is empty")

        self.cancel()
        token = CancelToken()
        self._cancel_token = token
        self.last_reply = None

        conversation = self.chat_session
        user_msg = ChatMessage(role=ChatRole.USER, content=text)
        history = [*self.messages, user_msg]
        placeholder = ChatMessage(role=ChatRole.ASSISTANT, content="")
        self.messages.extend([user_msg, placeholder])

        completed = False
        try:
            async with aclosing(
                self.gateway.iter_chat(self.video_session.transcript, history, self.model, token)
            ) as chunks:
                async for chunk in chunks:
                    if token.cancelled:
                        break
                    placeholder.content = chunk.text
                    yield chunk.text
                    if token.cancelled:
                        break
            completed = not token.cancelled
        finally:
            if self._cancel_token is token:
                self._cancel_token = None
            if not completed:
                self._discard(placeholder)

        if not completed:
            logger.debug("Chat stream cancelled; nothing saved")
            return

        placeholder.timestamp = utcnow()
        await self._persist(conversation, user_msg, placeholder)
        self.last_reply = placeholder

    async def send(self, text: str, on_update: Optional[UpdateCallback] = None) -> Optional[ChatMessage]:
        """Callback form of `stream`. Returns the reply, or None if cancelled."""
        async with aclosing(self.stream(text)) as updates:
            async for partial in updates:
                if on_update is not None:
                    result = on_update(partial)
                    if inspect.isawaitable(result):
                        await result
        return self.last_reply

    async def _persist(
        self, conversation: Optional[ChatSession], user_msg: ChatMessage, reply: ChatMessage
    ) -> None:
        now = utcnow()
        if conversation is None:
            chat = ChatSession(
                video_session_id=self.video_session.id,
                title=chat_title(user_msg.content),
                messages=[user_msg, reply],
                created_at=now,
                updated_at=now,
            )
        else:
            stored = await self.chats.get(conversation.id) or conversation
            chat = stored.model_copy(
                update={"messages": [*stored.messages, user_msg, reply], "updated_at": now}
            )

        await self.chats.upsert(chat)
        # a switch during the write leaves the new view alone
        if self.chat_session is conversation:
            self.chat_session = chat
        logger.info("Saved chat %s (%d messages)", chat.id, len(chat.messages))
