from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from vidstudy.api.deps import get_context
from vidstudy.context import AppContext
from vidstudy.core.errors import SessionNotFoundError
from vidstudy.services.chat import ChatController
from vidstudy.services.llm.errors import ProviderError
from vidstudy.services.llm.gateway import ProviderGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["chat"])


class ChatRequest(BaseModel):
    message: str
    # continue this conversation; a new one is started when omitted
    chat_id: Optional[str] = None


def _event(data: dict) -> str:
    return f"data: {json.dumps(data)}\n\n"


async def _chat_events(controller: ChatController, gateway: ProviderGateway, message: str) -> AsyncIterator[str]:
    """SSE events: the reply so far, then a final `done` (or `error`) event."""
    try:
        async for partial in controller.stream(message):
            yield _event({"text": partial})
        chat = controller.chat_session
        reply = controller.last_reply
        yield _event({"done": True, "chatId": chat.id if chat else None, "text": reply.content if reply else ""})
    except ProviderError as e:
        # headers are already sent; the failure goes to the client as an event
        logger.warning("Chat stream for session %s failed: %s", controller.video_session.id, e.kind.value)
        yield _event({"error": e.to_dict()})
    finally:
        await gateway.aclose()


@router.post("/{session_id}/chat")
async def chat(session_id: str, payload: ChatRequest, ctx: AppContext = Depends(get_context)) -> StreamingResponse:
    if not payload.message.strip():
        raise HTTPException(status_code=400, detail="Message is empty")

    session = await ctx.sessions.get_by_id(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)

    app_settings = await ctx.settings.get()
    gateway = await ctx.gateway()
    controller = ChatController(gateway, ctx.chats, session, app_settings.model_for())
    if payload.chat_id:
        try:
            await controller.open_conversation(payload.chat_id)
        except Exception:
            await gateway.aclose()
            raise

    return StreamingResponse(
        _chat_events(controller, gateway, payload.message),
        media_type="text/event-stream",
    )
