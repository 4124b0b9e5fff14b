from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import Field

from vidstudy.schemas.base import CamelModel, new_id, utcnow


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(CamelModel):
    role: ChatRole
    content: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class ChatSession(CamelModel):
    id: str = Field(default_factory=new_id)
    # lookup only; the video session does not own this record
    video_session_id: str
    title: str = "New chat"
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
