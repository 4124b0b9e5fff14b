from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from vidstudy.api.deps import get_context
from vidstudy.context import AppContext
from vidstudy.core.errors import SessionNotFoundError
from vidstudy.services.video_sessions import (
    VideoInfo,
    delete_video_session,
    extract_video_id,
    start_video_session,
)

router = APIRouter(prefix="/sessions", tags=["sessions"])


class SessionListResponse(BaseModel):
    ok: bool
    total: int
    sessions: list[dict]


class StartSessionRequest(BaseModel):
    url: str
    transcript: str = Field(..., min_length=1)
    title: str = ""
    question_count: Optional[int] = Field(None, ge=1, le=50)


class StartSessionResponse(BaseModel):
    ok: bool
    created: bool
    session: dict


class SessionResponse(BaseModel):
    ok: bool
    session: dict


class DeleteSessionResponse(BaseModel):
    ok: bool
    session_id: str
    chats_removed: int


class ChatListResponse(BaseModel):
    ok: bool
    session_id: str
    chats: list[dict]


@router.get("", response_model=SessionListResponse)
async def list_sessions(ctx: AppContext = Depends(get_context)) -> SessionListResponse:
    sessions = await ctx.sessions.list()
    return SessionListResponse(ok=True, total=len(sessions), sessions=[s.to_document() for s in sessions])


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, ctx: AppContext = Depends(get_context)) -> SessionResponse:
    session = await ctx.sessions.get_by_id(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)
    return SessionResponse(ok=True, session=session.to_document())


@router.delete("/{session_id}", response_model=DeleteSessionResponse)
async def delete_session(session_id: str, ctx: AppContext = Depends(get_context)) -> DeleteSessionResponse:
    removed = await delete_video_session(ctx.sessions, ctx.chats, session_id)
    return DeleteSessionResponse(ok=True, session_id=session_id, chats_removed=removed)


@router.get("/{session_id}/chats", response_model=ChatListResponse)
async def list_session_chats(session_id: str, ctx: AppContext = Depends(get_context)) -> ChatListResponse:
    if await ctx.sessions.get_by_id(session_id) is None:
        raise SessionNotFoundError(session_id)
    chats = await ctx.chats.list(video_session_id=session_id)
    return ChatListResponse(ok=True, session_id=session_id, chats=[c.to_document() for c in chats])


@router.post("", response_model=StartSessionResponse)
async def start_session(payload: StartSessionRequest, ctx: AppContext = Depends(get_context)) -> StartSessionResponse:
    video_id = extract_video_id(payload.url)
    if not video_id:
        raise HTTPException(status_code=400, detail="Not a recognizable YouTube URL")

    app_settings = await ctx.settings.get()
    video = VideoInfo(video_id=video_id, url=payload.url.strip(), title=payload.title or video_id)
    gateway = await ctx.gateway()
    try:
        session, created = await start_video_session(
            ctx.sessions,
            gateway,
            video,
            payload.transcript,
            payload.question_count or app_settings.question_count,
            app_settings.model_for(),
        )
    finally:
        await gateway.aclose()

    return StartSessionResponse(ok=True, created=created, session=session.to_document())
