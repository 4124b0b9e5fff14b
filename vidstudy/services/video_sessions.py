from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlparse

from vidstudy.core.errors import SessionNotFoundError
from vidstudy.schemas.session import Quiz, VideoSession
from vidstudy.services.llm.gateway import ProviderGateway
from vidstudy.services.store import ChatStore, SessionStore

logger = logging.getLogger(__name__)

_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")


@dataclass
class VideoInfo:
    video_id: str
    url: str
    title: str


def extract_video_id(url: str) -> Optional[str]:
    """
    Supports:
      - https://www.youtube.com/watch?v=VIDEOID
      - https://youtu.be/VIDEOID
      - https://www.youtube.com/embed/VIDEOID
      - https://www.youtube.com/shorts/VIDEOID
      - a bare 11-character id
    """
    s = (url or "").strip()
    if _VIDEO_ID_RE.match(s):
        return s

    try:
        u = urlparse(s)
    except ValueError:
        return None
    host = (u.hostname or "").lower()

    if host in ("youtu.be", "www.youtu.be"):
        candidate = u.path.lstrip("/").split("/")[0]
    elif host.endswith("youtube.com") or host.endswith("youtube-nocookie.com"):
        if u.path == "/watch":
            candidate = (parse_qs(u.query).get("v") or [""])[0]
        else:
            parts = [p for p in u.path.split("/") if p]
            candidate = parts[1] if len(parts) >= 2 and parts[0] in ("embed", "shorts", "live", "v") else ""
    else:
        return None

    return candidate if _VIDEO_ID_RE.match(candidate) else None


def thumbnail_url(video_id: str) -> str:
    return f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"


async def start_video_session(
    sessions: SessionStore,
    gateway: ProviderGateway,
    video: VideoInfo,
    transcript: str,
    question_count: int,
    model: str,
) -> tuple[VideoSession, bool]:
    """
    First transcript+generation cycle for a video.

    An existing session for the same video is returned as-is (no provider
    call). Otherwise a quiz is generated and the session is created with it
    as the latest quiz. Returns (session, created).
    """

    async def build() -> VideoSession:
        questions = await gateway.generate_quiz(transcript, question_count, model)
        quiz = Quiz(title=video.title, source_url=video.url, questions=questions, version=1)
        return VideoSession(
            video_id=video.video_id,
            video_url=video.url,
            title=video.title,
            thumbnail_url=thumbnail_url(video.video_id),
            transcript=transcript,
            latest_quiz=quiz,
        )

    return await sessions.get_or_create(video.video_id, build)


async def delete_video_session(sessions: SessionStore, chats: ChatStore, session_id: str) -> int:
    """Delete a session and the chat sessions that point at it.

    Returns how many chat sessions were removed.
    """
    if not await sessions.delete(session_id):
        raise SessionNotFoundError(session_id)
    removed = await chats.delete_for_video_session(session_id)
    logger.info("Deleted video session %s and %d chat session(s)", session_id, removed)
    return removed
