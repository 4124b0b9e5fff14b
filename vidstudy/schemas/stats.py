from __future__ import annotations

from pydantic import Field

from vidstudy.schemas.base import CamelModel
from vidstudy.schemas.session import VideoSession


class DashboardStats(CamelModel):
    total_videos: int = 0
    total_quizzes: int = 0
    total_questions: int = 0
    average_score: int = 0
    best_score: int = 0
    current_streak: int = 0
    # local calendar date (YYYY-MM-DD) -> completed quizzes that day
    activity_dates: dict[str, int] = Field(default_factory=dict)
    recent_sessions: list[VideoSession] = Field(default_factory=list)
