"""
Dashboard statistics derived from session history. Pure functions, no I/O.
"""
from __future__ import annotations

import math
from datetime import date, datetime, timedelta, tzinfo
from typing import Mapping, Optional, Sequence

from vidstudy.core.config import settings
from vidstudy.schemas.session import QuizResult, VideoSession
from vidstudy.schemas.stats import DashboardStats

# largest gap between activity dates that keeps a streak going
STREAK_MAX_GAP_DAYS = 1.5


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def result_percentage(result: QuizResult) -> int:
    return _round_half_up(result.percentage)


def local_date(moment: datetime, tz: Optional[tzinfo] = None) -> date:
    """Calendar date of `moment` in `tz` (the machine's local zone when None)."""
    return moment.astimezone(tz).date()


def current_streak(activity_dates: Mapping[str, int] | Sequence[str], today: date) -> int:
    days = sorted({date.fromisoformat(d) for d in activity_dates}, reverse=True)
    if not days:
        return 0
    if days[0] not in (today, today - timedelta(days=1)):
        return 0

    streak = 1
    for newer, older in zip(days, days[1:]):
        if (newer - older).days > STREAK_MAX_GAP_DAYS:
            break
        streak += 1
    return streak


def compute_dashboard_stats(
    sessions: Sequence[VideoSession],
    today: Optional[date] = None,
    tz: Optional[tzinfo] = None,
    recent_limit: Optional[int] = None,
) -> DashboardStats:
    if today is None:
        today = local_date(datetime.now().astimezone(), tz)
    if recent_limit is None:
        recent_limit = settings.recent_sessions_limit

    results = [r for s in sessions for r in s.quiz_results]
    percentages = [result_percentage(r) for r in results]

    activity: dict[str, int] = {}
    for r in results:
        key = local_date(r.completed_at, tz).isoformat()
        activity[key] = activity.get(key, 0) + 1

    average = _round_half_up(sum(percentages) / len(percentages)) if percentages else 0
    recent = sorted(sessions, key=lambda s: s.created_at, reverse=True)[: max(recent_limit, 0)]

    return DashboardStats(
        total_videos=len(sessions),
        total_quizzes=len(results),
        total_questions=sum(r.total_questions for r in results),
        average_score=average,
        best_score=max(percentages, default=0),
        current_streak=current_streak(activity, today),
        activity_dates=dict(sorted(activity.items())),
        recent_sessions=recent,
    )
