from __future__ import annotations

from fastapi import APIRouter, Depends

from vidstudy.api.deps import get_context
from vidstudy.context import AppContext
from vidstudy.services.analytics import compute_dashboard_stats

router = APIRouter(tags=["stats"])


@router.get("/stats")
async def get_stats(ctx: AppContext = Depends(get_context)) -> dict:
    sessions = await ctx.sessions.list()
    stats = compute_dashboard_stats(sessions, recent_limit=ctx.config.recent_sessions_limit)
    return {"ok": True, "stats": stats.to_document()}
