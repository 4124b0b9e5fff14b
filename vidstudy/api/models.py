from __future__ import annotations

from fastapi import APIRouter, Depends

from vidstudy.api.deps import get_context
from vidstudy.context import AppContext

router = APIRouter(tags=["models"])


@router.get("/models")
async def list_models(ctx: AppContext = Depends(get_context)) -> dict:
    gateway = await ctx.gateway()
    try:
        models = await gateway.list_models()
    finally:
        await gateway.aclose()
    return {
        "ok": True,
        "provider": gateway.provider_name.value,
        "models": [m.to_document() for m in models],
    }
