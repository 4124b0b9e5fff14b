from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from vidstudy.api.deps import get_context
from vidstudy.context import AppContext
from vidstudy.schemas.session import StudyMaterialType
from vidstudy.services.study_materials import generate_study_material, material_text

router = APIRouter(prefix="/sessions", tags=["study_materials"])


class GenerateMaterialResponse(BaseModel):
    ok: bool
    session_id: str
    material_type: StudyMaterialType
    content: object
    text: str | None


@router.post("/{session_id}/materials/{material_type}", response_model=GenerateMaterialResponse)
async def generate_material(
    session_id: str,
    material_type: StudyMaterialType,
    ctx: AppContext = Depends(get_context),
) -> GenerateMaterialResponse:
    app_settings = await ctx.settings.get()
    gateway = await ctx.gateway()
    try:
        session = await generate_study_material(
            ctx.sessions, gateway, session_id, material_type, app_settings.model_for()
        )
    finally:
        await gateway.aclose()

    materials = session.study_materials.to_document()
    return GenerateMaterialResponse(
        ok=True,
        session_id=session_id,
        material_type=material_type,
        content=materials.get(material_type.value),
        text=material_text(material_type, session.study_materials),
    )
