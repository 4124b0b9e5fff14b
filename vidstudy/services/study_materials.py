from __future__ import annotations

import logging

from vidstudy.core.errors import SessionNotFoundError
from vidstudy.schemas.session import StudyMaterials, StudyMaterialType, VideoSession
from vidstudy.services.llm.gateway import ProviderGateway
from vidstudy.services.store import SessionStore

logger = logging.getLogger(__name__)


def material_text(kind: StudyMaterialType, materials: StudyMaterials) -> str | None:
    """
    Plain-text fallback for any material kind (search, export, copy).
    Keep it simple and deterministic.
    """
    if kind is StudyMaterialType.SUMMARY:
        return materials.summary
    if kind is StudyMaterialType.STUDY_GUIDE:
        return materials.study_guide
    if kind is StudyMaterialType.ROADMAP:
        return materials.roadmap

    if kind is StudyMaterialType.FLASHCARDS:
        if not materials.flashcards:
            return None
        lines: list[str] = []
        for i, fc in enumerate(materials.flashcards, start=1):
            lines.append(f"Q{i}. {fc.front}")
            lines.append(f"A{i}. {fc.back}")
            lines.append("")
        return "\n".join(lines).strip() or None

    if materials.mind_map is None:
        return None
    lines = []
    stack = [(materials.mind_map, 0)]
    while stack:
        node, depth = stack.pop()
        lines.append(f"{'  ' * depth}- {node.label}")
        stack.extend((child, depth + 1) for child in reversed(node.children))
    return "\n".join(lines)


async def generate_study_material(
    sessions: SessionStore,
    gateway: ProviderGateway,
    session_id: str,
    kind: StudyMaterialType | str,
    model: str,
) -> VideoSession:
    """Generate one material kind and merge it into the session's materials."""
    kind = StudyMaterialType(kind)
    session = await sessions.get_by_id(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)

    generated = await gateway.generate_study_material(kind, session.transcript, model)

    # the session may have changed during generation
    session = await sessions.get_by_id(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)
    session.study_materials = session.study_materials.merged(generated)
    await sessions.upsert(session)

    logger.info("Stored %s for session %s", kind.value, session_id)
    return session
