from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import ConfigDict, Field, model_validator

from vidstudy.schemas.base import CamelModel, new_id, utcnow

OPTIONS_PER_QUESTION = 4


class StudyMaterialType(str, Enum):
    SUMMARY = "summary"
    MIND_MAP = "mindMap"
    FLASHCARDS = "flashcards"
    STUDY_GUIDE = "studyGuide"
    ROADMAP = "roadmap"

    @property
    def is_text(self) -> bool:
        return self in (StudyMaterialType.SUMMARY, StudyMaterialType.STUDY_GUIDE, StudyMaterialType.ROADMAP)


class QuizQuestion(CamelModel):
    id: int = Field(..., ge=1, description="1-based position within the quiz")
    question: str
    options: list[str] = Field(..., min_length=OPTIONS_PER_QUESTION, max_length=OPTIONS_PER_QUESTION)
    correct_answer: int = Field(..., ge=0, le=OPTIONS_PER_QUESTION - 1)
    explanation: str = ""

    @property
    def correct_option(self) -> str:
        return self.options[self.correct_answer]


class Quiz(CamelModel):
    title: str = Field("", alias="videoTitle")
    source_url: str = Field("", alias="videoUrl")
    questions: list[QuizQuestion]
    version: int = Field(1, ge=1)
    created_at: datetime = Field(default_factory=utcnow)


class QuizResult(CamelModel):
    """Snapshot of a finished attempt. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    quiz: Quiz
    answers: list[Optional[int]]
    score: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=0)
    completed_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_counts(self) -> "QuizResult":
        if self.score > self.total_questions:
            raise ValueError("score cannot exceed totalQuestions")
        return self

    @property
    def percentage(self) -> float:
        if not self.total_questions:
            return 0.0
        return self.score / self.total_questions * 100


class Flashcard(CamelModel):
    front: str
    back: str


class MindMapNode(CamelModel):
    label: str
    children: list[MindMapNode] = Field(default_factory=list)


class StudyMaterials(CamelModel):
    summary: Optional[str] = None
    mind_map: Optional[MindMapNode] = None
    flashcards: Optional[list[Flashcard]] = None
    study_guide: Optional[str] = None
    roadmap: Optional[str] = None

    def merged(self, other: StudyMaterials) -> StudyMaterials:
        """Fields present in `other` replace ours; absent ones are kept."""
        patch = {k: v for k, v in other if v is not None}
        return self.model_copy(update=patch)

    def has(self, kind: StudyMaterialType) -> bool:
        return bool(self.to_document().get(kind.value))


class VideoSession(CamelModel):
    id: str = Field(default_factory=new_id)
    video_id: str
    video_url: str = ""
    title: str = Field("", alias="videoTitle")
    thumbnail_url: str = ""
    transcript: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    quiz_results: list[QuizResult] = Field(default_factory=list)
    study_materials: StudyMaterials = Field(default_factory=StudyMaterials)
    latest_quiz: Optional[Quiz] = None
