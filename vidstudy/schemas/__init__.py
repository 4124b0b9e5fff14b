from vidstudy.schemas.chat import ChatMessage, ChatRole, ChatSession
from vidstudy.schemas.session import (
    Flashcard,
    MindMapNode,
    Quiz,
    QuizQuestion,
    QuizResult,
    StudyMaterials,
    StudyMaterialType,
    VideoSession,
)
from vidstudy.schemas.settings import AIModel, AIProvider, AppSettings
from vidstudy.schemas.stats import DashboardStats

__all__ = [
    "AIModel",
    "AIProvider",
    "AppSettings",
    "ChatMessage",
    "ChatRole",
    "ChatSession",
    "DashboardStats",
    "Flashcard",
    "MindMapNode",
    "Quiz",
    "QuizQuestion",
    "QuizResult",
    "StudyMaterials",
    "StudyMaterialType",
    "VideoSession",
]
