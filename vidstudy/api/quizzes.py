from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from vidstudy.api.deps import get_context
from vidstudy.context import AppContext
from vidstudy.services.quiz_engine import QuizEngine

router = APIRouter(prefix="/sessions", tags=["quizzes"])


class GenerateQuizRequest(BaseModel):
    question_count: Optional[int] = Field(None, ge=1, le=50)


class QuizResponse(BaseModel):
    ok: bool
    session_id: str
    quiz: dict


class SubmitAttemptRequest(BaseModel):
    # one entry per question, in order; null = unanswered
    answers: list[Optional[int]]


class AttemptResponse(BaseModel):
    ok: bool
    session_id: str
    score: int
    total_questions: int
    result: dict


@router.post("/{session_id}/quiz", response_model=QuizResponse)
async def generate_quiz(
    session_id: str,
    payload: GenerateQuizRequest | None = None,
    ctx: AppContext = Depends(get_context),
) -> QuizResponse:
    app_settings = await ctx.settings.get()
    count = (payload.question_count if payload else None) or app_settings.question_count

    gateway = await ctx.gateway()
    try:
        quiz = await QuizEngine(gateway, ctx.sessions).generate(session_id, count, app_settings.model_for())
    finally:
        await gateway.aclose()

    return QuizResponse(ok=True, session_id=session_id, quiz=quiz.to_document())


@router.post("/{session_id}/quiz/attempts", response_model=AttemptResponse)
async def submit_attempt(
    session_id: str,
    payload: SubmitAttemptRequest,
    ctx: AppContext = Depends(get_context),
) -> AttemptResponse:
    gateway = await ctx.gateway()
    try:
        engine = QuizEngine(gateway, ctx.sessions)
        quiz = await engine.load(session_id)
        if len(payload.answers) != len(quiz.questions):
            raise HTTPException(
                status_code=400,
                detail=f"Expected {len(quiz.questions)} answers, got {len(payload.answers)}",
            )

        result = None
        try:
            for selected in payload.answers:
                result = await engine.answer(selected)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
    finally:
        await gateway.aclose()

    assert result is not None
    return AttemptResponse(
        ok=True,
        session_id=session_id,
        score=result.score,
        total_questions=result.total_questions,
        result=result.to_document(),
    )
