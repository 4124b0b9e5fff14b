"""
Quiz attempt state machine.

    IDLE -> GENERATING -> READY -> IN_PROGRESS -> COMPLETED
              |
              +-> IDLE (generation failed; `error` holds the message)

Questions are answered in order. An answer, once recorded, is final for the
attempt. Answering the last question scores the attempt and appends a
`QuizResult` to the owning session.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Sequence

from vidstudy.core.errors import QuizStateError, SessionNotFoundError
from vidstudy.schemas.base import utcnow
from vidstudy.schemas.session import Quiz, QuizQuestion, QuizResult, VideoSession
from vidstudy.services.llm.errors import ProviderError
from vidstudy.services.llm.gateway import ProviderGateway
from vidstudy.services.store import SessionStore

logger = logging.getLogger(__name__)


class QuizPhase(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def score_answers(questions: Sequence[QuizQuestion], answers: Sequence[Optional[int]]) -> int:
    """Count of positions answered with the correct index. Unanswered never counts."""
    if len(answers) != len(questions):
        raise ValueError(f"{len(answers)} answers for {len(questions)} questions")
    return sum(1 for q, a in zip(questions, answers) if a is not None and a == q.correct_answer)


def next_quiz_version(session: VideoSession) -> int:
    versions = [r.quiz.version for r in session.quiz_results]
    if session.latest_quiz is not None:
        versions.append(session.latest_quiz.version)
    return max(versions, default=0) + 1


def build_result(quiz: Quiz, answers: Sequence[Optional[int]]) -> QuizResult:
    return QuizResult(
        quiz=quiz,
        answers=list(answers),
        score=score_answers(quiz.questions, answers),
        total_questions=len(quiz.questions),
        completed_at=utcnow(),
    )


class QuizEngine:
    def __init__(self, gateway: ProviderGateway, sessions: SessionStore) -> None:
        self.gateway = gateway
        self.sessions = sessions
        self._reset()

    def _reset(self) -> None:
        self.phase = QuizPhase.IDLE
        self.session_id: Optional[str] = None
        self.quiz: Optional[Quiz] = None
        self.answers: list[Optional[int]] = []
        self.result: Optional[QuizResult] = None
        self.error: Optional[str] = None

    def _require(self, *phases: QuizPhase) -> None:
        if self.phase not in phases:
            allowed = ", ".join(p.value for p in phases)
            raise QuizStateError(f"Quiz is {self.phase.value}; expected one of: {allowed}")

    async def _session(self, session_id: str) -> VideoSession:
        session = await self.sessions.get_by_id(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    @property
    def current_index(self) -> int:
        return len(self.answers)

    @property
    def current_question(self) -> Optional[QuizQuestion]:
        if self.quiz is None or self.current_index >= len(self.quiz.questions):
            return None
        return self.quiz.questions[self.current_index]

    async def generate(self, session_id: str, count: int, model: str) -> Quiz:
        """Generate a new question set for the session and make it its latest quiz."""
        self._require(QuizPhase.IDLE, QuizPhase.READY, QuizPhase.COMPLETED)
        session = await self._session(session_id)

        self._reset()
        self.session_id = session_id
        self.phase = QuizPhase.GENERATING
        try:
            questions = await self.gateway.generate_quiz(session.transcript, count, model)
        except ProviderError as e:
            self.phase = QuizPhase.IDLE
            self.error = e.message
            raise

        # the session may have changed during generation
        try:
            session = await self._session(session_id)
        except SessionNotFoundError:
            self.phase = QuizPhase.IDLE
            raise
        quiz = Quiz(
            title=session.title,
            source_url=session.video_url,
            questions=questions,
            version=next_quiz_version(session),
        )
        session.latest_quiz = quiz
        await self.sessions.upsert(session)

        self.quiz = quiz
        self.phase = QuizPhase.READY
        logger.info("Quiz v%d ready for session %s (%d questions)", quiz.version, session_id, len(questions))
        return quiz

    async def load(self, session_id: str) -> Quiz:
        """Start a fresh attempt at the session's latest quiz."""
        self._require(QuizPhase.IDLE, QuizPhase.READY, QuizPhase.COMPLETED)
        session = await self._session(session_id)
        if session.latest_quiz is None:
            raise QuizStateError(f"Session {session_id} has no quiz yet")
        if not session.latest_quiz.questions:
            raise QuizStateError(f"Session {session_id} has an empty quiz")

        self._reset()
        self.session_id = session_id
        self.quiz = session.latest_quiz
        self.phase = QuizPhase.READY
        return self.quiz

    async def answer(self, selected: Optional[int]) -> Optional[QuizResult]:
        """Record the answer for the current question (None leaves it unanswered).

        Returns the QuizResult when this answer completes the attempt.
        """
        return await self.answer_question(self.current_index, selected)

    async def skip(self) -> Optional[QuizResult]:
        return await self.answer(None)

    async def answer_question(self, position: int, selected: Optional[int]) -> Optional[QuizResult]:
        self._require(QuizPhase.READY, QuizPhase.IN_PROGRESS)
        assert self.quiz is not None

        if position < self.current_index:
            raise QuizStateError(f"Question {position + 1} is already answered")
        if position != self.current_index:
            raise QuizStateError(f"Answer question {self.current_index + 1} first")
        question = self.quiz.questions[position]
        if selected is not None and not 0 <= selected < len(question.options):
            raise ValueError(f"Option {selected} out of range for question {question.id}")

        self.answers.append(selected)
        self.phase = QuizPhase.IN_PROGRESS

        if len(self.answers) == len(self.quiz.questions):
            return await self._complete()
        return None

    async def _complete(self) -> QuizResult:
        assert self.quiz is not None and self.session_id is not None

        result = build_result(self.quiz, self.answers)
        session = await self._session(self.session_id)
        session.quiz_results.append(result)
        await self.sessions.upsert(session)

        self.result = result
        self.phase = QuizPhase.COMPLETED
        logger.info(
            "Quiz v%d completed for session %s: %d/%d",
            self.quiz.version,
            self.session_id,
            result.score,
            result.total_questions,
        )
        return result
