"""
Quiz session engine.

Owns one attempt at a quiz: the drawn question set, the current position,
the answer ledger and both clocks. States move
loading -> active -> submitting -> submitted. Calls made in the wrong state
are absorbed as no-ops so that double clicks and the countdown's forced
submit cannot corrupt a session.
"""
import random
import uuid
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence

from core.config import settings
from core.exceptions import ResultPersistFailure
from core.logger import logger
from schemas.quiz import (
    ALL_CATEGORIES,
    SKIPPED_ANSWER,
    Question,
    QuestionResult,
    ScoredResult,
)
from services.ledger import AnswerLedger
from services.selector import select_session_questions
from services.timing import QuestionClock, SessionClock, utcnow


class SessionState(str, Enum):
    LOADING = "loading"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"


class ResultSink(Protocol):
    async def persist(self, result: ScoredResult) -> ScoredResult:
        """Store a finished result and return it with its identity assigned."""
        ...


class QuizSessionEngine:
    def __init__(
        self,
        sink: ResultSink,
        session_id: str = None,
        session_size: int = None,
        session_seconds: int = None,
        question_seconds: int = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.sink = sink
        self.session_id = session_id or uuid.uuid4().hex
        self.session_size = session_size or settings.SESSION_SIZE
        self._rng = rng or random.Random()
        self._now = clock

        self.state = SessionState.LOADING
        self.category: Optional[str] = None
        self.questions: List[Question] = []
        self.current_index = 0
        self.ledger = AnswerLedger()
        self.question_clock = QuestionClock(question_seconds)
        self.session_clock = SessionClock(session_seconds)
        self.started_at: Optional[datetime] = None
        self.last_activity = self._now()

        self.pending_result: Optional[ScoredResult] = None
        self.result: Optional[ScoredResult] = None
        self.forced = False
        self._pool: List[Question] = []
        self._persisting = False

    # --- lifecycle -------------------------------------------------------

    def start(self, pool: Sequence[Question], category: str = None, size: int = None) -> bool:
        """Draw a new question set and begin timing. Raises EmptyPoolError."""
        if self.state == SessionState.SUBMITTING:
            logger.warning("Start ignored while a result is being saved", session_id=self.session_id)
            return False

        self._stop_clocks()
        self.state = SessionState.LOADING
        questions = select_session_questions(pool, size or self.session_size, self._rng, category)

        self._pool = list(pool)
        self.category = category
        if size:
            self.session_size = size
        self._begin(questions)
        logger.info(
            "Quiz session started",
            session_id=self.session_id,
            category=category,
            questions=len(questions),
            pool=len(self._pool),
        )
        return True

    def retake(self) -> bool:
        """Start over on a fresh draw from the same pool."""
        if self.state != SessionState.SUBMITTED:
            return False
        questions = select_session_questions(self._pool, self.session_size, self._rng, self.category)
        self._begin(questions)
        logger.info("Quiz session retaken", session_id=self.session_id, questions=len(questions))
        return True

    def _begin(self, questions: List[Question]):
        self.questions = questions
        self.current_index = 0
        self.ledger.clear()
        self.pending_result = None
        self.result = None
        self.forced = False
        self.started_at = self._now()
        self.last_activity = self.started_at
        self.session_clock.start()
        self.question_clock.start()
        self.state = SessionState.ACTIVE

    def _stop_clocks(self):
        self.session_clock.stop()
        self.question_clock.stop()

    # --- answers ---------------------------------------------------------

    @property
    def current_question(self) -> Optional[Question]:
        if not self.questions:
            return None
        return self.questions[self.current_index]

    @property
    def question_ids(self) -> List[int]:
        return [q.id for q in self.questions]

    def answer(self, question_id: int, answer_text: str, time_spent: int) -> bool:
        return self._record(question_id, answer_text, time_spent, skipped=False)

    def skip(self, question_id: int, time_spent: int) -> bool:
        return self._record(question_id, SKIPPED_ANSWER, time_spent, skipped=True)

    def skip_remaining(self) -> int:
        """Mark every question without a record as skipped."""
        if self.state != SessionState.ACTIVE:
            return 0
        skipped = 0
        for question in self.questions:
            if question.id not in self.ledger:
                self.ledger.record(question.id, SKIPPED_ANSWER, 0, skipped=True)
                skipped += 1
        self.last_activity = self._now()
        return skipped

    def _record(self, question_id: int, answer_text: str, time_spent: int, skipped: bool) -> bool:
        if self.state != SessionState.ACTIVE:
            logger.debug("Answer ignored, session not active", session_id=self.session_id, state=self.state.value)
            return False
        if question_id not in self.question_ids:
            logger.warning("Answer for a question outside the session", session_id=self.session_id, question_id=question_id)
            return False
        self.ledger.record(question_id, answer_text, max(0, int(time_spent)), skipped=skipped)
        self.last_activity = self._now()
        return True

    def count_answered(self) -> int:
        return self.ledger.count_answered()

    def unanswered_count(self) -> int:
        return len(self.questions) - self.ledger.count_answered()

    # --- navigation ------------------------------------------------------

    def go_to(self, index: int) -> bool:
        """Move to `index`. Out-of-range targets are ignored."""
        if self.state != SessionState.ACTIVE:
            return False
        if index < 0 or index >= len(self.questions) or index == self.current_index:
            return False
        self.current_index = index
        self.question_clock.reset()
        self.last_activity = self._now()
        return True

    def go_to_next(self) -> bool:
        return self.go_to(self.current_index + 1)

    def go_to_previous(self) -> bool:
        return self.go_to(self.current_index - 1)

    # --- timing ----------------------------------------------------------

    def tick(self) -> bool:
        """Advance both clocks one second. True when the countdown just ran out."""
        if self.state != SessionState.ACTIVE:
            return False
        self.question_clock.tick()
        return self.session_clock.tick()

    # --- submit ----------------------------------------------------------

    @property
    def persisting(self) -> bool:
        return self._persisting

    async def submit(self, forced: bool = False) -> Optional[ScoredResult]:
        """
        Score the session and hand the result to the sink.

        Returns the stored result once the session is submitted, or None when
        the call was absorbed (not started yet, or a save is already running).
        Raises ResultPersistFailure if the sink fails; the scored result is
        kept and a later submit() retries the save without rescoring.
        """
        if self.state == SessionState.SUBMITTED:
            return self.result
        if self.state == SessionState.LOADING:
            return None
        if self.state == SessionState.SUBMITTING:
            if self._persisting:
                logger.info("Duplicate submit ignored", session_id=self.session_id, forced=forced)
                return None
            return await self._persist()

        self.state = SessionState.SUBMITTING
        self._stop_clocks()
        self.forced = forced
        self.pending_result = self.build_result()
        logger.info(
            "Quiz session scored",
            session_id=self.session_id,
            score=self.pending_result.score,
            total=self.pending_result.total_questions,
            forced=forced,
        )
        return await self._persist()

    async def retry_persist(self) -> Optional[ScoredResult]:
        if self.state != SessionState.SUBMITTING or self._persisting:
            return None
        return await self._persist()

    async def _persist(self) -> ScoredResult:
        self._persisting = True
        try:
            stored = await self.sink.persist(self.pending_result)
        except Exception as e:
            logger.error("Failed to save quiz result", session_id=self.session_id, error=str(e))
            raise ResultPersistFailure(self.session_id, str(e)) from e
        finally:
            self._persisting = False

        self.result = stored
        self.pending_result = None
        self.state = SessionState.SUBMITTED
        self.last_activity = self._now()
        logger.info("Quiz result saved", session_id=self.session_id, result_id=stored.id)
        return stored

    def build_result(self) -> ScoredResult:
        question_results = []
        for question in self.questions:
            record = self.ledger.get(question.id)
            user_answer = record.answer if record else ""
            skipped = record.skipped if record else False
            question_results.append(QuestionResult(
                question_id=question.id,
                question_text=question.question_text,
                user_answer=user_answer,
                correct_answer=question.correct_answer,
                is_correct=user_answer == question.correct_answer and not skipped,
                time_spent=record.time_spent if record else 0,
                skipped=skipped,
                category=question.category,
                difficulty=question.difficulty,
            ))

        completed_at = self._now()
        return ScoredResult(
            quiz_topic=self.category or ALL_CATEGORIES,
            score=sum(1 for r in question_results if r.is_correct),
            total_questions=len(self.questions),
            time_spent=max(0, int((completed_at - self.started_at).total_seconds())),
            completed_at=completed_at,
            question_results=question_results,
        )
