import asyncio
import random
from typing import Dict, List, Optional, Sequence

from core.config import settings
from core.exceptions import ResultPersistFailure
from core.logger import logger
from schemas.quiz import Question
from services.engine import QuizSessionEngine, ResultSink, SessionState
from services.task_manager import TaskManager


async def drive_clocks(engine: QuizSessionEngine, interval: float):
    """
    Feed one tick per interval to a session until it leaves the active state.
    When the countdown runs out the session is submitted on the user's behalf.
    """
    while engine.state == SessionState.ACTIVE:
        await asyncio.sleep(interval)
        if not engine.tick():
            continue

        logger.info("Session time is up, submitting automatically", session_id=engine.session_id)
        try:
            await engine.submit(forced=True)
        except ResultPersistFailure as e:
            # Stays in submitting; the monitor or the user retries the save
            logger.warning("Automatic submit could not be saved", session_id=engine.session_id, error=e.reason)
        return


class SessionService:
    """In-memory registry of running quiz sessions and their clock tasks."""

    def __init__(
        self,
        sink: ResultSink,
        task_manager: TaskManager = None,
        tick_interval: float = None,
        auto_tick: bool = True,
        session_seconds: int = None,
        rng: Optional[random.Random] = None,
    ):
        self.sink = sink
        self.task_manager = task_manager or TaskManager()
        self.tick_interval = tick_interval or settings.CLOCK_TICK_SECONDS
        self.auto_tick = auto_tick
        self.session_seconds = session_seconds
        self.rng = rng
        self.sessions: Dict[str, QuizSessionEngine] = {}

    def create_session(self, pool: Sequence[Question], category: str = None, size: int = None) -> QuizSessionEngine:
        engine = QuizSessionEngine(self.sink, session_seconds=self.session_seconds, rng=self.rng)
        engine.start(pool, category=category, size=size)
        self.sessions[engine.session_id] = engine
        self._start_clock(engine)
        logger.info("Quiz session created", session_id=engine.session_id, category=category)
        return engine

    def get_session(self, session_id: str) -> Optional[QuizSessionEngine]:
        return self.sessions.get(session_id)

    def list_sessions(self) -> List[QuizSessionEngine]:
        return list(self.sessions.values())

    def retake(self, session_id: str) -> bool:
        engine = self.get_session(session_id)
        if not engine or not engine.retake():
            return False
        self._start_clock(engine)
        return True

    def stop_session(self, session_id: str) -> bool:
        self.task_manager.cancel_task(session_id)
        engine = self.sessions.pop(session_id, None)
        if engine:
            logger.info("Quiz session stopped", session_id=session_id, state=engine.state.value)
        return engine is not None

    async def shutdown(self):
        self.task_manager.cancel_all()
        logger.info("Session service stopped", sessions=len(self.sessions))
        self.sessions.clear()

    def _start_clock(self, engine: QuizSessionEngine):
        if not self.auto_tick:
            return
        task = asyncio.create_task(drive_clocks(engine, self.tick_interval))
        self.task_manager.register_task(engine.session_id, task)
