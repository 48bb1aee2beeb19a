from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.logger import logger
from models.result import QuizResult
from schemas.quiz import QuestionResult, ScoredResult


def _to_scored(row: QuizResult) -> ScoredResult:
    return ScoredResult(
        id=row.id,
        quiz_topic=row.quiz_topic,
        score=row.score,
        total_questions=row.total_questions,
        time_spent=row.time_spent,
        completed_at=row.completed_at,
        question_results=[QuestionResult.model_validate(item) for item in row.question_results or []],
    )


class ResultService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_result(self, result: ScoredResult) -> ScoredResult:
        """Store a result in one commit and return it with its id."""
        row = QuizResult(
            quiz_topic=result.quiz_topic,
            score=result.score,
            total_questions=result.total_questions,
            time_spent=result.time_spent,
            completed_at=result.completed_at,
            question_results=[
                item.model_dump(mode="json", by_alias=True) for item in result.question_results
            ],
        )
        self.db.add(row)
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        await self.db.refresh(row)
        logger.info("Quiz result saved", result_id=row.id, topic=row.quiz_topic, score=row.score)
        return result.model_copy(update={"id": row.id})

    async def list_results(self) -> List[ScoredResult]:
        result = await self.db.execute(select(QuizResult).order_by(QuizResult.completed_at.desc()))
        return [_to_scored(row) for row in result.scalars().all()]

    async def get_result(self, result_id: int) -> Optional[ScoredResult]:
        result = await self.db.execute(select(QuizResult).filter(QuizResult.id == result_id))
        row = result.scalar_one_or_none()
        return _to_scored(row) if row else None


class DatabaseResultSink:
    """Result sink for the session engine; one database session per save."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def persist(self, result: ScoredResult) -> ScoredResult:
        async with self.session_factory() as db:
            return await ResultService(db).create_result(result)
