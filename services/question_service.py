import json
import os
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logger import logger
from models.question import QuestionEntry
from schemas.quiz import CategoryInfo, Question, QuestionDraft
from utils.parser import ParserError, parse_question_file


def category_display_name(category: str) -> str:
    return category[:1].upper() + category[1:].replace("_", " ")


def _to_question(entry: QuestionEntry) -> Question:
    return Question(
        id=entry.id,
        question_text=entry.question_text,
        options=[str(option) for option in entry.options],
        correct_answer=entry.correct_answer,
        category=entry.category,
        difficulty=entry.difficulty,
    )


class QuestionService:
    """
    Question bank backed by the `questions` table.

    Read methods never raise database errors: a fault is logged and an empty
    result is returned, which simply means no session can start.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_all(self) -> List[Question]:
        try:
            result = await self.db.execute(select(QuestionEntry).order_by(QuestionEntry.id))
            return [_to_question(entry) for entry in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error("Failed to fetch questions", error=str(e))
            return []

    async def fetch_by_category(self, category: str) -> List[Question]:
        try:
            result = await self.db.execute(
                select(QuestionEntry).filter(QuestionEntry.category == category).order_by(QuestionEntry.id)
            )
            return [_to_question(entry) for entry in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error("Failed to fetch questions by category", category=category, error=str(e))
            return []

    async def list_categories(self) -> List[CategoryInfo]:
        try:
            result = await self.db.execute(
                select(QuestionEntry.category, func.count(QuestionEntry.id))
                .group_by(QuestionEntry.category)
                .order_by(QuestionEntry.category)
            )
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error("Failed to list categories", error=str(e))
            return []

        return [
            CategoryInfo(id=category, name=category_display_name(category), count=count)
            for category, count in rows
            if category
        ]

    async def get_question(self, question_id: int) -> Optional[Question]:
        try:
            result = await self.db.execute(select(QuestionEntry).filter(QuestionEntry.id == question_id))
            entry = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch question", question_id=question_id, error=str(e))
            return None
        return _to_question(entry) if entry else None

    async def count(self) -> int:
        result = await self.db.execute(select(func.count(QuestionEntry.id)))
        return int(result.scalar() or 0)

    async def bulk_create(self, drafts: Sequence[QuestionDraft]) -> List[Question]:
        entries = [
            QuestionEntry(
                question_text=draft.question_text,
                options=list(draft.options),
                correct_answer=draft.correct_answer,
                category=draft.category,
                difficulty=draft.difficulty,
            )
            for draft in drafts
        ]
        self.db.add_all(entries)
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        for entry in entries:
            await self.db.refresh(entry)
        logger.info("Questions imported", count=len(entries))
        return [_to_question(entry) for entry in entries]

    async def seed_from_file(self, path: str) -> int:
        """Load the question bank file into an empty table."""
        if await self.count() > 0:
            return 0
        if not os.path.exists(path):
            logger.warning("No questions loaded, seed file missing. The quiz will be empty.", path=path)
            return 0

        try:
            with open(path, encoding="utf-8") as f:
                drafts = parse_question_file(json.load(f))
        except (OSError, json.JSONDecodeError, ParserError) as e:
            logger.error("Error loading questions from file", path=path, error=str(e))
            return 0

        created = await self.bulk_create(drafts)
        logger.info("Loaded questions from file", path=path, count=len(created))
        return len(created)
