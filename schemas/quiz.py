"""
Domain types shared by the session engine, the storage services and the API.

Attributes are snake_case; the JSON wire format uses camelCase aliases.
Models reject unknown fields instead of coercing loosely-typed input.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

SKIPPED_ANSWER = "SKIPPED"
ALL_CATEGORIES = "All Categories"


class QuizModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class QuestionDraft(QuizModel):
    """A question that has not been assigned an identity yet."""
    question_text: str = Field(..., min_length=1, description="The question text")
    options: List[str] = Field(..., min_length=2, description="Answer options (2 or more)")
    correct_answer: str = Field(..., description="One of the options")
    category: str = Field(..., min_length=1)
    difficulty: str = Field(..., min_length=1)


class Question(QuestionDraft):
    id: int = Field(..., description="Stable question identity")


class QuestionView(QuizModel):
    """A question as shown during a running session (no correct answer)."""
    id: int
    question_text: str
    options: List[str]
    category: str
    difficulty: str

    @classmethod
    def from_question(cls, question: Question) -> "QuestionView":
        return cls(
            id=question.id,
            question_text=question.question_text,
            options=question.options,
            category=question.category,
            difficulty=question.difficulty,
        )


class CategoryInfo(QuizModel):
    id: str = Field(..., description="Category label as stored on questions")
    name: str = Field(..., description="Display name")
    count: int = Field(..., ge=0, description="Number of questions in the category")


class AnswerRecord(QuizModel):
    question_id: int
    answer: str
    time_spent: int = Field(0, ge=0, description="Seconds spent on the question")
    skipped: bool = False


class QuestionResult(QuizModel):
    question_id: int
    question_text: str
    user_answer: str = ""
    correct_answer: str
    is_correct: bool
    time_spent: int = Field(0, ge=0)
    skipped: bool = False
    category: Optional[str] = None
    difficulty: Optional[str] = None

    @model_validator(mode="after")
    def _skipped_is_never_correct(self):
        if self.is_correct and self.skipped:
            raise ValueError("a skipped question cannot be marked correct")
        return self


class ScoredResult(QuizModel):
    id: Optional[int] = None
    quiz_topic: str
    score: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=0)
    time_spent: int = Field(..., ge=0, description="Seconds from session start to submit")
    completed_at: datetime
    question_results: List[QuestionResult]

    @model_validator(mode="after")
    def _consistent_totals(self):
        if len(self.question_results) != self.total_questions:
            raise ValueError("totalQuestions must match the number of question results")
        correct = sum(1 for r in self.question_results if r.is_correct)
        if self.score != correct:
            raise ValueError(f"score {self.score} does not match {correct} correct answers")
        return self


class CategoryStatistics(QuizModel):
    category: str
    correct: int
    total: int
    attempted: int
    skipped: int
    accuracy: float


class TimelinePoint(QuizModel):
    label: str
    seconds: int
    skipped: bool


class ResultAnalytics(QuizModel):
    result_id: Optional[int] = None
    percentage: float
    performance_level: str
    total_time: str
    average_time_per_question: float
    categories: List[CategoryStatistics]
    timeline: List[TimelinePoint]
