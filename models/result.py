from sqlalchemy import Column, Integer, String, DateTime, JSON
from models.base import Base

class QuizResult(Base):
    __tablename__ = "quiz_results"

    id = Column(Integer, primary_key=True, index=True)
    quiz_topic = Column(String(255), nullable=False)
    score = Column(Integer, nullable=False)
    total_questions = Column(Integer, nullable=False)
    time_spent = Column(Integer, nullable=False)  # seconds
    completed_at = Column(DateTime(timezone=True), index=True, nullable=False)

    # Ordered per-question outcomes, same order as the session's questions
    question_results = Column(JSON, nullable=False)
