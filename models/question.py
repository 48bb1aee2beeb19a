from sqlalchemy import Column, Integer, String, Text, JSON
from models.base import Base, TimestampMixin

class QuestionEntry(Base, TimestampMixin):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    question_text = Column(Text, nullable=False)
    options = Column(JSON, nullable=False)
    correct_answer = Column(Text, nullable=False)
    category = Column(String(100), index=True, nullable=False)
    difficulty = Column(String(50), nullable=False)
