"""
Pytest configuration and fixtures for quiz tests.
"""
import sys
import os
import random
from datetime import datetime, timedelta, timezone

import pytest

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)

from schemas.quiz import Question  # noqa: E402
from services.engine import QuizSessionEngine  # noqa: E402


def make_question(question_id: int, category: str = "science", correct: str = "A", difficulty: str = "easy") -> Question:
    return Question(
        id=question_id,
        question_text=f"Question number {question_id}?",
        options=["A", "B", "C", "D"] if correct in ("A", "B", "C", "D") else [correct, "B"],
        correct_answer=correct,
        category=category,
        difficulty=difficulty,
    )


class FakeSink:
    """In-memory result sink. Fails `failures` times, optionally waits on `gate`."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls = 0
        self.saved = []
        self.gate = None

    async def persist(self, result):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("database unavailable")
        stored = result.model_copy(update={"id": len(self.saved) + 1})
        self.saved.append(stored)
        return stored


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds: int):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def sample_questions():
    """Sample question pool for testing"""
    return [
        make_question(1, category="science", correct="A"),
        make_question(2, category="science", correct="B"),
        make_question(3, category="history", correct="C"),
        make_question(4, category="history", correct="D"),
        make_question(5, category="geography", correct="A"),
    ]


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def engine(sink, fake_clock):
    return QuizSessionEngine(sink, rng=random.Random(42), clock=fake_clock)
