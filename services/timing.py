from datetime import datetime, timezone

from core.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_clock(total_seconds: int) -> str:
    """Render seconds as MM:SS."""
    total_seconds = max(0, int(total_seconds))
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


class QuestionClock:
    """Counts seconds spent on the active question. Restarts on every move."""

    def __init__(self, expected_seconds: int = None):
        self.expected_seconds = expected_seconds or settings.QUESTION_EXPECTED_SECONDS
        self.elapsed = 0
        self.running = False

    def start(self):
        self.elapsed = 0
        self.running = True

    def reset(self):
        self.elapsed = 0

    def stop(self):
        self.running = False

    def tick(self):
        if self.running:
            self.elapsed += 1

    @property
    def percent_remaining(self) -> float:
        # UI feedback only, no effect on scoring
        return max(0.0, 100 - (self.elapsed / self.expected_seconds) * 100)


class SessionClock:
    """Whole-session countdown. Never reset by navigation."""

    def __init__(self, budget_seconds: int = None):
        self.budget_seconds = budget_seconds or settings.SESSION_DURATION_SECONDS
        self.remaining = self.budget_seconds
        self.running = False

    def start(self):
        self.remaining = self.budget_seconds
        self.running = True

    def stop(self):
        self.running = False

    @property
    def expired(self) -> bool:
        return self.remaining <= 0

    def tick(self) -> bool:
        """Count down one second. True only on the tick that reaches zero."""
        if not self.running or self.remaining <= 0:
            return False
        self.remaining -= 1
        if self.remaining == 0:
            self.running = False
            return True
        return False
