from typing import Dict, Iterator, Optional

from schemas.quiz import AnswerRecord


class AnswerLedger:
    """Answers and skips of the active session, one record per question id."""

    def __init__(self):
        self._records: Dict[int, AnswerRecord] = {}

    def record(self, question_id: int, answer: str, time_spent: int, skipped: bool = False) -> AnswerRecord:
        """Insert or replace the record for a question. Last write wins."""
        entry = AnswerRecord(
            question_id=question_id,
            answer=answer,
            time_spent=time_spent,
            skipped=skipped,
        )
        self._records[question_id] = entry
        return entry

    def get(self, question_id: int) -> Optional[AnswerRecord]:
        return self._records.get(question_id)

    def count_answered(self) -> int:
        # Skips count as accounted for
        return len(self._records)

    def clear(self):
        self._records.clear()

    def __contains__(self, question_id: int) -> bool:
        return question_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[AnswerRecord]:
        return iter(list(self._records.values()))
