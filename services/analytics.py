from typing import Dict, List

from schemas.quiz import CategoryStatistics, ResultAnalytics, ScoredResult, TimelinePoint
from services.timing import format_clock

UNCATEGORIZED = "uncategorized"


def category_statistics(result: ScoredResult) -> List[CategoryStatistics]:
    """Per-category accuracy, in order of first appearance in the result."""
    groups: Dict[str, list] = {}
    for item in result.question_results:
        groups.setdefault(item.category or UNCATEGORIZED, []).append(item)

    stats = []
    for category, items in groups.items():
        correct = sum(1 for q in items if q.is_correct and not q.skipped)
        attempted = sum(1 for q in items if not q.skipped)
        skipped = len(items) - attempted
        stats.append(CategoryStatistics(
            category=category,
            correct=correct,
            total=len(items),
            attempted=attempted,
            skipped=skipped,
            accuracy=(correct / attempted) * 100 if attempted else 0.0,
        ))
    return stats


def performance_level(score: int, total: int) -> str:
    percentage = (score / total) * 100 if total else 0
    if percentage >= 80:
        return "Excellent"
    if percentage >= 60:
        return "Good"
    if percentage >= 40:
        return "Average"
    return "Needs Improvement"


def time_series(result: ScoredResult) -> List[TimelinePoint]:
    return [
        TimelinePoint(label=f"Q{i}", seconds=item.time_spent, skipped=item.skipped)
        for i, item in enumerate(result.question_results, 1)
    ]


def analyze(result: ScoredResult) -> ResultAnalytics:
    total = result.total_questions
    spent = [item.time_spent for item in result.question_results]
    return ResultAnalytics(
        result_id=result.id,
        percentage=round((result.score / total) * 100, 1) if total else 0.0,
        performance_level=performance_level(result.score, total),
        total_time=format_clock(result.time_spent),
        average_time_per_question=round(sum(spent) / len(spent), 1) if spent else 0.0,
        categories=category_statistics(result),
        timeline=time_series(result),
    )
