import random
from typing import List, Optional, Sequence

from core.exceptions import EmptyPoolError
from schemas.quiz import Question


def select_session_questions(
    pool: Sequence[Question],
    size: int,
    rng: Optional[random.Random] = None,
    category: Optional[str] = None,
) -> List[Question]:
    """
    Draw a random, duplicate-free subset of `pool` for one session.

    The result holds min(size, distinct questions in pool) questions in a
    uniformly random order. `pool` is left untouched.
    """
    if not pool:
        raise EmptyPoolError(category)

    unique = {}
    for question in pool:
        unique.setdefault(question.id, question)
    candidates = list(unique.values())

    rng = rng or random.Random()
    count = max(0, min(size, len(candidates)))
    return rng.sample(candidates, count)
