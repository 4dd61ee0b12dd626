"""Random question selection for a quiz configuration."""

from __future__ import annotations

import random
from typing import Sequence

from agriquiz.core.models import Question, QuizConfig


def select_questions(
    pool: Sequence[Question],
    config: QuizConfig,
    rng: random.Random | None = None,
) -> list[Question]:
    """Pick and shuffle the questions for one session.

    Without category constraints the whole pool is shuffled and cut to
    ``config.total_questions``. With constraints each requested category
    contributes up to its count, and the combined picks are shuffled again so
    categories do not appear in blocks. Requests larger than what a category
    holds quietly yield fewer questions.
    """
    rng = rng or random.Random()

    if not config.categories:
        shuffled = list(pool)
        rng.shuffle(shuffled)
        return shuffled[: max(0, config.total_questions)]

    selected: list[Question] = []
    for category, count in config.categories.items():
        if count <= 0:
            continue
        candidates = [question for question in pool if question.category == category]
        rng.shuffle(candidates)
        selected.extend(candidates[:count])

    rng.shuffle(selected)
    return selected
